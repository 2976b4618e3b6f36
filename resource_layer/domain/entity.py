"""
A single cached remote record.
"""

import asyncio
import copy
from typing import Any, Dict, Mapping, Optional, Tuple, TYPE_CHECKING

from shared.errors import PolicyRefusalError, ValidationError
from shared.logging import get_logger
from ..adapters.transport import TransportRequest
from ..caching.operation_queue import OperationQueue

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..registry import Registry


logger = get_logger("resource_layer.entity")


def values_equal(left: Any, right: Any) -> bool:
    """Deep equality that keeps booleans distinct from numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(values_equal(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    return left == right


class Entity:
    """One remote record and its sync/existence state.

    Entities are shared by reference between the registry cache and every
    group that contains them; all attribute writes go through ``set``.
    """

    def __init__(
        self,
        registry: "Registry",
        data: Mapping[str, Any],
        params: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        if data is None:
            raise ValidationError("data must be defined")
        if not isinstance(data, Mapping):
            raise ValidationError("data must be a mapping", details={"type": type(data).__name__})
        if not data:
            raise ValidationError("data must be instantiated with some data")

        self.registry = registry
        self.attributes: Dict[str, Any] = {}
        self.set(data)

        self.params: Dict[str, Any] = dict(params or {})
        self.explicit_url = url
        self.endpoint = endpoint

        self.synced = False
        # Assume the record is unknown to the server until it says otherwise
        self.is_new = True
        self.deleted = False
        # Registry slot held while the entity has no identity
        self.hash_key: Optional[str] = None

        self._operations = OperationQueue()

    def __repr__(self) -> str:
        return f"<Entity {self.registry.name} identity={self.identity!r} synced={self.synced}>"

    @property
    def identity(self) -> Optional[str]:
        return self.attributes.get(self.registry.id_key)

    @property
    def url(self) -> str:
        if self.explicit_url:
            return self.explicit_url
        return self.registry.model_url(self.identity)

    @property
    def data(self) -> Dict[str, Any]:
        """Deep copy of the current attributes."""
        return copy.deepcopy(self.attributes)

    @property
    def pending_operations(self) -> Tuple[asyncio.Task, ...]:
        return self._operations.pending

    def set(self, attributes: Optional[Mapping[str, Any]]) -> None:
        """Merge ``attributes`` into this entity, normalizing identity to a string."""
        if not attributes:
            return
        incoming = copy.deepcopy(dict(attributes))
        id_key = self.registry.id_key
        if incoming.get(id_key) is not None:
            incoming[id_key] = str(incoming[id_key])
        self.attributes.update(incoming)

    def fetch(self, force: bool = False) -> asyncio.Task:
        """Fetch this record; resolves with its attributes."""
        return self._operations.submit(self._fetch, force)

    def save(self, attrs: Optional[Mapping[str, Any]] = None, exists: bool = False) -> asyncio.Task:
        """Save ``attrs``; resolves with the attributes after the server responds."""
        return self._operations.submit(self._save, dict(attrs or {}), exists)

    def delete(self) -> asyncio.Task:
        """Delete this record; resolves with its identity."""
        return self._operations.submit(self._delete)

    async def _fetch(self, force: bool) -> Dict[str, Any]:
        if not force and self.synced:
            return self.data

        self.synced = False
        request = TransportRequest(url=self.url, params=self.params)
        try:
            response = await self.registry.request(request)
        except Exception as exc:
            self.registry.report_error(exc)
            raise

        self.set(response.data)
        self.synced = True
        self.is_new = False
        logger.debug("Entity fetched", resource=self.registry.name, identity=self.identity)
        return self.data

    async def _save(self, attrs: Dict[str, Any], exists: bool) -> Dict[str, Any]:
        if self.synced:
            # Dirty check against the last known server state
            payload = {
                key: value for key, value in attrs.items()
                if key not in self.attributes or not values_equal(value, self.attributes[key])
            }
        else:
            payload = {**self.attributes, **attrs}

        if not payload:
            return self.data

        self.synced = False
        if not self.is_new or exists:
            request = TransportRequest(url=self.url, method="patch", data=payload, params=self.params)
        else:
            request = TransportRequest(url=self.registry.collection_url(), method="post",
                                       data=payload, params=self.params)
        try:
            response = await self.registry.request(request)
        except Exception as exc:
            self.registry.report_error(exc)
            raise

        previous_identity = self.identity
        self.set(response.data)
        if not previous_identity and self.identity:
            self.registry.add_entity(self, self.params, self.endpoint)
        self.synced = True
        self.is_new = False
        logger.debug("Entity saved", resource=self.registry.name, identity=self.identity,
                     method=request.method)
        return self.data

    async def _delete(self) -> str:
        identity = self.identity
        if not identity:
            raise PolicyRefusalError("Can not delete model that we do not have an id for")

        request = TransportRequest(url=self.url, method="delete", params=self.params)
        try:
            await self.registry.request(request)
        except Exception as exc:
            self.registry.report_error(exc)
            raise

        self.registry.evict_entity(self)
        # Groups still holding this entity skip it when materializing
        self.deleted = True
        self.synced = False
        self.is_new = True
        logger.debug("Entity deleted", resource=self.registry.name, identity=identity)
        return identity
