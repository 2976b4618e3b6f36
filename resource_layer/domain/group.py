"""
An ordered, deduplicated view over entities sharing one query.
"""

import asyncio
import copy
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union, TYPE_CHECKING

from shared.errors import MalformedResponseError, PolicyRefusalError
from shared.logging import get_logger
from ..adapters.transport import TransportRequest, TransportResponse
from ..caching.operation_queue import OperationQueue
from .entity import Entity

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..registry import Registry


logger = get_logger("resource_layer.group")

GroupItem = Union[Mapping[str, Any], Entity]

RESULTS_KEY = "results"


class Group:
    """A query result made of shared entities.

    ``synced`` and ``is_new`` aggregate the group's own flag with every
    member's flag. Use ``set_synced``/``set_new`` to change them.
    """

    def __init__(
        self,
        registry: "Registry",
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Union[GroupItem, Sequence[GroupItem]]] = None,
        url: Optional[str] = None,
        endpoint: Optional[str] = None,
        detail_id: Optional[str] = None,
    ):
        self.registry = registry
        self.params: Dict[str, Any] = dict(params or {})
        self.explicit_url = url
        self.endpoint = endpoint
        self.detail_id = detail_id

        self.members: List[Entity] = []
        self.membership_index: Dict[str, Entity] = {}
        self.metadata: Optional[Dict[str, Any]] = None

        self._synced = False
        self._new = True
        self._operations = OperationQueue()

        if data:
            self.set(data)

    def __repr__(self) -> str:
        return f"<Group {self.registry.name} params={self.params!r} members={len(self.members)}>"

    def __len__(self) -> int:
        return len(self.members)

    @property
    def url(self) -> str:
        if self.explicit_url:
            return self.explicit_url
        return self.registry.collection_url()

    @property
    def synced(self) -> bool:
        return self._synced and all(member.synced for member in self.members)

    def set_synced(self, value: bool) -> None:
        """Set the group's own sync flag; ``True`` also marks every member synced."""
        self._synced = value
        if value:
            for member in self.members:
                member.synced = True

    @property
    def is_new(self) -> bool:
        return self._new and all(member.is_new for member in self.members)

    def set_new(self, value: bool) -> None:
        """Set the group's own new flag; ``False`` also marks every member persisted."""
        self._new = value
        if not value:
            for member in self.members:
                member.is_new = False

    @property
    def pending_operations(self) -> Tuple[asyncio.Task, ...]:
        return self._operations.pending

    @property
    def data(self) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
        """Snapshots of non-deleted members, enveloped when metadata is present."""
        results = [member.data for member in self.members if not member.deleted]
        if self.metadata is None:
            return results
        return {RESULTS_KEY: results, **copy.deepcopy(self.metadata)}

    def clear_cache(self) -> None:
        """Drop all current members."""
        self.members = []
        self.membership_index = {}

    def set(self, items: Union[GroupItem, Sequence[GroupItem]]) -> None:
        """Add items as members, sharing and deduplicating entities through the registry."""
        if isinstance(items, (Entity, Mapping)):
            items = [items]

        # Field-limited projections are cached apart from full records
        member_params = {"fields": self.params["fields"]} if self.params.get("fields") else {}
        for item in items:
            entity = self.registry.add_entity(item, member_params)
            dedup_key = entity.identity or self.registry.cache_key(entity.attributes)
            if dedup_key not in self.membership_index:
                self.membership_index[dedup_key] = entity
                self.members.append(entity)

    def fetch(self, force: bool = False) -> asyncio.Task:
        """Fetch the query result; resolves with ``data``."""
        return self._operations.submit(self._fetch, force)

    def save(self, data: Optional[Sequence[Mapping[str, Any]]] = None) -> asyncio.Task:
        """Create the group's records on the server; resolves with ``data``."""
        return self._operations.submit(self._save, list(data or []))

    def delete(self) -> asyncio.Task:
        """Delete every record matching the query; resolves with member identities."""
        return self._operations.submit(self._delete)

    async def _fetch(self, force: bool) -> Any:
        if not force and self.synced:
            return self.data

        self.set_synced(False)
        request = TransportRequest(url=self.url, params=self.params)
        try:
            response = await self.registry.request(request)
        except Exception as exc:
            self.registry.report_error(exc)
            raise

        body = response.data
        if isinstance(body, list):
            items, metadata = body, None
        elif isinstance(body, Mapping) and RESULTS_KEY in body:
            items = body[RESULTS_KEY] or []
            metadata = {key: value for key, value in body.items() if key != RESULTS_KEY}
        else:
            raise self._malformed(response)
        if not self._valid_items(items):
            raise self._malformed(response)

        self.clear_cache()
        self.set(items)
        self.metadata = metadata
        self.set_synced(True)
        self.set_new(False)
        logger.debug("Group fetched", resource=self.registry.name, params=self.params,
                     members=len(self.members))
        return self.data

    async def _save(self, data: List[Mapping[str, Any]]) -> Any:
        if not data and not self.is_new:
            raise PolicyRefusalError("Cannot update collections, only create them")

        self.set_synced(False)
        payload = data if data else self.data
        request = TransportRequest(url=self.registry.collection_url(), method="post", data=payload)
        try:
            response = await self.registry.request(request)
        except Exception as exc:
            self.registry.report_error(exc)
            raise

        if not isinstance(response.data, list) or not self._valid_items(response.data):
            raise self._malformed(response)

        self.clear_cache()
        self.set(response.data)
        self.set_synced(True)
        self.set_new(False)
        logger.debug("Group saved", resource=self.registry.name, members=len(self.members))
        return self.data

    async def _delete(self) -> List[Optional[str]]:
        if not self.params:
            # Refuse unfiltered bulk deletes
            raise PolicyRefusalError("Can not delete unfiltered collection (collection without any params)")

        request = TransportRequest(url=self.registry.collection_url(), method="delete", params=self.params)
        try:
            await self.registry.request(request)
        except Exception as exc:
            self.registry.report_error(exc)
            raise

        self.registry.evict_group(self)
        for member in self.members:
            member.deleted = True
            self.registry.evict_entity(member)
        logger.debug("Group deleted", resource=self.registry.name, params=self.params,
                     members=len(self.members))
        return [member.identity for member in self.members]

    @staticmethod
    def _valid_items(items: Any) -> bool:
        """Whether every item can become a member."""
        if not isinstance(items, list):
            return False
        return all(isinstance(item, Entity) or (isinstance(item, Mapping) and item) for item in items)

    def _malformed(self, response: TransportResponse) -> MalformedResponseError:
        logger.error("Data appears to be malformed", resource=self.registry.name,
                     params=self.params, data=response.data)
        return MalformedResponseError(response)
