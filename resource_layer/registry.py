"""
Per-resource cache and factory for entities and groups.
"""

import asyncio
import dataclasses
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from shared.config import ResourceSettings
from shared.errors import ValidationError
from shared.logging import get_logger
from .adapters.transport import Transport, TransportRequest, TransportResponse
from .caching.cache_key import make_cache_key
from .domain.entity import Entity
from .domain.group import Group, GroupItem
from .options import build_options
from .reporting import ErrorReporter
from .urls import DETAIL_ENDPOINT, LIST_ENDPOINT, UrlFunction, UrlTable


CONTENT_CACHE_PARAM = "contentCacheKey"
DEFAULT_CACHE_NAME = "default"

EntityPredicate = Union[Mapping[str, Any], Callable[[Entity], bool]]


class Registry:
    """Cache of entities and groups for one resource type.

    Every cache is split by endpoint label; the default label holds objects
    addressed through the resource's ``detail`` and ``list`` URLs.
    """

    def __init__(
        self,
        name: str,
        transport: Transport,
        urls: UrlTable,
        *,
        id_key: str = "id",
        namespace: str = "core",
        use_content_cache_key: bool = False,
        content_cache_key: Optional[str] = None,
        error_reporter: Optional[Any] = None,
        extensions: Optional[Dict[str, Callable[..., Any]]] = None,
    ):
        self.options = build_options(
            name=name,
            id_key=id_key,
            namespace=namespace,
            use_content_cache_key=use_content_cache_key,
            content_cache_key=content_cache_key,
            extensions=extensions or {},
        )
        shadowed = [hook for hook in self.options.extensions if hasattr(type(self), hook)]
        if shadowed:
            raise ValidationError(
                "Extensions may not shadow registry attributes",
                details={"extensions": shadowed}
            )

        self.name = self.options.qualified_name
        self.id_key = self.options.id_key
        self.transport = transport
        self.urls = urls
        self.error_reporter = error_reporter or ErrorReporter()
        self.logger = get_logger("resource_layer.registry")

        self.entities_by_endpoint: Dict[str, Dict[str, Entity]] = {}
        self.groups_by_endpoint: Dict[str, Dict[str, Group]] = {}
        self.clear_all()

    @classmethod
    def from_settings(cls, name: str, settings: ResourceSettings, transport: Transport,
                      urls: UrlTable, **kwargs: Any) -> "Registry":
        """Build a registry using namespace, id key and build metadata from settings."""
        kwargs.setdefault("namespace", settings.default_namespace)
        kwargs.setdefault("id_key", settings.default_id_key)
        kwargs.setdefault("content_cache_key", settings.content_cache_key)
        return cls(name, transport, urls, **kwargs)

    # Cache keys and namespaces

    def cache_key(self, *params: Optional[Mapping[str, Any]]) -> str:
        return make_cache_key(*params, id_key=self.id_key)

    @staticmethod
    def cache_name(endpoint: Optional[str] = None) -> str:
        return f"endpoint-{endpoint}" if endpoint else DEFAULT_CACHE_NAME

    def entity_cache(self, endpoint: Optional[str] = None) -> Dict[str, Entity]:
        return self.entities_by_endpoint.setdefault(self.cache_name(endpoint), {})

    def group_cache(self, endpoint: Optional[str] = None) -> Dict[str, Group]:
        return self.groups_by_endpoint.setdefault(self.cache_name(endpoint), {})

    def _entity_key(self, identity: Any, params: Optional[Mapping[str, Any]] = None) -> str:
        return self.cache_key({self.id_key: identity}, params)

    def _group_key(self, params: Optional[Mapping[str, Any]] = None, detail_id: Optional[str] = None) -> str:
        if detail_id:
            return self.cache_key(params, {"detail_id": str(detail_id)})
        return self.cache_key(params)

    # URLs

    def get_url_function(self, endpoint: str) -> UrlFunction:
        return self.urls.resolve(f"{self.name}:{endpoint}")

    def model_url(self, identity: Optional[str] = None) -> str:
        return self.get_url_function(DETAIL_ENDPOINT)(identity)

    def collection_url(self) -> str:
        return self.get_url_function(LIST_ENDPOINT)()

    # Groups

    def get_group(self, params: Optional[Dict[str, Any]] = None, endpoint: Optional[str] = None,
                  detail_id: Optional[str] = None) -> Group:
        """Return the cached group for a query, creating it on a miss."""
        cache = self.group_cache(endpoint)
        key = self._group_key(params, detail_id)
        if key not in cache:
            return self.create_group(params, None, endpoint, detail_id)
        return cache[key]

    def create_group(self, params: Optional[Dict[str, Any]] = None,
                     data: Optional[Union[GroupItem, Sequence[GroupItem]]] = None,
                     endpoint: Optional[str] = None, detail_id: Optional[str] = None) -> Group:
        """Create a group and place it in the cache, replacing any previous slot."""
        url = None
        if endpoint and detail_id:
            url = self.get_url_function(endpoint)(detail_id)
        elif endpoint:
            url = self.get_url_function(endpoint)()

        group = Group(self, params, data, url, endpoint, detail_id)
        self.group_cache(endpoint)[self._group_key(params, detail_id)] = group
        return group

    # Entities

    def get_entity(self, identity: Any, params: Optional[Dict[str, Any]] = None,
                   endpoint: Optional[str] = None) -> Entity:
        """Return the cached entity for an identity, creating it on a miss."""
        if identity is None or identity == "":
            raise ValidationError("An id must be specified")
        cache = self.entity_cache(endpoint)
        key = self._entity_key(identity, params)
        if key not in cache:
            return self.create_entity({self.id_key: identity}, params, endpoint)
        return cache[key]

    def find_entity(self, predicate: EntityPredicate, endpoint: Optional[str] = None) -> Optional[Entity]:
        """Return the first cached entity matching ``predicate``.

        A mapping predicate matches entities whose attributes contain every
        given key/value pair.
        """
        matches = self._attribute_matcher(predicate) if isinstance(predicate, Mapping) else predicate
        for entity in self.entity_cache(endpoint).values():
            if matches(entity):
                return entity
        return None

    def _attribute_matcher(self, attrs: Mapping[str, Any]) -> Callable[[Entity], bool]:
        expected = dict(attrs)
        if expected.get(self.id_key) is not None:
            expected[self.id_key] = str(expected[self.id_key])

        def matches(entity: Entity) -> bool:
            return all(
                key in entity.attributes and entity.attributes[key] == value
                for key, value in expected.items()
            )

        return matches

    def create_entity(self, data: Mapping[str, Any], params: Optional[Dict[str, Any]] = None,
                      endpoint: Optional[str] = None) -> Entity:
        """Create an entity from raw data and register it for deduplication."""
        url = None
        if endpoint:
            if not isinstance(data, Mapping) or not data.get(self.id_key):
                raise ValidationError("An id must be specified for endpoint entities",
                                      details={"endpoint": endpoint})
            url = self.get_url_function(endpoint)(data[self.id_key])
        entity = Entity(self, data, params, url, endpoint)
        return self.add_entity(entity, params, endpoint)

    def add_entity(self, entity: Union[Entity, Mapping[str, Any]], params: Optional[Dict[str, Any]] = None,
                   endpoint: Optional[str] = None) -> Entity:
        """Insert an entity (or raw data) into the cache and return the shared instance."""
        if not isinstance(entity, Entity):
            return self.create_entity(entity, params, endpoint)

        cache = self.entity_cache(endpoint)
        if entity.identity:
            self._release_hash_slot(cache, entity)
            key = self._entity_key(entity.identity, entity.params)
            cached = cache.get(key)
            if cached is None:
                cache[key] = entity
            elif cached is not entity:
                cached.set(entity.attributes)
        else:
            key = self.cache_key(entity.attributes)
            cache[key] = entity
            entity.hash_key = key
            # An unsaved record may belong to any cached query result
            self.groups_by_endpoint = {}
        return cache[key]

    @staticmethod
    def _release_hash_slot(cache: Dict[str, Entity], entity: Entity) -> None:
        if entity.hash_key is not None and cache.get(entity.hash_key) is entity:
            del cache[entity.hash_key]
        entity.hash_key = None

    # Convenience operations

    def fetch_entity(self, identity: Any, params: Optional[Dict[str, Any]] = None,
                     force: bool = False) -> asyncio.Task:
        if not identity:
            raise ValidationError("An id must be specified")
        return self.get_entity(identity, params).fetch(force)

    def save_entity(self, identity: Any = None, params: Optional[Dict[str, Any]] = None,
                    data: Optional[Dict[str, Any]] = None, exists: bool = False) -> asyncio.Task:
        if not identity:
            return self.create_entity(data or {}, params).save()
        return self.get_entity(identity, params).save(data or {}, exists)

    def delete_entity(self, identity: Any, params: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        if not identity:
            raise ValidationError("An id must be specified")
        return self.get_entity(identity, params).delete()

    def fetch_group(self, params: Optional[Dict[str, Any]] = None, force: bool = False) -> asyncio.Task:
        return self.get_group(params).fetch(force)

    def save_group(self, data: Optional[Sequence[Mapping[str, Any]]] = None,
                   params: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        return self.get_group(params).save(data)

    def delete_group(self, params: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        return self.get_group(params).delete()

    def fetch_detail_entity(self, detail_name: str, identity: Any,
                            params: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        """Fetch a detail endpoint that returns a single object."""
        if not identity:
            raise ValidationError("An id must be specified")
        if not detail_name:
            raise ValidationError("A detail name must be specified")
        return self.get_entity(identity, params, detail_name).fetch()

    def fetch_detail_group(self, detail_name: str, identity: Any, params: Optional[Dict[str, Any]] = None,
                           force: bool = False) -> asyncio.Task:
        """Fetch a detail endpoint that returns many objects."""
        if not identity:
            raise ValidationError("An id must be specified")
        if not detail_name:
            raise ValidationError("A detail name must be specified")
        return self.get_group(params, detail_name, identity).fetch(force)

    def fetch_list_group(self, list_name: str, params: Optional[Dict[str, Any]] = None,
                         force: bool = False) -> asyncio.Task:
        """Fetch a custom list endpoint."""
        if not list_name:
            raise ValidationError("A list name must be specified")
        return self.get_group(params, list_name).fetch(force)

    def access_endpoint(self, method: str, list_name: str, args: Optional[Dict[str, Any]] = None,
                        multipart: bool = False):
        """Call a list endpoint directly, bypassing the cache.

        For GET the args become query parameters, otherwise the request body.
        Returns an awaitable resolving with the transport response.
        """
        if not list_name:
            raise ValidationError("A list name must be specified")
        args = args or {}
        url = self.get_url_function(list_name)()
        if method.lower() == "get":
            request = TransportRequest(url=url, method=method, params=args, multipart=multipart)
        else:
            request = TransportRequest(url=url, method=method, data=args, multipart=multipart)
        return self.request(request)

    def get_list_endpoint(self, list_name: str, params: Optional[Dict[str, Any]] = None):
        return self.access_endpoint("get", list_name, params)

    def post_list_endpoint(self, list_name: str, data: Optional[Dict[str, Any]] = None):
        return self.access_endpoint("post", list_name, data)

    def post_list_endpoint_multipart(self, list_name: str, data: Optional[Dict[str, Any]] = None):
        return self.access_endpoint("post", list_name, data, multipart=True)

    # Invalidation and eviction

    def invalidate_entity(self, identity: Any, params: Optional[Dict[str, Any]] = None,
                          endpoint: Optional[str] = None) -> None:
        """Force the next fetch of a cached entity to hit the server."""
        entity = self.entity_cache(endpoint).get(self._entity_key(identity, params))
        if entity is not None:
            entity.synced = False

    def invalidate_group(self, params: Optional[Dict[str, Any]] = None, endpoint: Optional[str] = None,
                         detail_id: Optional[str] = None) -> None:
        """Force the next fetch of a cached group to hit the server."""
        group = self.group_cache(endpoint).get(self._group_key(params, detail_id))
        if group is not None:
            group.set_synced(False)

    def evict_entity(self, entity: Entity) -> None:
        cache = self.entity_cache(entity.endpoint)
        self._release_hash_slot(cache, entity)
        if entity.identity:
            cache.pop(self._entity_key(entity.identity, entity.params), None)

    def evict_group(self, group: Group) -> None:
        self.group_cache(group.endpoint).pop(self._group_key(group.params, group.detail_id), None)

    def clear_all(self) -> None:
        """Reset both caches."""
        self.entities_by_endpoint = {}
        self.groups_by_endpoint = {}
        self.logger.debug("Resource cache cleared", resource=self.name)

    # Transport and reporting

    async def request(self, request: TransportRequest) -> TransportResponse:
        """Send a request through the transport, adding build metadata to bodiless requests."""
        if self.options.use_content_cache_key and request.data is None:
            params = dict(request.params or {})
            params[CONTENT_CACHE_PARAM] = self.options.content_cache_key
            request = dataclasses.replace(request, params=params)
        return await self.transport(request)

    def report_error(self, error: BaseException) -> None:
        self.error_reporter.report(error, resource=self.name)

    # Extensions

    def invoke_extension(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Call a registered extension hook with this registry as first argument."""
        hook = self.options.extensions.get(name)
        if hook is None:
            raise ValidationError(f"No extension named {name}", details={"extension": name})
        return hook(self, *args, **kwargs)
