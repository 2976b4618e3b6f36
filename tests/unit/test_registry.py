"""
Unit tests for Registry.
"""

from unittest.mock import MagicMock

import pytest

from resource_layer.domain.entity import Entity
from resource_layer.registry import CONTENT_CACHE_PARAM, Registry
from shared.config import ResourceSettings
from shared.errors import ValidationError
from shared.test_helpers import RecordingTransport, create_url_table


@pytest.fixture
def transport():
    """Create a recording transport."""
    return RecordingTransport()


@pytest.fixture
def urls():
    """Create a url table with user routes and custom endpoints."""
    urls = create_url_table("core:user")
    urls.register("core:user:stats", lambda identity: f"/api/user/{identity}/stats/")
    urls.register("core:user:active", lambda: "/api/user/active/")
    return urls


@pytest.fixture
def registry(transport, urls):
    """Create a user registry."""
    return Registry("user", transport, urls, error_reporter=MagicMock())


class TestRegistryConstruction:
    """Options and extensions."""

    def test_name_required(self, transport, urls):
        """A registry without a name is rejected."""
        with pytest.raises(ValidationError) as excinfo:
            Registry("", transport, urls)

        assert excinfo.value.code == "VALIDATION_ERROR"

    def test_name_is_qualified_by_namespace(self, transport, urls):
        """Names carry their namespace."""
        assert Registry("user", transport, urls).name == "core:user"
        assert Registry("user", transport, urls, namespace="auth").name == "auth:user"

    def test_from_settings(self, transport, urls):
        """Settings supply namespace, id key and build metadata."""
        settings = ResourceSettings(default_namespace="auth", default_id_key="pk",
                                    content_cache_key="build-1")

        registry = Registry.from_settings("user", settings, transport, urls)

        assert registry.name == "auth:user"
        assert registry.id_key == "pk"
        assert registry.options.content_cache_key == "build-1"

    def test_extension_invoked_with_registry(self, transport, urls):
        """Extensions receive the registry first."""
        def count_cached(registry, endpoint=None):
            return len(registry.entity_cache(endpoint))

        registry = Registry("user", transport, urls, extensions={"count_cached": count_cached})
        registry.get_entity(1)

        assert registry.invoke_extension("count_cached") == 1

    def test_unknown_extension(self, registry):
        """Calling an unregistered extension fails."""
        with pytest.raises(ValidationError):
            registry.invoke_extension("missing")

    @pytest.mark.parametrize("extensions", [
        {"not-valid": lambda registry: None},
        {"_private": lambda registry: None},
        {"hook": "not callable"},
        {"fetch_entity": lambda registry: None},
    ])
    def test_invalid_extensions_rejected(self, transport, urls, extensions):
        """Extension names must be public identifiers that do not shadow the registry."""
        with pytest.raises(ValidationError):
            Registry("user", transport, urls, extensions=extensions)


class TestRegistryEntities:
    """Entity cache behaviour."""

    def test_get_entity_returns_same_object(self, registry):
        """Identity is compared as a string."""
        assert registry.get_entity(7) is registry.get_entity("7")

    def test_get_entity_params_are_part_of_key(self, registry):
        """Different params produce different slots."""
        assert registry.get_entity(7) is not registry.get_entity(7, {"fields": ["id"]})

    @pytest.mark.parametrize("identity", [None, ""])
    def test_get_entity_requires_identity(self, registry, identity):
        """Lookups need an identity."""
        with pytest.raises(ValidationError):
            registry.get_entity(identity)

    def test_add_entity_merges_into_cached(self, registry):
        """Adding a duplicate merges into the cached instance."""
        cached = registry.get_entity(3)
        duplicate = Entity(registry, {"id": 3, "username": "admin"})

        result = registry.add_entity(duplicate)

        assert result is cached
        assert cached.attributes == {"id": "3", "username": "admin"}

    def test_identityless_entity_clears_groups(self, registry):
        """An unsaved record invalidates every cached group."""
        group = registry.get_group({"facility": "f1"})

        registry.create_entity({"username": "new"})

        assert registry.get_group({"facility": "f1"}) is not group

    def test_identified_entity_leaves_hash_slot(self, registry):
        """Gaining an identity moves the entity out of its attribute-hash slot."""
        entity = registry.create_entity({"username": "new"})

        entity.set({"id": 8})
        registry.add_entity(entity)

        assert entity.hash_key is None
        assert list(registry.entity_cache()) == [registry.cache_key({"id": "8"})]

    def test_evict_identityless_entity(self, registry):
        """Unsaved entities are evicted from their hash slot."""
        entity = registry.create_entity({"username": "new"})

        registry.evict_entity(entity)

        assert registry.entity_cache() == {}

    def test_find_entity_by_attributes(self, registry):
        """A mapping matches entities containing every pair."""
        registry.create_entity({"id": 1, "username": "john.doe", "facility": "f1"})
        jane = registry.create_entity({"id": 2, "username": "jane.smith", "facility": "f1"})

        assert registry.find_entity({"username": "jane.smith"}) is jane
        assert registry.find_entity({"id": 2, "facility": "f1"}) is jane
        assert registry.find_entity({"username": "nobody"}) is None

    def test_find_entity_by_callable(self, registry):
        """A callable predicate is applied to each entity."""
        admin = registry.create_entity({"id": 3, "roles": ["admin"]})

        assert registry.find_entity(lambda entity: "admin" in entity.attributes.get("roles", [])) is admin

    def test_endpoint_entities_cached_apart(self, registry):
        """Endpoint entities live in their own namespace with their own url."""
        plain = registry.get_entity(1)
        stats = registry.get_entity(1, endpoint="stats")

        assert stats is not plain
        assert stats.url == "/api/user/1/stats/"
        assert registry.get_entity(1, endpoint="stats") is stats
        assert registry.find_entity({"id": 1}, endpoint="stats") is stats

    def test_endpoint_entity_requires_identity(self, registry):
        """Endpoint entities need an id to build their url."""
        with pytest.raises(ValidationError):
            registry.create_entity({"username": "x"}, endpoint="stats")

    def test_unknown_endpoint(self, registry):
        """Resolving an unregistered endpoint fails."""
        with pytest.raises(ValidationError):
            registry.get_entity(1, endpoint="missing")


class TestRegistryInvalidation:
    """Invalidation, eviction and clearing."""

    def test_invalidate_entity(self, registry):
        """Invalidation marks the cached entity unsynced."""
        entity = registry.get_entity(1)
        entity.synced = True

        registry.invalidate_entity(1)

        assert entity.synced is False
        assert registry.get_entity(1) is entity

    def test_invalidate_missing_is_noop(self, registry):
        """Invalidating unknown slots does nothing."""
        registry.invalidate_entity(99)
        registry.invalidate_group({"facility": "nowhere"})

    def test_invalidate_group(self, registry):
        """Invalidation marks the cached group unsynced."""
        group = registry.get_group({"facility": "f1"})
        group.set_synced(True)

        registry.invalidate_group({"facility": "f1"})

        assert group.synced is False

    def test_evict_entity_uses_its_endpoint(self, registry):
        """Eviction removes the entity from its own namespace only."""
        plain = registry.get_entity(1)
        stats = registry.get_entity(1, endpoint="stats")

        registry.evict_entity(stats)

        assert registry.get_entity(1) is plain
        assert registry.get_entity(1, endpoint="stats") is not stats

    def test_evict_group(self, registry):
        """Evicted groups are rebuilt on next lookup."""
        group = registry.get_group({"facility": "f1"})

        registry.evict_group(group)

        assert registry.get_group({"facility": "f1"}) is not group

    def test_clear_all(self, registry):
        """Clearing drops every slot."""
        entity = registry.get_entity(1)
        group = registry.get_group({"facility": "f1"})

        registry.clear_all()

        assert registry.get_entity(1) is not entity
        assert registry.get_group({"facility": "f1"}) is not group


class TestRegistryOperations:
    """Convenience operations."""

    @pytest.mark.parametrize("call", [
        lambda registry: registry.fetch_entity(None),
        lambda registry: registry.delete_entity(""),
        lambda registry: registry.fetch_detail_entity("stats", None),
        lambda registry: registry.fetch_detail_entity("", 1),
        lambda registry: registry.fetch_detail_group("stats", None),
        lambda registry: registry.fetch_list_group(""),
        lambda registry: registry.access_endpoint("get", ""),
    ])
    def test_missing_arguments_fail_synchronously(self, registry, transport, call):
        """Validation happens before anything is scheduled."""
        with pytest.raises(ValidationError):
            call(registry)

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_fetch_entity(self, registry, transport):
        """fetch_entity reads through the cached entity."""
        transport.respond({"id": 1, "username": "john.doe"})

        data = await registry.fetch_entity(1)

        assert data == {"id": "1", "username": "john.doe"}
        assert registry.get_entity(1).synced is True

    @pytest.mark.asyncio
    async def test_save_entity_without_identity_creates(self, registry, transport):
        """A save with no id posts a new record."""
        transport.respond({"id": 4, "username": "new"})

        data = await registry.save_entity(data={"username": "new"})

        assert transport.last_request.method == "post"
        assert data["id"] == "4"
        assert registry.get_entity(4).attributes["username"] == "new"

    @pytest.mark.asyncio
    async def test_save_entity_with_identity(self, registry, transport):
        """A save with an id patches the cached entity."""
        transport.respond({"id": 4, "username": "renamed"})

        await registry.save_entity(4, data={"username": "renamed"}, exists=True)

        assert transport.last_request.method == "patch"
        assert transport.last_request.url == "/api/user/4/"

    @pytest.mark.asyncio
    async def test_delete_entity(self, registry, transport):
        """delete_entity removes the cached entity."""
        entity = registry.get_entity(4)

        assert await registry.delete_entity(4) == "4"
        assert registry.get_entity(4) is not entity

    @pytest.mark.asyncio
    async def test_fetch_and_save_group(self, registry, transport):
        """Group helpers go through the cached group."""
        transport.respond([{"id": 1}]).respond([{"id": 2, "username": "b"}])

        assert await registry.fetch_group({"facility": "f1"}) == [{"id": "1"}]
        assert await registry.save_group([{"username": "b"}], {"facility": "f2"}) == [
            {"id": "2", "username": "b"}
        ]

    @pytest.mark.asyncio
    async def test_delete_group(self, registry, transport):
        """delete_group sends the filter."""
        assert await registry.delete_group({"facility": "f1"}) == []
        assert transport.last_request.params == {"facility": "f1"}

    @pytest.mark.asyncio
    async def test_fetch_detail_entity(self, registry, transport):
        """Detail entities read from their endpoint url."""
        transport.respond({"id": 1, "logins": 12})

        data = await registry.fetch_detail_entity("stats", 1)

        assert transport.last_request.url == "/api/user/1/stats/"
        assert data == {"id": "1", "logins": 12}
        assert registry.get_entity(1).attributes == {"id": "1"}

    @pytest.mark.asyncio
    async def test_fetch_detail_group(self, registry, transport):
        """Detail groups are keyed by detail id."""
        transport.respond([{"id": 5}]).respond([{"id": 6}])

        await registry.fetch_detail_group("stats", 1)
        await registry.fetch_detail_group("stats", 2)

        assert [request.url for request in transport.requests] == [
            "/api/user/1/stats/",
            "/api/user/2/stats/",
        ]
        first = registry.get_group(endpoint="stats", detail_id=1)
        assert [member.identity for member in first.members] == ["5"]

    @pytest.mark.asyncio
    async def test_fetch_list_group(self, registry, transport):
        """Custom list groups use their own url and cache slot."""
        transport.respond([{"id": 1}])

        await registry.fetch_list_group("active", {"facility": "f1"})

        assert transport.last_request.url == "/api/user/active/"
        assert registry.get_group({"facility": "f1"}, "active").synced is True
        assert registry.get_group({"facility": "f1"}).synced is False

    @pytest.mark.asyncio
    async def test_get_list_endpoint(self, registry, transport):
        """GET sends args as params and bypasses the cache."""
        transport.respond({"total": 3})

        response = await registry.get_list_endpoint("active", {"facility": "f1"})

        assert response.data == {"total": 3}
        assert transport.last_request.method == "get"
        assert transport.last_request.params == {"facility": "f1"}
        assert transport.last_request.data is None
        assert registry.entity_cache() == {}

    @pytest.mark.asyncio
    async def test_post_list_endpoint(self, registry, transport):
        """POST sends args as the body."""
        await registry.post_list_endpoint("active", {"ids": [1, 2]})

        assert transport.last_request.method == "post"
        assert transport.last_request.data == {"ids": [1, 2]}
        assert transport.last_request.multipart is False

    @pytest.mark.asyncio
    async def test_post_list_endpoint_multipart(self, registry, transport):
        """Multipart posts are flagged for the transport."""
        await registry.post_list_endpoint_multipart("active", {"upload": b"bytes"})

        assert transport.last_request.multipart is True


class TestContentCacheKey:
    """Build metadata on reads."""

    @pytest.fixture
    def registry(self, transport, urls):
        return Registry("user", transport, urls, use_content_cache_key=True,
                        content_cache_key="build-7", error_reporter=MagicMock())

    @pytest.mark.asyncio
    async def test_reads_carry_content_cache_key(self, registry, transport):
        """Bodiless requests get the build key."""
        transport.respond({"id": 1})

        await registry.get_entity(1, {"include": "roles"}).fetch()

        assert transport.last_request.params == {"include": "roles", CONTENT_CACHE_PARAM: "build-7"}
        assert registry.get_entity(1, {"include": "roles"}).params == {"include": "roles"}

    @pytest.mark.asyncio
    async def test_writes_do_not_carry_content_cache_key(self, registry, transport):
        """Requests with a body are sent as-is."""
        transport.respond({"id": 1, "x": 2})

        await registry.get_entity(1).save({"x": 2}, exists=True)

        assert CONTENT_CACHE_PARAM not in transport.last_request.params

    @pytest.mark.parametrize("content_cache_key", [None, ""])
    def test_enabled_without_key_rejected(self, transport, urls, content_cache_key):
        """Opting in requires a build key to send."""
        with pytest.raises(ValidationError):
            Registry("user", transport, urls, use_content_cache_key=True,
                     content_cache_key=content_cache_key)

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, transport, urls):
        """Registries opt in to the build key."""
        registry = Registry("user", transport, urls, content_cache_key="build-7")
        transport.respond({"id": 1})

        await registry.get_entity(1).fetch()

        assert CONTENT_CACHE_PARAM not in transport.last_request.params
