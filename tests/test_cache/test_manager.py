"""Tests for the cache manager."""

import pytest

from marketcache.cache.manager import CacheManager
from marketcache.cache.memory import MemoryTransport
from marketcache.cache.transport import RestTransport
from marketcache.config.schema import CacheSettings
from marketcache.types import CacheConfig


@pytest.fixture
def manager(transport, config):
    return CacheManager(transport=transport, config=config)


class TestWiring:
    def test_components_share_one_store(self, manager):
        assert manager.geospatial.store is manager.store
        assert manager.documents.store is manager.store
        assert manager.enabled

    def test_settings_without_credentials_disable_cache(self):
        manager = CacheManager(settings=CacheSettings())
        assert not manager.enabled

    def test_forced_config_without_endpoint_uses_memory(self):
        manager = CacheManager(settings=CacheSettings(), config=CacheConfig(enabled=True))
        assert manager.enabled
        assert isinstance(manager._transport, MemoryTransport)

    async def test_credentials_build_rest_transport(self):
        settings = CacheSettings(url="https://cache.example.test", token="t")
        async with CacheManager(settings=settings) as manager:
            assert manager.enabled
            assert isinstance(manager._transport, RestTransport)


class TestFromEnvironment:
    async def test_reads_environment(self, monkeypatch, project_dir):
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://cache.example.test")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "t")
        monkeypatch.setenv("MARKETCACHE_KEY_PREFIX", "svc:")
        async with CacheManager.from_environment() as manager:
            assert manager.enabled
            assert manager.config.key_prefix == "svc:"

    def test_test_environment_disables(self, monkeypatch, project_dir):
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://cache.example.test")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "t")
        monkeypatch.setenv("MARKETCACHE_ENV", "test")
        assert not CacheManager.from_environment().enabled

    def test_overrides_win(self, project_dir):
        manager = CacheManager.from_environment(key_prefix="cli:", default_ttl_seconds=60)
        assert manager.config.key_prefix == "cli:"
        assert manager.config.default_ttl_seconds == 60


class TestCascades:
    async def test_invalidate_merchant(self, manager):
        await manager.documents.cache_merchant("m1", {"name": "Jollibee"})
        await manager.documents.cache_query("merchants", {"status": "open"}, ["m1"])
        await manager.geospatial.cache_merchant_location("m1", {"latitude": 0, "longitude": 0})

        result = await manager.invalidate_merchant("m1")
        assert result.success
        assert result.data == 3
        assert (await manager.geospatial.get_merchant_location("m1")).hit is False

    async def test_invalidate_address(self, manager):
        await manager.documents.cache_address("a1", {})
        await manager.documents.cache_merchant("m1", {})
        result = await manager.invalidate_address("a1")
        assert result.data == 2


class TestHealth:
    async def test_healthy(self, manager):
        status = await manager.health_check()
        assert status.healthy
        assert status.enabled
        assert status.detail == "ok"
        assert status.config["key_prefix"] == "test:"

    async def test_disabled(self, transport):
        manager = CacheManager(transport=transport, config=CacheConfig(enabled=False))
        status = await manager.health_check()
        assert not status.healthy
        assert not status.enabled
        assert status.detail == "disabled"

    async def test_ping_failure(self, flaky, config):
        flaky.failing_commands.add("PING")
        manager = CacheManager(transport=flaky, config=config)
        status = await manager.health_check()
        assert not status.healthy
        assert status.detail.startswith("ping failed")
        assert status.metrics.errors == 1


class TestLifecycle:
    async def test_stats(self, manager):
        await manager.store.set("k", 1)
        await manager.store.get("k")
        await manager.store.get("absent")
        stats = manager.stats()
        assert stats.hits == 1
        assert stats.misses == 1

    async def test_clear(self, manager):
        await manager.store.set("a", 1)
        await manager.documents.cache_merchant("m1", {})
        result = await manager.clear()
        assert result.success
        assert (await manager.store.keys("*")).data == []

    async def test_context_manager_closes_transport(self, flaky, config):
        async with CacheManager(transport=flaky, config=config):
            pass
        assert flaky.closed
