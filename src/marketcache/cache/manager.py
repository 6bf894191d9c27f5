"""Cache manager — wires transport, store, geospatial and document caches."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from marketcache.cache.documents import DocumentCache
from marketcache.cache.geospatial import GeospatialCache
from marketcache.cache.memory import MemoryTransport
from marketcache.cache.stats import CacheMetrics, HealthStatus
from marketcache.cache.store import KeyValueStore
from marketcache.cache.transport import CommandTransport, RestTransport
from marketcache.config.hierarchy import load_settings
from marketcache.config.schema import CacheSettings
from marketcache.types import CacheConfig, CacheResult

logger = logging.getLogger(__name__)


class CacheManager:
    """Composition root for the cache layer.

    Pass ``transport`` (and usually ``config``) to run against a substitute
    backing store; otherwise a REST transport is built from ``settings``.
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        transport: CommandTransport | None = None,
        config: CacheConfig | None = None,
    ) -> None:
        self._settings = settings or CacheSettings()
        self._config = config or self._settings.to_cache_config()
        self._transport = transport or self._build_transport(self._settings)
        self._store = KeyValueStore(self._transport, self._config)
        self._geospatial = GeospatialCache(self._store)
        self._documents = DocumentCache(self._store)
        logger.debug(
            "Cache manager ready (enabled=%s, prefix=%r, default_ttl=%ds)",
            self._config.enabled,
            self._config.key_prefix,
            self._config.default_ttl_seconds,
        )

    @classmethod
    def from_environment(cls, **overrides: Any) -> CacheManager:
        """Build a manager from the configuration hierarchy."""
        return cls(settings=load_settings(**overrides))

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def geospatial(self) -> GeospatialCache:
        return self._geospatial

    @property
    def documents(self) -> DocumentCache:
        return self._documents

    async def invalidate_merchant(self, merchant_id: str) -> CacheResult[int]:
        """Merchant changed: drop its document, merchant queries and location."""
        cascade = await self._documents.invalidate_merchant_caches(merchant_id)
        if not cascade.success:
            return cascade
        location = await self._geospatial.invalidate_merchant_location(merchant_id)
        total = (cascade.data or 0) + int(bool(location.data))
        if not location.success:
            return CacheResult(success=False, data=total, error=location.error)
        return CacheResult.ok(total)

    async def invalidate_address(self, address_id: str) -> CacheResult[int]:
        """Address changed: drop it and every cached merchant entry."""
        return await self._documents.invalidate_address_caches(address_id)

    async def health_check(self) -> HealthStatus:
        config = self._config.model_dump()
        if not self.enabled:
            return HealthStatus(
                healthy=False, enabled=False, detail="disabled",
                metrics=self.stats(), config=config,
            )
        ping = await self._store.ping()
        if not ping.success:
            detail = f"ping failed: {ping.error}"
        else:
            detail = "ok" if ping.data else "ping returned an unexpected reply"
        return HealthStatus(
            healthy=bool(ping.success and ping.data),
            enabled=True,
            detail=detail,
            metrics=self.stats(),
            config=config,
        )

    def stats(self) -> CacheMetrics:
        return self._store.metrics

    async def clear(self) -> CacheResult[int]:
        """Delete every key in this manager's namespace."""
        return await self._store.clear()

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> CacheManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @staticmethod
    def _build_transport(settings: CacheSettings) -> CommandTransport:
        if settings.url and settings.token:
            return RestTransport(
                url=settings.url,
                token=settings.token,
                timeout_seconds=settings.timeout_seconds,
                retry_attempts=settings.retry_attempts,
            )
        # No endpoint: only reachable when a caller forces the cache on.
        return MemoryTransport()
