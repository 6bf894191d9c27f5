"""Cache subsystem — namespaced store, geospatial cache and document cache."""

from marketcache.cache.documents import DocumentCache
from marketcache.cache.geospatial import GeospatialCache
from marketcache.cache.manager import CacheManager
from marketcache.cache.memory import MemoryTransport
from marketcache.cache.stats import CacheMetrics, HealthStatus
from marketcache.cache.store import KeyValueStore
from marketcache.cache.transport import CommandTransport, RestTransport

__all__ = [
    "CacheManager",
    "CacheMetrics",
    "CommandTransport",
    "DocumentCache",
    "GeospatialCache",
    "HealthStatus",
    "KeyValueStore",
    "MemoryTransport",
    "RestTransport",
]
