"""marketcache — shared cache for marketplace documents and nearby-merchant queries."""

from marketcache.cache import (
    CacheManager,
    DocumentCache,
    GeospatialCache,
    KeyValueStore,
    MemoryTransport,
    RestTransport,
)
from marketcache.types import (
    CacheConfig,
    CacheResult,
    CacheTTL,
    GeospatialQuery,
    NearbyMerchant,
)

__version__ = "0.1.0"

__all__ = [
    "CacheConfig",
    "CacheManager",
    "CacheResult",
    "CacheTTL",
    "DocumentCache",
    "GeospatialCache",
    "GeospatialQuery",
    "KeyValueStore",
    "MemoryTransport",
    "NearbyMerchant",
    "RestTransport",
]
