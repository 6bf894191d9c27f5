"""Error handling — exceptions raised below the cache boundary and HTTP classification."""

from marketcache.errors.exceptions import (
    MarketCacheError,
    SerializationError,
    TerminalError,
    TransientError,
)

__all__ = [
    "MarketCacheError",
    "TransientError",
    "TerminalError",
    "SerializationError",
]
