"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

from marketcache.types import CacheTTL

# Default cache settings
DEFAULT_TTL_SECONDS = int(CacheTTL.LONG)
DEFAULT_KEY_PREFIX = "app:"
DEFAULT_CACHE_DISABLED = False

# Default backing-store connection settings
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_RETRY_ATTEMPTS = 1

# Environment name; "test" forces the cache off
DEFAULT_ENVIRONMENT = "development"

# Log level
DEFAULT_LOG_LEVEL = "WARNING"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging."""
    return {
        "default_ttl_seconds": DEFAULT_TTL_SECONDS,
        "key_prefix": DEFAULT_KEY_PREFIX,
        "cache_disabled": DEFAULT_CACHE_DISABLED,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
        "retry_attempts": DEFAULT_RETRY_ATTEMPTS,
        "environment": DEFAULT_ENVIRONMENT,
        "log_level": DEFAULT_LOG_LEVEL,
    }
