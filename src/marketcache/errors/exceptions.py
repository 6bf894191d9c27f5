"""Custom exception hierarchy for marketcache.

These never escape the cache components: ``KeyValueStore`` turns them into
failed ``CacheResult`` values.
"""

from __future__ import annotations

from typing import Any


class MarketCacheError(Exception):
    """Base exception for all marketcache errors."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message


class TransientError(MarketCacheError):
    """Transient transport error — safe to retry.

    Examples: 429 rate limit, 500/502/503 server error, timeout, connection error.
    """

    def __init__(
        self,
        message: str = "",
        error_type: str = "server_error",
        http_status: int | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.http_status = http_status
        self.original = original


class TerminalError(MarketCacheError):
    """Terminal transport error — retrying will not help.

    Examples: 401 bad token, 400 malformed command, error reply from the store.
    """

    def __init__(
        self,
        message: str = "",
        error_type: str = "command_error",
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.http_status = http_status


class SerializationError(MarketCacheError):
    """A value could not be encoded to, or decoded from, its stored JSON form."""

    def __init__(self, message: str = "", key: str | None = None) -> None:
        super().__init__(message)
        self.key = key
