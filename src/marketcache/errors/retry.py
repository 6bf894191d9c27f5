"""Transport error classification and opt-in retry policy."""

from __future__ import annotations

import logging

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from marketcache.errors.exceptions import (
    MarketCacheError,
    TerminalError,
    TransientError,
)

logger = logging.getLogger(__name__)

_MAX_WAIT = 2.0  # seconds

_TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


def classify_status(status_code: int, message: str = "") -> MarketCacheError:
    """Map an HTTP status returned by the backing store to our hierarchy."""
    detail = message or f"HTTP {status_code}"
    if status_code in _TRANSIENT_STATUSES:
        error_type = "rate_limit" if status_code == 429 else "server_error"
        return TransientError(detail, error_type=error_type, http_status=status_code)
    if status_code in (401, 403):
        return TerminalError(detail, error_type="auth_failure", http_status=status_code)
    return TerminalError(detail, error_type="command_error", http_status=status_code)


def classify_http_error(exc: Exception) -> MarketCacheError:
    """Convert an httpx exception to our exception hierarchy."""
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code, str(exc))
    if isinstance(exc, httpx.TimeoutException):
        return TransientError(str(exc) or "timeout", error_type="timeout", original=exc)
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError)):
        return TransientError(str(exc) or "connection error", error_type="connection", original=exc)
    return TerminalError(str(exc) or type(exc).__name__, error_type="unknown")


def retrying(attempts: int = 1, initial_wait: float = 0.1) -> AsyncRetrying:
    """Build a retry policy for transient transport errors.

    ``attempts=1`` (the default) performs a single try: the cache layer does
    not retry unless the caller opts in.
    """
    return AsyncRetrying(
        retry=retry_if_exception_type(TransientError),
        wait=wait_exponential(multiplier=initial_wait, min=initial_wait, max=_MAX_WAIT),
        stop=stop_after_attempt(max(1, attempts)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
