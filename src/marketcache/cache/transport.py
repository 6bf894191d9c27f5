"""Wire transports for the backing key-value service.

A transport speaks the command protocol (``SET``, ``GET``, ``DEL``,
``EXISTS``, ``EXPIRE``, ``TTL``, ``KEYS``, ``HSET``, ``HGETALL``, ``HDEL``,
``PING``) and raises ``MarketCacheError`` subclasses on failure. It knows
nothing about namespaces or JSON payloads; that is ``KeyValueStore``'s job.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from marketcache.errors.exceptions import TerminalError
from marketcache.errors.retry import classify_http_error, classify_status, retrying

logger = logging.getLogger(__name__)

Command = Sequence[str | int]


class CommandTransport(Protocol):
    """Request/response access to a key-value service."""

    async def execute(self, command: Command) -> Any:
        """Run one command and return its decoded reply."""

    async def multi_exec(self, commands: Sequence[Command]) -> list[Any]:
        """Run commands atomically and return one reply per command."""

    async def close(self) -> None:
        """Release network resources."""


class RestTransport:
    """Sends commands as JSON arrays to a Redis-compatible REST endpoint.

    ``POST {url}`` with ``["SET", "k", "v", "EX", "60"]`` answers
    ``{"result": ...}`` or ``{"error": "..."}``; ``POST {url}/multi-exec``
    takes a list of such arrays and answers a list of such objects.
    """

    def __init__(
        self,
        url: str,
        token: str,
        timeout_seconds: float = 5.0,
        retry_attempts: int = 1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}
        self._retry_attempts = retry_attempts
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def execute(self, command: Command) -> Any:
        body = await self._post(self._url, _encode(command))
        return _unwrap(body)

    async def multi_exec(self, commands: Sequence[Command]) -> list[Any]:
        body = await self._post(f"{self._url}/multi-exec", [_encode(c) for c in commands])
        if not isinstance(body, list):
            raise TerminalError(f"Unexpected multi-exec reply: {body!r}")
        return [_unwrap(item) for item in body]

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, url: str, payload: list[Any]) -> Any:
        async for attempt in retrying(self._retry_attempts):
            with attempt:
                return await self._send(url, payload)
        raise TerminalError("Retry loop ended without a reply")

    async def _send(self, url: str, payload: list[Any]) -> Any:
        try:
            response = await self._client.post(url, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            raise classify_http_error(exc) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = body.get("error") if isinstance(body, dict) else None
            raise classify_status(response.status_code, message or response.text)
        return body


def _encode(command: Command) -> list[str]:
    return [str(part) for part in command]


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict):
        if "error" in body:
            raise TerminalError(str(body["error"]))
        if "result" in body:
            return body["result"]
    raise TerminalError(f"Unexpected reply: {body!r}")
