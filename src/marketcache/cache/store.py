"""Namespaced key-value store with JSON payloads and TTL semantics."""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from marketcache.cache.keys import NAMESPACE_REGISTRY_KEY, escape_pattern
from marketcache.cache.stats import CacheMetrics
from marketcache.cache.transport import Command, CommandTransport
from marketcache.errors.exceptions import MarketCacheError, SerializationError
from marketcache.types import CacheConfig, CacheResult

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Expiring key-value storage under a single namespace prefix.

    Every public coroutine returns a ``CacheResult`` and never raises:
    transport and serialization failures come back as ``success=False``.
    With caching disabled nothing reaches the transport.

    Before its first write a store records its prefix in a shared registry.
    A prefix that extends another one (``app:prod:`` under ``app:``) owns
    that sub-space: the shorter namespace no longer lists or clears it.
    """

    def __init__(self, transport: CommandTransport, config: CacheConfig | None = None) -> None:
        self._transport = transport
        self._config = config or CacheConfig()
        self._metrics = CacheMetrics()
        self._registered = False

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def metrics(self) -> CacheMetrics:
        return self._metrics.model_copy()

    def physical_key(self, key: str) -> str:
        return f"{self._config.key_prefix}{key}"

    # ── Basic operations ──

    async def set(self, key: str, value: Any, ttl: int | None = None) -> CacheResult[Any]:
        """Serialize ``value`` and write it with ``ttl`` (or the default TTL)."""
        if not self.enabled:
            return CacheResult.disabled()
        try:
            command = self._set_command(key, value, ttl)
            await self._register_namespace()
            await self._transport.execute(command)
        except MarketCacheError as exc:
            return self._failure("SET", key, exc)
        self._metrics.record_write()
        logger.debug("SET %s", key)
        return CacheResult.ok(value)

    async def get(self, key: str, model: Any = None) -> CacheResult[Any]:
        """Fetch and decode ``key``; an absent key is a miss, not an error.

        When ``model`` is given the decoded value is validated against it
        and a value of any other shape is reported as a failure.
        """
        if not self.enabled:
            return CacheResult.disabled()
        try:
            raw = await self._transport.execute(["GET", self.physical_key(key)])
            if raw is None:
                self._metrics.record_miss()
                logger.debug("GET %s miss", key)
                return CacheResult.miss()
            value = decode_value(raw)
            if model is not None:
                value = validate_value(model, value, key)
        except MarketCacheError as exc:
            return self._failure("GET", key, exc)
        self._metrics.record_hit()
        logger.debug("GET %s hit", key)
        return CacheResult.found(value)

    async def delete(self, key: str) -> CacheResult[bool]:
        """Delete ``key``; ``data`` is True iff a key was actually removed."""
        if not self.enabled:
            return CacheResult.disabled()
        try:
            removed = await self._transport.execute(["DEL", self.physical_key(key)])
        except MarketCacheError as exc:
            return self._failure("DEL", key, exc)
        self._metrics.record_write()
        return CacheResult.ok(bool(removed))

    async def exists(self, key: str) -> CacheResult[bool]:
        if not self.enabled:
            return CacheResult.disabled()
        try:
            count = await self._transport.execute(["EXISTS", self.physical_key(key)])
        except MarketCacheError as exc:
            return self._failure("EXISTS", key, exc)
        return CacheResult.ok(bool(count))

    async def expire(self, key: str, ttl: int) -> CacheResult[bool]:
        """Reset the TTL of an existing key without rewriting its value."""
        if not self.enabled:
            return CacheResult.disabled()
        try:
            applied = await self._transport.execute(["EXPIRE", self.physical_key(key), int(ttl)])
        except MarketCacheError as exc:
            return self._failure("EXPIRE", key, exc)
        return CacheResult.ok(bool(applied))

    async def ttl(self, key: str) -> CacheResult[int]:
        """Remaining seconds; -1 without expiry, -2 when the key is absent."""
        if not self.enabled:
            return CacheResult.disabled()
        try:
            remaining = await self._transport.execute(["TTL", self.physical_key(key)])
        except MarketCacheError as exc:
            return self._failure("TTL", key, exc)
        return CacheResult.ok(int(remaining))

    async def ping(self) -> CacheResult[bool]:
        if not self.enabled:
            return CacheResult.disabled()
        try:
            reply = await self._transport.execute(["PING"])
        except MarketCacheError as exc:
            return self._failure("PING", "-", exc)
        return CacheResult.ok(str(reply).upper() == "PONG")

    # ── Pattern operations ──

    async def keys(self, pattern: str = "*") -> CacheResult[list[str]]:
        """List logical keys matching ``pattern`` inside this namespace.

        ``pattern`` is a glob relative to the namespace. This is a full
        keyspace scan on the service; keep it off hot paths.
        """
        if not self.enabled:
            return CacheResult.disabled()
        physical_pattern = escape_pattern(self._config.key_prefix) + pattern
        try:
            found = await self._transport.execute(["KEYS", physical_pattern])
            nested = await self._nested_prefixes() if found else []
        except MarketCacheError as exc:
            return self._failure("KEYS", pattern, exc)
        offset = len(self._config.key_prefix)
        return CacheResult.ok([
            key[offset:]
            for key in found or []
            if key != NAMESPACE_REGISTRY_KEY and not key.startswith(tuple(nested))
        ])

    async def delete_many(self, keys: Iterable[str]) -> CacheResult[int]:
        """Delete keys one at a time and count confirmed deletions.

        Not atomic: a failed delete does not undo earlier ones. If any delete
        fails the result is unsuccessful but still carries the count.
        """
        if not self.enabled:
            return CacheResult.disabled()
        deleted = 0
        errors: list[str] = []
        for key in keys:
            result = await self.delete(key)
            if not result.success:
                errors.append(f"{key}: {result.error}")
            elif result.data:
                deleted += 1
        if errors:
            return CacheResult(success=False, data=deleted, error="; ".join(errors))
        return CacheResult.ok(deleted)

    async def delete_pattern(self, pattern: str) -> CacheResult[int]:
        """Enumerate ``pattern`` then delete every match."""
        listed = await self.keys(pattern)
        if not listed.success:
            return CacheResult.fail(listed.error or "KEYS failed")
        if not listed.data:
            return CacheResult.ok(0)
        return await self.delete_many(listed.data)

    async def clear(self) -> CacheResult[int]:
        """Delete every key in this namespace. Meant for resets, not hot paths."""
        result = await self.delete_pattern("*")
        if result.success:
            logger.info("Cleared %d keys under namespace '%s'", result.data, self._config.key_prefix)
        return result

    # ── Hashes ──

    async def hash_get_all(self, key: str) -> CacheResult[dict[str, Any]]:
        if not self.enabled:
            return CacheResult.disabled()
        try:
            flat = await self._transport.execute(["HGETALL", self.physical_key(key)])
            mapping = _pairs_to_dict(flat)
            decoded = {field: decode_value(value) for field, value in mapping.items()}
        except MarketCacheError as exc:
            return self._failure("HGETALL", key, exc)
        return CacheResult.ok(decoded)

    async def hash_delete(self, key: str, fields: Iterable[str]) -> CacheResult[int]:
        names = list(fields)
        if not self.enabled:
            return CacheResult.disabled()
        if not names:
            return CacheResult.ok(0)
        try:
            removed = await self._transport.execute(["HDEL", self.physical_key(key), *names])
        except MarketCacheError as exc:
            return self._failure("HDEL", key, exc)
        return CacheResult.ok(int(removed))

    # ── Transactions ──

    def transaction(self) -> Transaction:
        """Start an atomic batch of writes."""
        return Transaction(self)

    async def _commit(self, commands: list[Command], label: str) -> CacheResult[list[Any]]:
        if not self.enabled:
            return CacheResult.disabled()
        if not commands:
            return CacheResult.ok([])
        try:
            await self._register_namespace()
            replies = await self._transport.multi_exec(commands)
        except MarketCacheError as exc:
            return self._failure("MULTI", label, exc)
        self._metrics.record_write()
        return CacheResult.ok(replies)

    # ── Internals ──

    async def _register_namespace(self) -> None:
        if self._registered:
            return
        await self._transport.execute(["HSET", NAMESPACE_REGISTRY_KEY, self._config.key_prefix, "1"])
        self._registered = True

    async def _nested_prefixes(self) -> list[str]:
        """Registered prefixes that strictly extend this store's prefix."""
        own = self._config.key_prefix
        registry = _pairs_to_dict(await self._transport.execute(["HGETALL", NAMESPACE_REGISTRY_KEY]))
        return [prefix for prefix in registry if prefix != own and prefix.startswith(own)]

    def _set_command(self, key: str, value: Any, ttl: int | None) -> Command:
        return ["SET", self.physical_key(key), encode_value(value, key), "EX", self._resolve_ttl(ttl)]

    def _resolve_ttl(self, ttl: int | None) -> int:
        return int(ttl) if ttl else self._config.default_ttl_seconds

    def _hash_set_command(self, key: str, mapping: Mapping[str, Any]) -> Command:
        args: list[str] = []
        for field, value in mapping.items():
            args.extend((field, encode_value(value, key)))
        return ["HSET", self.physical_key(key), *args]

    def _failure(self, operation: str, key: str, exc: MarketCacheError) -> CacheResult[Any]:
        self._metrics.record_error()
        logger.warning("Cache %s failed for key '%s': %s", operation, key, exc)
        return CacheResult.fail(str(exc) or type(exc).__name__)


class Transaction:
    """Queued writes committed together with ``MULTI``/``EXEC``."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._commands: list[Command] = []
        self._error: SerializationError | None = None

    def set(self, key: str, value: Any, ttl: int | None = None) -> Transaction:
        try:
            self._commands.append(self._store._set_command(key, value, ttl))
        except SerializationError as exc:
            self._error = exc
        return self

    def hash_set(self, key: str, mapping: Mapping[str, Any]) -> Transaction:
        if mapping:
            try:
                self._commands.append(self._store._hash_set_command(key, mapping))
            except SerializationError as exc:
                self._error = exc
        return self

    def hash_delete(self, key: str, fields: Iterable[str]) -> Transaction:
        names = list(fields)
        if names:
            self._commands.append(["HDEL", self._store.physical_key(key), *names])
        return self

    def extend_expiry(self, key: str, ttl: int | None = None) -> Transaction:
        """Keep ``key`` alive for at least ``ttl`` seconds; never shortens it."""
        physical = self._store.physical_key(key)
        seconds = self._store._resolve_ttl(ttl)
        # NX covers a key without expiry, GT only ever pushes the deadline out.
        self._commands.append(["EXPIRE", physical, seconds, "NX"])
        self._commands.append(["EXPIRE", physical, seconds, "GT"])
        return self

    async def commit(self) -> CacheResult[list[Any]]:
        if self._error is not None:
            if not self._store.enabled:
                return CacheResult.disabled()
            return self._store._failure("MULTI", self._error.key or "-", self._error)
        label = str(self._commands[0][1]) if self._commands else "-"
        return await self._store._commit(self._commands, label)


def encode_value(value: Any, key: str | None = None) -> str:
    """Serialize a value (models, dataclasses, plain data) to JSON text."""
    try:
        return to_json(value, by_alias=True).decode("utf-8")
    except PydanticSerializationError as exc:
        raise SerializationError(f"Cannot serialize value for '{key}': {exc}", key=key) from exc


def decode_value(raw: Any) -> Any:
    """Decode a stored value.

    Already-structured replies are returned untouched; strings are parsed
    as JSON and returned as-is when they are not JSON.
    """
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def validate_value(model: Any, value: Any, key: str | None = None) -> Any:
    try:
        return _adapter(model).validate_python(value)
    except ValidationError as exc:
        raise SerializationError(
            f"Cached value for '{key}' does not match {_type_name(model)}: "
            f"{exc.error_count()} validation error(s)",
            key=key,
        ) from exc


@functools.lru_cache(maxsize=256)
def _adapter(model: Any) -> TypeAdapter[Any]:
    return TypeAdapter(model)


def _type_name(model: Any) -> str:
    return getattr(model, "__name__", None) or str(model)


def _pairs_to_dict(flat: Any) -> dict[str, Any]:
    if flat is None:
        return {}
    if isinstance(flat, dict):
        return dict(flat)
    items = list(flat)
    return {str(items[i]): items[i + 1] for i in range(0, len(items) - 1, 2)}
