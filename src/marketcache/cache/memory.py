"""In-process transport emulating the backing store's command set."""

from __future__ import annotations

import copy
import math
import re
import time
from collections.abc import Callable, Sequence
from typing import Any

from marketcache.cache.transport import Command
from marketcache.errors.exceptions import TerminalError

_WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"


class MemoryTransport:
    """Dict-backed key-value service with expiring keys and glob enumeration.

    Replies have the same shapes as the REST endpoint's, so ``KeyValueStore``
    behaves identically on top of either transport. ``clock`` returns
    seconds and can be replaced to move time forward in tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._values: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = {}
        self._expiry: dict[str, float] = {}
        self.commands_executed = 0

    async def execute(self, command: Command) -> Any:
        return self._dispatch(command)

    async def multi_exec(self, commands: Sequence[Command]) -> list[Any]:
        snapshot = (
            dict(self._values),
            copy.deepcopy(self._hashes),
            dict(self._expiry),
        )
        try:
            return [self._dispatch(command) for command in commands]
        except TerminalError:
            self._values, self._hashes, self._expiry = snapshot
            raise

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._values) + len(self._hashes)

    # ── Command dispatch ──

    def _dispatch(self, command: Command) -> Any:
        if not command:
            raise TerminalError("ERR empty command")
        self.commands_executed += 1
        self._purge_expired()
        name = str(command[0]).upper()
        args = [str(part) for part in command[1:]]
        handler = getattr(self, f"_cmd_{name.lower()}", None)
        if handler is None:
            raise TerminalError(f"ERR unknown command '{name}'")
        try:
            return handler(*args)
        except TypeError as exc:
            raise TerminalError(f"ERR wrong number of arguments for '{name.lower()}'") from exc

    def _cmd_ping(self) -> str:
        return "PONG"

    def _cmd_set(self, key: str, value: str, *options: str) -> str:
        ttl: int | None = None
        if options:
            if len(options) != 2 or options[0].upper() != "EX":
                raise TerminalError("ERR syntax error")
            ttl = _positive_int(options[1])
        self._remove(key)
        self._values[key] = value
        if ttl is not None:
            self._expiry[key] = self._clock() + ttl
        return "OK"

    def _cmd_get(self, key: str) -> str | None:
        if key in self._hashes:
            raise TerminalError(_WRONGTYPE)
        return self._values.get(key)

    def _cmd_del(self, *keys: str) -> int:
        return sum(1 for key in keys if self._remove(key))

    def _cmd_exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._contains(key))

    def _cmd_expire(self, key: str, seconds: str, *flags: str) -> int:
        if len(flags) > 1 or (flags and flags[0].upper() not in ("NX", "XX", "GT", "LT")):
            raise TerminalError("ERR Unsupported option")
        if not self._contains(key):
            return 0
        ttl = int(seconds)
        deadline = self._clock() + ttl
        current = self._expiry.get(key)
        flag = flags[0].upper() if flags else None
        # A key without expiry counts as an infinite deadline for GT and LT.
        if flag == "NX" and current is not None:
            return 0
        if flag == "XX" and current is None:
            return 0
        if flag == "GT" and (current is None or deadline <= current):
            return 0
        if flag == "LT" and current is not None and deadline >= current:
            return 0
        if ttl <= 0:
            self._remove(key)
        else:
            self._expiry[key] = deadline
        return 1

    def _cmd_ttl(self, key: str) -> int:
        if not self._contains(key):
            return -2
        deadline = self._expiry.get(key)
        if deadline is None:
            return -1
        return max(0, math.ceil(deadline - self._clock()))

    def _cmd_keys(self, pattern: str) -> list[str]:
        regex = _glob_to_regex(pattern)
        names = list(self._values) + list(self._hashes)
        return sorted(name for name in names if regex.fullmatch(name))

    def _cmd_hset(self, key: str, *pairs: str) -> int:
        if not pairs or len(pairs) % 2:
            raise TerminalError("ERR wrong number of arguments for 'hset' command")
        if key in self._values:
            raise TerminalError(_WRONGTYPE)
        mapping = self._hashes.setdefault(key, {})
        added = 0
        for field, value in zip(pairs[::2], pairs[1::2], strict=True):
            if field not in mapping:
                added += 1
            mapping[field] = value
        return added

    def _cmd_hgetall(self, key: str) -> list[str]:
        if key in self._values:
            raise TerminalError(_WRONGTYPE)
        flat: list[str] = []
        for field, value in self._hashes.get(key, {}).items():
            flat.extend((field, value))
        return flat

    def _cmd_hdel(self, key: str, *fields: str) -> int:
        mapping = self._hashes.get(key)
        if mapping is None:
            return 0
        removed = sum(1 for field in fields if mapping.pop(field, None) is not None)
        if not mapping:
            self._remove(key)
        return removed

    # ── Internals ──

    def _contains(self, key: str) -> bool:
        return key in self._values or key in self._hashes

    def _remove(self, key: str) -> bool:
        self._expiry.pop(key, None)
        found = self._values.pop(key, None) is not None
        return self._hashes.pop(key, None) is not None or found

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, deadline in self._expiry.items() if deadline <= now]:
            self._remove(key)


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise TerminalError("ERR value is not an integer or out of range") from exc
    if value <= 0:
        raise TerminalError("ERR invalid expire time in 'set' command")
    return value


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a Redis glob (``*``, ``?``, ``[..]``, ``\\`` escapes) to a regex."""
    out: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            out.append(".*")
        elif char == "?":
            out.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("".join(out), re.DOTALL)
