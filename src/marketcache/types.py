"""Shared Pydantic models for marketcache."""

from __future__ import annotations

import time
from enum import IntEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

DISABLED_ERROR = "disabled"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ── Enums ──


class CacheTTL(IntEnum):
    SHORT = 300
    MEDIUM = 1800
    LONG = 3600
    VERY_LONG = 86400


# ── Config models ──


class CacheConfig(BaseModel):
    """Process-wide cache behaviour. Set once at startup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_ttl_seconds: int = Field(default=int(CacheTTL.LONG), gt=0)
    key_prefix: str = "app:"
    enabled: bool = True


# ── Result contract ──


class CacheResult(BaseModel, Generic[T]):
    """Uniform return value of every cache operation.

    Branch on ``success`` first, then on ``hit``. ``success`` is False only
    for transport or serialization failures and for a disabled cache; a
    plain miss is ``success=True, hit=False``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: T | None = None
    hit: bool | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> CacheResult[Any]:
        return cls(success=True, data=data)

    @classmethod
    def found(cls, data: Any) -> CacheResult[Any]:
        return cls(success=True, data=data, hit=True)

    @classmethod
    def miss(cls) -> CacheResult[Any]:
        return cls(success=True, hit=False)

    @classmethod
    def fail(cls, error: str) -> CacheResult[Any]:
        return cls(success=False, error=error)

    @classmethod
    def disabled(cls) -> CacheResult[Any]:
        return cls(success=False, error=DISABLED_ERROR)

    @property
    def is_hit(self) -> bool:
        return self.success and bool(self.hit)


# ── Cache envelopes ──
#
# Stored field names are camelCase so entries stay readable by every client
# sharing the backing store; models accept either spelling.


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cached_at: int = Field(default_factory=now_ms, alias="cachedAt")
    ttl_seconds: int = Field(default=int(CacheTTL.LONG), alias="ttl")

    def is_stale(self, at_ms: int | None = None) -> bool:
        current = now_ms() if at_ms is None else at_ms
        return (current - self.cached_at) / 1000 > self.ttl_seconds

    @property
    def expires_at(self) -> int:
        return self.cached_at + self.ttl_seconds * 1000


class GeospatialQuery(BaseModel):
    """A nearby-entities request; also the basis of its cache key."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius_km: float = Field(gt=0, alias="radiusKm")
    limit: int | None = Field(default=None, ge=1)
    filters: dict[str, Any] | None = None


class GeospatialCacheEntry(_Envelope):
    """Location snapshot of one entity."""

    data: Any = None
    latitude: float
    longitude: float


class GeoQueryCacheEntry(_Envelope):
    query: GeospatialQuery
    results: Any = None


class PayloadCacheEntry(_Envelope, Generic[T]):
    """One cached document of a collection."""

    collection: str
    id: str
    data: T


class QueryCacheEntry(_Envelope):
    collection: str
    query: dict[str, Any] = Field(default_factory=dict)
    results: Any = None


class NearbyMerchant(BaseModel):
    """A cached merchant location annotated with its distance to a center."""

    id: str
    latitude: float
    longitude: float
    distance: float
    data: Any = None
