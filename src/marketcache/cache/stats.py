"""Cache metrics and health models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CacheMetrics(BaseModel):
    """Aggregate counters for one store instance."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    operations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def record_hit(self) -> None:
        self.hits += 1
        self.operations += 1

    def record_miss(self) -> None:
        self.misses += 1
        self.operations += 1

    def record_error(self) -> None:
        self.errors += 1
        self.operations += 1

    def record_write(self) -> None:
        self.operations += 1


class HealthStatus(BaseModel):
    """Readiness of the cache layer and a concise detail string."""

    healthy: bool
    enabled: bool
    detail: str
    metrics: CacheMetrics = Field(default_factory=CacheMetrics)
    config: dict[str, Any] = Field(default_factory=dict)
