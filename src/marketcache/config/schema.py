"""Pydantic model for resolved cache settings."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from marketcache.config.defaults import (
    DEFAULT_ENVIRONMENT,
    DEFAULT_KEY_PREFIX,
    DEFAULT_LOG_LEVEL,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_TTL_SECONDS,
)
from marketcache.types import CacheConfig

logger = logging.getLogger(__name__)

TEST_ENVIRONMENT = "test"


class CacheSettings(BaseModel):
    """Everything needed to build a cache: endpoint, credentials and behaviour."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: str | None = None
    token: str | None = None
    default_ttl_seconds: int = Field(default=DEFAULT_TTL_SECONDS, gt=0)
    key_prefix: str = DEFAULT_KEY_PREFIX
    cache_disabled: bool = False
    environment: str = DEFAULT_ENVIRONMENT
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    retry_attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=1)
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def has_credentials(self) -> bool:
        return bool(self.url and self.token)

    @property
    def cache_enabled(self) -> bool:
        """Caching runs only when allowed, outside tests, with an endpoint."""
        if self.cache_disabled or self.environment.lower() == TEST_ENVIRONMENT:
            return False
        return self.has_credentials

    def to_cache_config(self) -> CacheConfig:
        if not self.cache_disabled and not self.has_credentials:
            logger.warning("Backing store URL or token not set, caching is disabled")
        return CacheConfig(
            default_ttl_seconds=self.default_ttl_seconds,
            key_prefix=self.key_prefix,
            enabled=self.cache_enabled,
        )
