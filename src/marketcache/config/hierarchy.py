"""Resolve cache settings from layered sources.

Each layer overrides the ones before it:

- package defaults
- ``~/.marketcache/config.yaml``
- the nearest ``marketcache.yaml`` at or above the working directory
- ``UPSTASH_REDIS_REST_*`` and ``MARKETCACHE_*`` environment variables
- keyword arguments passed by the caller

Values are merged as-is; ``CacheSettings`` validates and converts them, so
an environment string such as ``"120"`` or ``"off"`` becomes an int or bool
there and a malformed one raises ``pydantic.ValidationError``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from marketcache.config.defaults import get_defaults
from marketcache.config.schema import CacheSettings

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".marketcache" / "config.yaml"
_PROJECT_CONFIG_NAME = "marketcache.yaml"

_ENV_SETTINGS: dict[str, str] = {
    "UPSTASH_REDIS_REST_URL": "url",
    "UPSTASH_REDIS_REST_TOKEN": "token",
    "MARKETCACHE_DEFAULT_TTL": "default_ttl_seconds",
    "MARKETCACHE_KEY_PREFIX": "key_prefix",
    "MARKETCACHE_DISABLED": "cache_disabled",
    "MARKETCACHE_ENV": "environment",
    "MARKETCACHE_TIMEOUT": "timeout_seconds",
    "MARKETCACHE_RETRY_ATTEMPTS": "retry_attempts",
    "MARKETCACHE_LOG_LEVEL": "log_level",
}


def load_config_hierarchy(**runtime_overrides: Any) -> dict[str, Any]:
    """Merge every layer into one flat dict; ``None`` overrides are skipped."""
    merged = get_defaults()
    project_path = _project_config_path()
    for path in (_GLOBAL_CONFIG_PATH, project_path):
        if path is not None:
            merged.update(_read_yaml(path))
    merged.update(
        {setting: os.environ[name] for name, setting in _ENV_SETTINGS.items() if name in os.environ}
    )
    merged.update({key: value for key, value in runtime_overrides.items() if value is not None})
    return merged


def load_settings(**runtime_overrides: Any) -> CacheSettings:
    """Resolve the hierarchy into validated ``CacheSettings``."""
    return CacheSettings.model_validate(load_config_hierarchy(**runtime_overrides))


def _read_yaml(path: Path) -> dict[str, Any]:
    """Settings from one YAML file, empty when it is absent or unusable.

    Settings may sit at the top level or under a ``cache:`` mapping.
    """
    if not path.is_file():
        return {}
    try:
        document = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Skipping config %s: %s", path, exc)
        return {}
    if not isinstance(document, dict):
        logger.warning("Skipping config %s: top level is not a mapping", path)
        return {}
    section = document.get("cache")
    return section if isinstance(section, dict) else document


def _project_config_path() -> Path | None:
    here = Path.cwd()
    for directory in (here, *here.parents):
        candidate = directory / _PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
    return None
