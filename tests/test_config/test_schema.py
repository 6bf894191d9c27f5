"""Tests for the resolved settings model."""

import pytest
from pydantic import ValidationError

from marketcache.config.schema import CacheSettings


def _settings(**kwargs) -> CacheSettings:
    return CacheSettings(url="https://cache.example.test", token="secret", **kwargs)


class TestCacheEnabled:
    def test_enabled_with_credentials(self):
        assert _settings().cache_enabled

    def test_disabled_without_url(self):
        assert not CacheSettings(token="secret").cache_enabled

    def test_disabled_without_token(self):
        assert not CacheSettings(url="https://cache.example.test").cache_enabled

    def test_disabled_flag(self):
        assert not _settings(cache_disabled=True).cache_enabled

    def test_test_environment(self):
        assert not _settings(environment="test").cache_enabled
        assert not _settings(environment="TEST").cache_enabled

    def test_other_environments(self):
        assert _settings(environment="production").cache_enabled


class TestToCacheConfig:
    def test_carries_prefix_and_ttl(self):
        config = _settings(key_prefix="svc:", default_ttl_seconds=60).to_cache_config()
        assert config.key_prefix == "svc:"
        assert config.default_ttl_seconds == 60
        assert config.enabled

    def test_warns_when_credentials_missing(self, caplog):
        with caplog.at_level("WARNING"):
            config = CacheSettings().to_cache_config()
        assert not config.enabled
        assert "caching is disabled" in caplog.text

    def test_no_warning_when_explicitly_disabled(self, caplog):
        with caplog.at_level("WARNING"):
            CacheSettings(cache_disabled=True).to_cache_config()
        assert "caching is disabled" not in caplog.text


class TestValidation:
    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            CacheSettings(default_ttl_seconds=0)

    def test_retry_attempts_at_least_one(self):
        with pytest.raises(ValidationError):
            CacheSettings(retry_attempts=0)

    def test_frozen(self):
        settings = CacheSettings()
        with pytest.raises(ValidationError):
            settings.key_prefix = "other:"
