"""Tests for config hierarchy."""

import pytest
from pydantic import ValidationError

from marketcache.config import hierarchy
from marketcache.config.hierarchy import _read_yaml, load_config_hierarchy, load_settings


@pytest.fixture(autouse=True)
def _in_project_dir(project_dir):
    return project_dir


class TestLoadConfigHierarchy:
    def test_returns_defaults(self):
        config = load_config_hierarchy()
        assert config["key_prefix"] == "app:"
        assert config["default_ttl_seconds"] == 3600

    def test_runtime_overrides(self):
        config = load_config_hierarchy(key_prefix="svc:", default_ttl_seconds=60)
        assert config["key_prefix"] == "svc:"
        assert config["default_ttl_seconds"] == 60

    def test_none_overrides_ignored(self):
        config = load_config_hierarchy(key_prefix=None)
        assert config["key_prefix"] == "app:"  # Default preserved

    def test_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://cache.example.test")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "secret")
        config = load_config_hierarchy()
        assert config["url"] == "https://cache.example.test"
        assert config["token"] == "secret"

    def test_runtime_beats_env(self, monkeypatch):
        monkeypatch.setenv("MARKETCACHE_KEY_PREFIX", "env:")
        config = load_config_hierarchy(key_prefix="cli:")
        assert config["key_prefix"] == "cli:"  # Runtime wins

    def test_env_values_kept_as_strings(self, monkeypatch):
        monkeypatch.setenv("MARKETCACHE_DEFAULT_TTL", "120")
        assert load_config_hierarchy()["default_ttl_seconds"] == "120"

    def test_project_config(self, project_dir):
        (project_dir / "marketcache.yaml").write_text("key_prefix: 'proj:'\ndefault_ttl_seconds: 900\n")
        config = load_config_hierarchy()
        assert config["key_prefix"] == "proj:"
        assert config["default_ttl_seconds"] == 900

    def test_project_config_found_from_subdirectory(self, project_dir, monkeypatch):
        (project_dir / "marketcache.yaml").write_text("key_prefix: 'proj:'\n")
        nested = project_dir / "services" / "api"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert load_config_hierarchy()["key_prefix"] == "proj:"

    def test_global_config(self, tmp_path, monkeypatch):
        path = tmp_path / "home" / "config.yaml"
        path.parent.mkdir()
        path.write_text("key_prefix: 'global:'\nretry_attempts: 3\n")
        monkeypatch.setattr(hierarchy, "_GLOBAL_CONFIG_PATH", path)
        config = load_config_hierarchy()
        assert config["key_prefix"] == "global:"
        assert config["retry_attempts"] == 3

    def test_project_beats_global(self, tmp_path, project_dir, monkeypatch):
        path = tmp_path / "home" / "config.yaml"
        path.parent.mkdir()
        path.write_text("key_prefix: 'global:'\n")
        monkeypatch.setattr(hierarchy, "_GLOBAL_CONFIG_PATH", path)
        (project_dir / "marketcache.yaml").write_text("key_prefix: 'proj:'\n")
        assert load_config_hierarchy()["key_prefix"] == "proj:"

    def test_env_beats_project(self, project_dir, monkeypatch):
        (project_dir / "marketcache.yaml").write_text("key_prefix: 'proj:'\n")
        monkeypatch.setenv("MARKETCACHE_KEY_PREFIX", "env:")
        assert load_config_hierarchy()["key_prefix"] == "env:"


class TestLoadSettings:
    def test_validated_settings(self, monkeypatch):
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://cache.example.test")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "secret")
        settings = load_settings()
        assert settings.has_credentials
        assert settings.cache_enabled

    def test_unknown_keys_ignored(self, project_dir):
        (project_dir / "marketcache.yaml").write_text("key_prefix: 'proj:'\nunrelated: 1\n")
        assert load_settings().key_prefix == "proj:"

    def test_env_numbers_converted(self, monkeypatch):
        monkeypatch.setenv("MARKETCACHE_DEFAULT_TTL", "120")
        monkeypatch.setenv("MARKETCACHE_TIMEOUT", "2.5")
        monkeypatch.setenv("MARKETCACHE_RETRY_ATTEMPTS", "3")
        settings = load_settings()
        assert settings.default_ttl_seconds == 120
        assert settings.timeout_seconds == 2.5
        assert settings.retry_attempts == 3

    @pytest.mark.parametrize("raw", ["1", "true", "YES", "on"])
    def test_env_disabled_truthy(self, monkeypatch, raw):
        monkeypatch.setenv("MARKETCACHE_DISABLED", raw)
        assert load_settings().cache_disabled is True

    @pytest.mark.parametrize("raw", ["0", "false", "off"])
    def test_env_disabled_falsy(self, monkeypatch, raw):
        monkeypatch.setenv("MARKETCACHE_DISABLED", raw)
        assert load_settings().cache_disabled is False

    def test_malformed_env_value_rejected(self, monkeypatch):
        monkeypatch.setenv("MARKETCACHE_DEFAULT_TTL", "soon")
        with pytest.raises(ValidationError):
            load_settings()

    def test_runtime_override_validated(self):
        with pytest.raises(ValidationError):
            load_settings(retry_attempts=0)


class TestReadYaml:
    def test_loads_valid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("key: value\n")
        result = _read_yaml(path)
        assert result == {"key": "value"}

    def test_nested_cache_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("cache:\n  key_prefix: 'nested:'\n")
        assert _read_yaml(path) == {"key_prefix": "nested:"}

    def test_empty_for_missing(self, tmp_path):
        assert _read_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_empty_for_non_mapping(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- item1\n- item2\n")
        assert _read_yaml(path) == {}

    def test_empty_for_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("key: [unclosed\n")
        assert _read_yaml(path) == {}

