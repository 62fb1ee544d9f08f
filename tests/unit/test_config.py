"""
Unit tests for configuration loading.
"""

import json

import pytest

from offline_sync.utils.config import (
    ConfigLoader,
    SyncConfig,
    load_config,
)
from offline_sync.utils.errors import ConfigurationError


class TestSyncConfigDefaults:
    """Test default configuration values."""

    def test_defaults(self):
        config = SyncConfig()

        assert config.reconnect.max_attempts == 5
        assert config.reconnect.base_delay == 1.0
        assert config.consumer.record_types == []
        assert config.drainer.superseded_policy == "discard"
        assert config.cache.path.is_absolute()
        assert config.logging.level == "INFO"

    def test_record_types_from_string(self):
        config = SyncConfig(consumer={"record_types": "recipe, collection"})
        assert config.consumer.record_types == ["recipe", "collection"]

    def test_log_level_normalized(self):
        config = SyncConfig(logging={"level": "debug"})
        assert config.logging.level == "DEBUG"


class TestConfigLoader:
    """Test ConfigLoader sources and merging."""

    def test_yaml_source(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("reconnect:\n  max_attempts: 2\n  base_delay: 0.5\n")

        loader = ConfigLoader()
        loader.add_source(path)
        config = loader.load()

        assert config.reconnect.max_attempts == 2
        assert config.reconnect.base_delay == 0.5
        assert loader.get_config() is config

    def test_higher_priority_wins(self, temp_dir):
        low = temp_dir / "low.json"
        low.write_text(json.dumps({"reconnect": {"max_attempts": 2, "max_delay": 10}}))
        high = temp_dir / "high.toml"
        high.write_text("[reconnect]\nmax_attempts = 9\n")

        loader = ConfigLoader()
        loader.add_source(high, priority=20)
        loader.add_source(low, priority=10)
        config = loader.load()

        assert config.reconnect.max_attempts == 9
        assert config.reconnect.max_delay == 10

    def test_env_overrides_files(self, temp_dir, monkeypatch):
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"reconnect": {"max_attempts": 2}}))
        monkeypatch.setenv("OFFLINE_SYNC_RECONNECT__MAX_ATTEMPTS", "7")
        monkeypatch.setenv("OFFLINE_SYNC_CONSUMER__RECORD_TYPES", "recipe,collection")
        monkeypatch.setenv("OFFLINE_SYNC_DRAINER__SUPERSEDED_POLICY", "keep")

        config = load_config(config_paths=[path], use_default_paths=False)

        assert config.reconnect.max_attempts == 7
        assert config.consumer.record_types == ["recipe", "collection"]
        assert config.drainer.superseded_policy == "keep"

    def test_env_boolean_conversion(self, monkeypatch):
        monkeypatch.setenv("OFFLINE_SYNC_CONSUMER__RETRY_FAILED_OPERATIONS", "off")

        config = load_config(use_default_paths=False)

        assert config.consumer.retry_failed_operations is False

    def test_extra_config(self):
        config = load_config(
            extra_config={"drainer": {"superseded_policy": "keep"}},
            use_default_paths=False
        )
        assert config.drainer.superseded_policy == "keep"

    def test_missing_file_ignored(self, temp_dir):
        config = load_config(config_paths=[temp_dir / "absent.yaml"], use_default_paths=False)
        assert config.reconnect.max_attempts == 5

    def test_validation_error(self):
        loader = ConfigLoader()
        loader.add_source({"drainer": {"superseded_policy": "sometimes"}})

        with pytest.raises(ConfigurationError) as exc_info:
            loader.load()

        assert "drainer.superseded_policy" in str(exc_info.value)

    def test_unknown_file_type(self, temp_dir):
        with pytest.raises(ConfigurationError):
            ConfigLoader().add_source(temp_dir / "config.ini")

    def test_malformed_file(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text("{not json")

        loader = ConfigLoader()
        loader.add_source(path)

        with pytest.raises(ConfigurationError):
            loader.load()

    def test_get_config_before_load(self):
        with pytest.raises(ConfigurationError):
            ConfigLoader().get_config()
