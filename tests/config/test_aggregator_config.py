"""
Tests for aggregator configuration loading and validation.
"""

import pytest
import yaml

from cryptovix.config.aggregator_config import (
    AggregatorConfig,
    load_aggregator_config,
    merge_config_with_env,
)


@pytest.fixture
def config_file(tmp_path):
    """Write a config file and return its path."""
    def write(data):
        path = tmp_path / "cryptovix.yaml"
        path.write_text(yaml.safe_dump(data))
        return path
    return write


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep CRYPTOVIX_* variables from the host out of these tests."""
    import os
    for key in list(os.environ):
        if key.startswith("CRYPTOVIX_"):
            monkeypatch.delenv(key)


class TestAggregatorConfig:
    """Test config defaults and validation."""

    def test_defaults_are_valid(self):
        config = AggregatorConfig()

        assert config.validate() == []
        assert config.base_asset == "BTC"
        assert config.snapshot_interval == 300
        assert config.weights == {"deribit": 0.6, "bybit": 0.4}
        assert config.bybit.instruments_ttl == 1800
        assert config.storage.table_path == "data/lake/vix_readings"

    def test_from_dict(self):
        config = AggregatorConfig.from_dict({
            "base_asset": "btc",
            "snapshot_interval": 600,
            "deribit": {"weight": 0.5},
            "bybit": {"weight": 0.5, "instruments_ttl": 900},
            "http": {"timeout": 5},
            "storage": {"enabled": False},
            "logging": {"level": "debug", "file": None},
        })

        assert config.base_asset == "BTC"
        assert config.snapshot_interval == 600
        assert config.weights == {"deribit": 0.5, "bybit": 0.5}
        assert config.bybit.instruments_ttl == 900
        assert config.bybit.base_url == "https://api.bybit.com/v5/market"
        assert config.http.timeout == 5.0
        assert config.storage.enabled is False
        assert config.logging.level == "DEBUG"
        assert config.logging.file is None

    def test_empty_sections_use_defaults(self):
        config = AggregatorConfig.from_dict({"deribit": None, "bybit": None})
        assert config.weights == {"deribit": 0.6, "bybit": 0.4}

    def test_validate_reports_every_problem(self):
        config = AggregatorConfig.from_dict({
            "base_asset": "ETH",
            "snapshot_interval": 10,
            "deribit": {"weight": 0.7},
            "http": {"timeout": 0},
            "logging": {"level": "LOUD"},
        })

        errors = config.validate()

        assert len(errors) == 5
        assert any("base_asset" in e for e in errors)
        assert any("snapshot_interval" in e for e in errors)
        assert any("sum to 1" in e for e in errors)
        assert any("http.timeout" in e for e in errors)
        assert any("logging.level" in e for e in errors)

    def test_get_log_config(self):
        log_config = AggregatorConfig().get_log_config()

        assert log_config["rotation"] == "10 MB"
        assert log_config["retention"] == "14 days"
        assert log_config["level"] == "INFO"
        assert "format" in log_config


class TestLoadAggregatorConfig:
    """Test YAML loading and env overrides."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_aggregator_config(str(tmp_path / "missing.yaml"))
        assert config == AggregatorConfig()

    def test_loads_yaml(self, config_file):
        path = config_file({"snapshot_interval": 120, "bybit": {"page_limit": 200}})

        config = load_aggregator_config(str(path))

        assert config.snapshot_interval == 120
        assert config.bybit.page_limit == 200

    def test_invalid_values_raise(self, config_file):
        path = config_file({"snapshot_interval": 5})

        with pytest.raises(ValueError, match="snapshot_interval"):
            load_aggregator_config(str(path))

    def test_non_numeric_value_raises(self, config_file):
        path = config_file({"snapshot_interval": "often"})

        with pytest.raises(ValueError):
            load_aggregator_config(str(path))

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("snapshot_interval: [300\n")

        with pytest.raises(ValueError, match="YAML"):
            load_aggregator_config(str(path))

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError, match="mapping"):
            load_aggregator_config(str(path))

    def test_env_overrides_file(self, config_file, monkeypatch):
        path = config_file({"snapshot_interval": 120, "storage": {"enabled": True}})
        monkeypatch.setenv("CRYPTOVIX_SNAPSHOT_INTERVAL", "900")
        monkeypatch.setenv("CRYPTOVIX_STORAGE_ENABLED", "false")
        monkeypatch.setenv("CRYPTOVIX_LOG_LEVEL", "debug")

        config = load_aggregator_config(str(path))

        assert config.snapshot_interval == 900
        assert config.storage.enabled is False
        assert config.logging.level == "DEBUG"


class TestMergeConfigWithEnv:
    """Test env merge on raw config data."""

    def test_creates_missing_sections(self, monkeypatch):
        monkeypatch.setenv("CRYPTOVIX_TABLE_PATH", "/tmp/readings")

        merged = merge_config_with_env({})

        assert merged == {"storage": {"table_path": "/tmp/readings"}}

    def test_no_env_leaves_data_untouched(self):
        data = {"snapshot_interval": 300}
        assert merge_config_with_env(data) == {"snapshot_interval": 300}
