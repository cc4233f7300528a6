"""Tests for configuration loading."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from tickersync.core.config import (
    ConfigManager,
    SyncConfig,
    TickerSyncConfig,
    get_api_key,
    load_config_from_env,
)
from tickersync.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TICKERSYNC_CONFIG_PATH",
        "TICKERSYNC_BATCH_SIZE",
        "TICKERSYNC_CONCURRENCY",
        "TICKERSYNC_DB_PATH",
        "TICKERSYNC_SUPPORTED_EXCHANGES",
        "TICKERSYNC_API_MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)


class TestTickerSyncConfig:
    def test_defaults(self) -> None:
        config = TickerSyncConfig()

        assert config.sync == SyncConfig()
        assert config.sync.batch_size == 50
        assert config.sync.concurrency_limit == 10
        assert config.sync.add_missing is True
        assert config.sync.reference_ticker == "SPY"
        assert config.api.max_retries == 3
        assert "NYSE ARCA" in config.filtering.supported_exchanges
        assert config.filtering.supported_asset_types == ["Stock", "ETF"]

    def test_round_trip_through_dict(self) -> None:
        config = TickerSyncConfig.from_dict({"sync": {"batch_size": 5}, "storage": {"duckdb_path": "x.duckdb"}})

        assert config.sync.batch_size == 5
        assert TickerSyncConfig.from_dict(config.to_dict()) == config

    def test_unknown_key_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            TickerSyncConfig.from_dict({"sync": {"bogus": 1}})


class TestConfigManager:
    def test_loads_toml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "tickersync.toml"
        path.write_text('[sync]\nbatch_size = 7\n\n[storage]\nduckdb_path = "prices.duckdb"\n', encoding="utf-8")

        config = ConfigManager(path).get_config()

        assert config.sync.batch_size == 7
        assert config.storage.duckdb_path == "prices.duckdb"

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "tickersync.toml"
        path.write_text("[sync]\nbatch_size = 7\n", encoding="utf-8")
        monkeypatch.setenv("TICKERSYNC_BATCH_SIZE", "9")

        config = ConfigManager(path).get_config()

        assert config.sync.batch_size == 9

    def test_invalid_toml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.toml"
        path.write_text("[sync\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager(path)

    def test_update_config(self, tmp_path: Path) -> None:
        manager = ConfigManager(tmp_path / "missing.toml")
        manager.update_config(sync={"concurrency_limit": 2})

        assert manager.get_config().sync.concurrency_limit == 2


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TICKERSYNC_CONCURRENCY", "4")
    monkeypatch.setenv("TICKERSYNC_SUPPORTED_EXCHANGES", "NYSE, NASDAQ")
    monkeypatch.setenv("TICKERSYNC_API_MAX_RETRIES", "not-a-number")

    overrides = load_config_from_env()

    assert overrides["sync"] == {"concurrency_limit": 4}
    assert overrides["filtering"] == {"supported_exchanges": ["NYSE", "NASDAQ"]}
    assert "api" not in overrides


def test_get_api_key_reads_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TICKERSYNC_TEST_KEY", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("TICKERSYNC_TEST_KEY=secret-token\n", encoding="utf-8")

    try:
        assert get_api_key("TICKERSYNC_TEST_KEY", env_file) == "secret-token"
    finally:
        os.environ.pop("TICKERSYNC_TEST_KEY", None)


def test_get_api_key_missing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("TICKERSYNC_ABSENT_KEY", raising=False)

    with pytest.raises(ConfigurationError) as excinfo:
        get_api_key("TICKERSYNC_ABSENT_KEY", tmp_path / ".env")

    assert excinfo.value.key == "TICKERSYNC_ABSENT_KEY"
