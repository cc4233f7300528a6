from __future__ import annotations

from datetime import date
from pathlib import Path

import duckdb
import pytest

import tickersync
from tickersync.core.config.settings import TickerSyncConfig
from tickersync.core.data.storage import HistoricalStore
from tickersync.core.exceptions import ConfigurationError
from tickersync.core.models import HistoricalRecord

END = date(2023, 6, 5)

ENTITIES = [
    {"ticker": "MSFT", "assetType": "Stock", "startDate": "2023-05-01", "endDate": "2023-12-29"},
    {"ticker": "AAPL", "assetType": "Stock", "startDate": "2023-06-01", "endDate": "2023-12-29"},
]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "prices.duckdb"
    conn = duckdb.connect(str(path))
    try:
        store = HistoricalStore(conn)
        store.upsert_bulk("SPY", [HistoricalRecord(date=END, close=420.0)])
        store.upsert_bulk("MSFT", [HistoricalRecord(date=date(2023, 6, 1), close=330.0)])
    finally:
        conn.close()
    return path


@pytest.fixture
def stub_client(monkeypatch: pytest.MonkeyPatch, stub_client_factory):
    client = stub_client_factory()
    monkeypatch.setattr(tickersync, "FetchClient", lambda api_key, api_config: client)
    return client


def test_sync_returns_updated_and_missing(db_path, stub_client) -> None:
    updated, missing = tickersync.sync(ENTITIES, "token", db_path=db_path, concurrency_limit=2)

    assert updated == {"MSFT"}
    assert missing == {"AAPL"}
    assert ("MSFT", date(2023, 6, 2), END) in stub_client.calls


def test_sync_is_idempotent(db_path, stub_client) -> None:
    tickersync.sync(ENTITIES, "token", db_path=db_path)
    stub_client.calls.clear()

    assert tickersync.sync(ENTITIES, "token", db_path=db_path) == (set(), set())
    assert stub_client.calls == []


def test_sync_sequential_matches_concurrent(db_path, stub_client) -> None:
    assert tickersync.sync_sequential(ENTITIES, "token", db_path=db_path) == ({"MSFT"}, {"AAPL"})
    assert stub_client.max_in_flight == 1


def test_sync_honours_config_defaults(db_path, stub_client) -> None:
    config = TickerSyncConfig()
    config.sync.add_missing = False

    updated, missing = tickersync.sync(ENTITIES, "token", db_path=db_path, config=config)

    assert updated == {"MSFT"}
    assert missing == {"AAPL"}
    assert [symbol for symbol, _, _ in stub_client.calls] == ["MSFT"]


@pytest.mark.asyncio
async def test_sync_run_exposes_full_result(db_path, stub_client) -> None:
    result = await tickersync.sync_run(ENTITIES, "token", db_path=db_path)

    assert result.rows_written == 4 + 5
    assert not result.stopped


def test_sync_requires_an_api_key(db_path, stub_client, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TIINGO_API_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        tickersync.sync(ENTITIES, db_path=db_path)
