from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import duckdb
import pytest
from loguru import logger
from typer.testing import CliRunner

from tickersync.cli import sync as sync_module
from tickersync.cli.main import create_app
from tickersync.core.data.storage import HistoricalStore
from tickersync.core.data.tickers import create_filtered_tickers, load_tickers_csv
from tickersync.core.exceptions import FetchFailed
from tickersync.core.models import FetchResult, HistoricalRecord

END = date(2023, 6, 5)

CSV_TEXT = """ticker,exchange,assetType,priceCurrency,startDate,endDate
AAPL,NASDAQ,Stock,USD,2023-06-01,2023-06-05
MSFT,NASDAQ,Stock,USD,2023-05-01,2023-06-05
SPY,NYSE ARCA,ETF,USD,2023-05-01,2023-06-05
"""


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger.remove()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "tickersync.toml"
    path.write_text('[logging]\nlevel = "CRITICAL"\nserialize = false\n', encoding="utf-8")
    return path


@pytest.fixture
def database(tmp_path: Path) -> Path:
    path = tmp_path / "prices.duckdb"
    csv_path = tmp_path / "supported_tickers.csv"
    csv_path.write_text(CSV_TEXT, encoding="utf-8")
    conn = duckdb.connect(str(path))
    try:
        load_tickers_csv(conn, csv_path)
        create_filtered_tickers(conn)
        store = HistoricalStore(conn)
        store.upsert_bulk("SPY", [HistoricalRecord(date=END, close=420.0)])
        store.upsert_bulk("MSFT", [HistoricalRecord(date=date(2023, 6, 1), close=330.0)])
    finally:
        conn.close()
    return path


@pytest.fixture
def stub_client(monkeypatch: pytest.MonkeyPatch, stub_client_factory):
    client = stub_client_factory()
    monkeypatch.setattr(sync_module, "resolve_api_key", lambda config: "token")
    monkeypatch.setattr(sync_module, "get_fetch_client", lambda api_key, config: client)
    return client


def _invoke(config_file: Path, output: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(
        create_app(),
        ["--config", str(config_file), "--format", "jsonl", "--output", str(output), *args],
    )


def _rows(output: Path) -> list[dict]:
    return [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_sync_reports_updated_and_missing(config_file, database, stub_client, tmp_path) -> None:
    output = tmp_path / "out.jsonl"

    result = _invoke(config_file, output, "sync", "--db", str(database), "--symbols", "MSFT,AAPL")

    assert result.exit_code == 0, result.output
    rows = _rows(output)
    assert [(row["symbol"], row["status"], row["outcome"]) for row in rows] == [
        ("AAPL", "missing", "missing_added"),
        ("MSFT", "updated", "updated"),
    ]
    assert rows[1]["start"] == "2023-06-02"
    assert rows[1]["end"] == "2023-06-05"
    assert "updated=1 missing=1 errored=0" in result.output
    assert sorted(stub_client.symbols_called()) == ["AAPL", "MSFT"]


def test_sync_skip_missing_and_asset_type(config_file, database, stub_client, tmp_path) -> None:
    output = tmp_path / "out.jsonl"

    result = _invoke(
        config_file, output, "sync", "--db", str(database), "--asset-type", "stock", "--skip-missing", "--sequential"
    )

    assert result.exit_code == 0, result.output
    assert stub_client.symbols_called() == ["MSFT"]
    outcomes = {row["symbol"]: row["outcome"] for row in _rows(output)}
    assert outcomes == {"AAPL": "missing_skipped", "MSFT": "updated"}


def test_sync_lists_failed_tickers_without_failing_the_run(
    config_file, database, stub_client, tmp_path
) -> None:
    stub_client.responses["MSFT"] = FetchResult.failed(FetchFailed("HTTP 404 for MSFT", "MSFT", status_code=404))
    output = tmp_path / "out.jsonl"

    result = _invoke(config_file, output, "sync", "--db", str(database), "--symbols", "MSFT")

    assert result.exit_code == 0, result.output
    row = _rows(output)[0]
    assert row["status"] == "error"
    assert row["error"] == "HTTP 404 for MSFT"
    assert "errored=1" in result.output


def test_sync_rejects_unknown_asset_type(config_file, database, stub_client, tmp_path) -> None:
    result = _invoke(config_file, tmp_path / "out.jsonl", "sync", "--db", str(database), "--asset-type", "bond")

    assert result.exit_code == 2
    assert stub_client.calls == []


def test_sync_without_ticker_universe_is_a_storage_error(config_file, stub_client, tmp_path) -> None:
    result = _invoke(config_file, tmp_path / "out.jsonl", "sync", "--db", str(tmp_path / "empty.duckdb"))

    assert result.exit_code == 3
    assert "STORAGE_ERROR" in result.output


def test_sync_without_api_key_is_a_configuration_error(
    config_file, database, tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TIINGO_API_KEY", raising=False)

    result = _invoke(config_file, tmp_path / "out.jsonl", "sync", "--db", str(database))

    assert result.exit_code == 2
    assert "CONFIGURATION_ERROR" in result.output


def test_invalid_config_file_exits_with_validation_code(database, stub_client, tmp_path) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("[sync\nbatch_size = ", encoding="utf-8")

    result = _invoke(broken, tmp_path / "out.jsonl", "sync", "--db", str(database))

    assert result.exit_code == 2
    assert stub_client.calls == []


def test_splits_refetches_split_tickers(config_file, database, stub_client, tmp_path) -> None:
    conn = duckdb.connect(str(database))
    try:
        HistoricalStore(conn).upsert_bulk("AAPL", [HistoricalRecord(date=END, close=180.0, split_factor=4.0)])
    finally:
        conn.close()
    output = tmp_path / "out.jsonl"

    result = _invoke(config_file, output, "splits", "--db", str(database))

    assert result.exit_code == 0, result.output
    assert stub_client.calls == [("AAPL", date(2023, 6, 1), END)]
    assert [(row["symbol"], row["status"], row["rows"]) for row in _rows(output)] == [("AAPL", "updated", 5)]


def test_add_backfills_one_ticker(config_file, database, stub_client, tmp_path) -> None:
    stub_client.metadata["TSLA"] = {"startDate": "2023-06-01", "endDate": "2023-06-02"}
    output = tmp_path / "out.jsonl"

    result = _invoke(config_file, output, "add", "tsla", "--db", str(database))

    assert result.exit_code == 0, result.output
    assert _rows(output) == [
        {
            "symbol": "TSLA",
            "status": "missing",
            "outcome": "missing_added",
            "rows": 2,
            "start": "2023-06-01",
            "end": "2023-06-02",
            "error": None,
        }
    ]


def test_add_unknown_ticker_exits_non_zero(config_file, database, stub_client, tmp_path) -> None:
    output = tmp_path / "out.jsonl"

    result = _invoke(config_file, output, "add", "NOPE", "--db", str(database))

    assert result.exit_code == 1
    assert _rows(output)[0]["status"] == "error"


class _FundamentalsClient:
    def __init__(self, rows: list[dict] | Exception) -> None:
        self.rows = rows
        self.calls: list[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def fetch_daily_fundamentals(self, symbol, start_date=None, end_date=None):
        self.calls.append((symbol, start_date, end_date))
        if isinstance(self.rows, Exception):
            raise self.rows
        return self.rows


def test_fundamentals_prints_rows(config_file, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FundamentalsClient([{"date": "2023-06-02T00:00:00.000Z", "marketCap": 2.6e12, "peRatio": 34.5}])
    monkeypatch.setattr(sync_module, "resolve_api_key", lambda config: "token")
    monkeypatch.setattr(sync_module, "get_fetch_client", lambda api_key, config: client)
    output = tmp_path / "fundamentals.jsonl"

    result = _invoke(config_file, output, "fundamentals", "msft", "--start", "2023-06-01", "--end", "2023-06-05")

    assert result.exit_code == 0, result.output
    assert client.calls == [("MSFT", date(2023, 6, 1), END)]
    assert _rows(output) == [{"date": "2023-06-02T00:00:00.000Z", "marketCap": 2.6e12, "peRatio": 34.5}]


def test_fundamentals_failure_is_reported(config_file, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FundamentalsClient(FetchFailed("HTTP 404 for NOPE", "NOPE", status_code=404))
    monkeypatch.setattr(sync_module, "resolve_api_key", lambda config: "token")
    monkeypatch.setattr(sync_module, "get_fetch_client", lambda api_key, config: client)

    result = _invoke(config_file, tmp_path / "fundamentals.jsonl", "fundamentals", "NOPE")

    assert result.exit_code == 1
    assert "FETCH_FAILED" in result.output
    assert client.calls == [("NOPE", None, None)]
