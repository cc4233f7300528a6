"""Tests for SyncService run dispatch, split updates and single-ticker adds."""

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from tickersync.core.client import FetchClient
from tickersync.core.config.settings import ApiConfig, TickerSyncConfig
from tickersync.core.exceptions import ReferenceCalendarError, StorageError
from tickersync.core.models import FetchResult, HistoricalRecord, OutcomeKind, Ticker
from tickersync.core.services import SyncService

END = date(2023, 6, 5)


def _ticker(symbol: str, start: date = date(2023, 6, 1)) -> Ticker:
    return Ticker(symbol, "NASDAQ", "Stock", start, date(2023, 12, 31))


@pytest.fixture
def seeded_store(store):
    store.upsert_bulk("SPY", [HistoricalRecord(date=END, close=420.0)])
    store.upsert_bulk("MSFT", [HistoricalRecord(date=date(2023, 6, 1), close=330.0)])
    return store


@pytest.mark.asyncio
async def test_run_uses_reference_ticker_end_date(seeded_store, stub_client_factory) -> None:
    client = stub_client_factory()
    service = SyncService(store=seeded_store, client=client)

    result = await service.run([_ticker("MSFT")])

    assert client.calls == [("MSFT", date(2023, 6, 2), END)]
    assert result.updated == {"MSFT"}


@pytest.mark.asyncio
async def test_run_takes_defaults_from_config(seeded_store, stub_client_factory) -> None:
    config = TickerSyncConfig()
    config.sync.add_missing = False
    client = stub_client_factory()
    service = SyncService(config, store=seeded_store, client=client)

    result = await service.run([_ticker("MSFT"), _ticker("AAPL")])

    assert client.symbols_called() == ["MSFT"]
    assert result.outcome_for("AAPL").kind is OutcomeKind.MISSING_SKIPPED


@pytest.mark.asyncio
async def test_sequential_flag_selects_sequential_engine(seeded_store, stub_client_factory) -> None:
    client = stub_client_factory(delay=0.01)
    service = SyncService(store=seeded_store, client=client)

    result = await service.run(
        [_ticker("MSFT"), _ticker("AAPL"), _ticker("TSLA")],
        sequential=True,
        concurrency_limit=8,
    )

    assert client.max_in_flight == 1
    assert result.public() == ({"MSFT"}, {"AAPL", "TSLA"})


@pytest.mark.asyncio
async def test_request_stop_reaches_the_sequential_engine(seeded_store, stub_client_factory) -> None:
    service: SyncService

    def stop_after_fetch(start: date, end: date) -> FetchResult:
        service.request_stop()
        return FetchResult.success((HistoricalRecord(date=end, close=2.0),))

    client = stub_client_factory({"A": stop_after_fetch})
    service = SyncService(store=seeded_store, client=client)

    result = await service.run([_ticker("A"), _ticker("B"), _ticker("C")], batch_size=1, sequential=True)

    assert result.stopped
    assert result.pending == ["B", "C"]
    assert client.symbols_called() == ["A"]


@pytest.mark.asyncio
async def test_reference_calendar_failure_propagates(stub_client_factory) -> None:
    class BrokenStore:
        def latest_date(self, symbol):
            raise StorageError("database is gone")

    service = SyncService(store=BrokenStore(), client=stub_client_factory())

    with pytest.raises(ReferenceCalendarError):
        await service.run([_ticker("MSFT")])


@pytest.mark.asyncio
async def test_transient_failure_then_success_reports_updated(seeded_store) -> None:
    attempts: list[int] = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(429)
        body = [{"date": "2023-06-02T00:00:00.000Z", "close": 331.0, "volume": 10}]
        return httpx.Response(200, content=json.dumps(body), headers={"Content-Type": "application/json"})

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = FetchClient("token", ApiConfig(base_url="https://api.test/daily"), http_client=http, sleep=fake_sleep)
        service = SyncService(store=seeded_store, client=client)
        result = await service.run([_ticker("MSFT")])

    assert result.updated == {"MSFT"}
    assert len(attempts) == 2
    assert sleeps == [1.0]
    assert seeded_store.latest_date("MSFT") == date(2023, 6, 2)


@pytest.mark.asyncio
async def test_split_tickers_are_refetched_in_full(seeded_store, stub_client_factory) -> None:
    seeded_store.upsert_bulk("AAPL", [HistoricalRecord(date=END, close=180.0, split_factor=4.0)])
    seeded_store.upsert_bulk("GHOST", [HistoricalRecord(date=END, close=1.0, split_factor=2.0)])
    client = stub_client_factory()
    service = SyncService(store=seeded_store, client=client)

    result = await service.update_split_tickers([_ticker("AAPL"), _ticker("MSFT")])

    assert client.calls == [("AAPL", date(2023, 6, 1), END)]
    assert result.updated == {"AAPL"}
    assert result.outcome_for("AAPL").rows_written == 5
    assert seeded_store.row_count("AAPL") == 5
    assert seeded_store.fetch_rows("AAPL")[-1][-1] == 1.0


@pytest.mark.asyncio
async def test_split_update_without_entities(seeded_store, stub_client_factory) -> None:
    client = stub_client_factory()

    result = await SyncService(store=seeded_store, client=client).update_split_tickers([])

    assert result.outcomes == []
    assert client.calls == []


@pytest.mark.asyncio
async def test_add_ticker_backfills_from_metadata(store, stub_client_factory) -> None:
    client = stub_client_factory()
    client.metadata["TSLA"] = {
        "ticker": "tsla",
        "startDate": "2023-06-01",
        "endDate": "2023-06-03",
        "exchangeCode": "NASDAQ",
    }

    outcome = await SyncService(store=store, client=client).add_ticker("TSLA")

    assert outcome.kind is OutcomeKind.MISSING_ADDED
    assert outcome.rows_written == 3
    assert client.calls == [("TSLA", date(2023, 6, 1), date(2023, 6, 3))]


@pytest.mark.asyncio
@pytest.mark.parametrize("metadata", [None, {"startDate": None, "endDate": "2023-06-03"}])
async def test_add_ticker_reports_metadata_errors(store, stub_client_factory, metadata) -> None:
    client = stub_client_factory()
    if metadata is not None:
        client.metadata["TSLA"] = metadata

    outcome = await SyncService(store=store, client=client).add_ticker("TSLA")

    assert outcome.kind is OutcomeKind.ERROR
    assert outcome.error is not None
    assert client.calls == []
    assert store.row_count("TSLA") == 0
