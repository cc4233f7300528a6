"""Pytest configuration for the tickersync test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from datetime import date, timedelta

import duckdb
import pytest

from tickersync.core.data.storage import HistoricalStore
from tickersync.core.models.outcome import FetchResult
from tickersync.core.models.record import HistoricalRecord
from tickersync.core.models.ticker import Ticker


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--tickersync-run-integration",
        action="store_true",
        default=False,
        help="Run tickersync integration tests that require external services.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the integration marker."""

    config.addinivalue_line(
        "markers",
        "integration: marks tests requiring network or external services",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--tickersync-run-integration"):
        return

    skip_integration = pytest.mark.skip(
        reason="integration tests require --tickersync-run-integration",
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def daily_records(start: date, end: date, close: float = 100.0) -> tuple[HistoricalRecord, ...]:
    """One record per calendar day in ``[start, end]``."""

    records = []
    current = start
    while current <= end:
        records.append(HistoricalRecord(date=current, close=close, volume=1000, split_factor=1.0))
        current += timedelta(days=1)
    return tuple(records)


class StubPriceClient:
    """Fetch client double that serves canned results and records calls."""

    def __init__(
        self,
        responses: dict[str, Callable[[date, date], FetchResult] | FetchResult | Exception] | None = None,
        *,
        delay: float = 0.0,
    ) -> None:
        self.responses = responses or {}
        self.delay = delay
        self.calls: list[tuple[str, date, date]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.metadata: dict[str, dict[str, str]] = {}

    async def fetch(self, ticker: Ticker | str, start_date: date, end_date: date) -> FetchResult:
        symbol = ticker.symbol if isinstance(ticker, Ticker) else ticker
        self.calls.append((symbol, start_date, end_date))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(symbol)
            if response is None:
                return FetchResult.success(daily_records(start_date, end_date))
            if isinstance(response, Exception):
                raise response
            if isinstance(response, FetchResult):
                return response
            return response(start_date, end_date)
        finally:
            self.in_flight -= 1

    async def fetch_metadata(self, symbol: str) -> dict[str, str]:
        return self.metadata[symbol]

    async def __aenter__(self) -> StubPriceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    def symbols_called(self) -> list[str]:
        return [symbol for symbol, _, _ in self.calls]


@pytest.fixture
def conn() -> Iterator[duckdb.DuckDBPyConnection]:
    connection = duckdb.connect(":memory:")
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def store(conn: duckdb.DuckDBPyConnection) -> HistoricalStore:
    return HistoricalStore(conn)


@pytest.fixture
def stub_client_factory() -> type[StubPriceClient]:
    return StubPriceClient


@pytest.fixture
def make_records() -> Callable[..., tuple[HistoricalRecord, ...]]:
    return daily_records
