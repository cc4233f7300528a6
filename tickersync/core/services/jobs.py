"""Job planning and outcome classification shared by both sync engines."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import date
from typing import TYPE_CHECKING

from tickersync.core.exceptions import ErrorCode, TickerSyncError
from tickersync.core.models.outcome import EntityOutcome, FetchResult, FetchStatus, OutcomeKind, SyncJob, SyncRange
from tickersync.core.models.ticker import Ticker

if TYPE_CHECKING:
    from tickersync.core.data.storage.database import HistoricalStore
    from tickersync.core.services.aggregator import ResultAggregator
    from tickersync.core.services.delta import DeltaCalculator


def validate_limits(concurrency_limit: int, batch_size: int) -> None:
    if concurrency_limit < 1:
        raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")


def unique_tickers(tickers: Sequence[Ticker]) -> list[Ticker]:
    """Drop repeated symbols, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Ticker] = []
    for ticker in tickers:
        if ticker.symbol not in seen:
            seen.add(ticker.symbol)
            unique.append(ticker)
    return unique


def batches(tickers: Sequence[Ticker], size: int) -> Iterator[Sequence[Ticker]]:
    for start in range(0, len(tickers), size):
        yield tickers[start : start + size]


def plan_batch(
    store: HistoricalStore,
    delta: DeltaCalculator,
    batch: Sequence[Ticker],
    reference_end_date: date,
    add_missing: bool,
    aggregator: ResultAggregator,
) -> list[SyncJob]:
    """Compute ranges from one latest-date snapshot and return the jobs to run.

    Tickers that need no fetch are recorded in ``aggregator`` immediately.
    """
    latest = store.latest_dates([ticker.symbol for ticker in batch])
    jobs: list[SyncJob] = []
    for ticker in batch:
        sync_range = delta.range_for(ticker, latest.get(ticker.symbol), reference_end_date)
        if not sync_range.needs_fetch:
            aggregator.add(EntityOutcome(ticker.symbol, OutcomeKind.UP_TO_DATE, range=sync_range))
            continue
        job = SyncJob(ticker, sync_range)
        if job.is_backfill and not add_missing:
            aggregator.add(EntityOutcome(ticker.symbol, OutcomeKind.MISSING_SKIPPED, range=sync_range))
            continue
        jobs.append(job)
    return jobs


def fetch_outcome(job: SyncJob, result: FetchResult) -> EntityOutcome | None:
    """Outcome decided by the fetch alone, or ``None`` when records must be written."""

    if result.status is FetchStatus.FAILED:
        return EntityOutcome(job.symbol, OutcomeKind.ERROR, error=result.error, range=job.range)
    if result.status is FetchStatus.NO_DATA:
        kind = OutcomeKind.MISSING_EMPTY if job.is_backfill else OutcomeKind.NO_NEW_DATA
        return EntityOutcome(job.symbol, kind, range=job.range)
    return None


def written_outcome(job: SyncJob, rows_written: int) -> EntityOutcome:
    kind = OutcomeKind.MISSING_ADDED if job.is_backfill else OutcomeKind.UPDATED
    return EntityOutcome(job.symbol, kind, rows_written=rows_written, range=job.range)


def error_outcome(symbol: str, exc: Exception, sync_range: SyncRange | None = None) -> EntityOutcome:
    """Wrap any exception raised while processing ``symbol``."""

    if isinstance(exc, TickerSyncError):
        error = exc
    else:
        error = TickerSyncError(
            f"Unexpected error while processing {symbol}: {exc!r}",
            ErrorCode.JOB_ERROR,
            {"symbol": symbol, "exception": type(exc).__name__},
        )
    return EntityOutcome(symbol, OutcomeKind.ERROR, error=error, range=sync_range)


__all__ = [
    "batches",
    "error_outcome",
    "fetch_outcome",
    "plan_batch",
    "unique_tickers",
    "validate_limits",
    "written_outcome",
]
