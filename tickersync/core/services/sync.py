"""Sync service wiring the engine together."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING

from loguru import logger

from tickersync.core.config.settings import TickerSyncConfig
from tickersync.core.logging.logger import log_context
from tickersync.core.logging.observer import LoggingObserver, SyncObserver
from tickersync.core.models.outcome import EntityOutcome, OutcomeKind, SyncJob, SyncRange, SyncResult
from tickersync.core.models.ticker import Ticker, as_tickers, coerce_date
from tickersync.core.services.aggregator import ResultAggregator
from tickersync.core.services.delta import DeltaCalculator, resolve_reference_end_date
from tickersync.core.services.jobs import error_outcome, fetch_outcome, written_outcome
from tickersync.core.services.scheduler import SyncScheduler
from tickersync.core.services.sequential import SequentialSync

if TYPE_CHECKING:
    from tickersync.core.client.fetch import FetchClient
    from tickersync.core.data.storage.database import HistoricalStore


class SyncService:
    """Entry point for sync runs against one store and one fetch client."""

    def __init__(
        self,
        config: TickerSyncConfig | None = None,
        *,
        store: HistoricalStore,
        client: FetchClient,
        observer: SyncObserver | None = None,
    ):
        self.config = config or TickerSyncConfig()
        self.store = store
        self.client = client
        self.observer = observer or LoggingObserver()
        self.delta = DeltaCalculator()
        self.scheduler = SyncScheduler(store, client, self.delta, self.observer)
        self.sequential = SequentialSync(store, client, self.delta, self.observer)

    def reference_end_date(self, today: date | None = None) -> date:
        return resolve_reference_end_date(self.store, self.config.sync.reference_ticker, today)

    def request_stop(self) -> None:
        """Ask whichever engine is running to leave the remaining tickers pending."""
        self.scheduler.request_stop()
        self.sequential.request_stop()

    async def run(
        self,
        entities: Sequence[Ticker | dict],
        *,
        concurrency_limit: int | None = None,
        batch_size: int | None = None,
        add_missing: bool | None = None,
        sequential: bool = False,
        reference_end_date: date | None = None,
    ) -> SyncResult:
        """Bring every entity up to the reference end date.

        Per-ticker failures are reported in the result; storage connection
        and reference calendar failures propagate.
        """
        settings = self.config.sync
        concurrency_limit = settings.concurrency_limit if concurrency_limit is None else concurrency_limit
        batch_size = settings.batch_size if batch_size is None else batch_size
        add_missing = settings.add_missing if add_missing is None else add_missing

        with log_context(operation="sync"):
            end_date = reference_end_date or self.reference_end_date()
            logger.info(
                "Starting sync of {} tickers up to {}",
                len(entities),
                end_date,
                concurrency_limit=concurrency_limit,
                batch_size=batch_size,
                sequential=sequential,
            )
            if sequential:
                return await self.sequential.run(
                    entities,
                    reference_end_date=end_date,
                    batch_size=batch_size,
                    add_missing=add_missing,
                )
            return await self.scheduler.run(
                entities,
                reference_end_date=end_date,
                concurrency_limit=concurrency_limit,
                batch_size=batch_size,
                add_missing=add_missing,
            )

    async def _backfill(self, job: SyncJob) -> EntityOutcome:
        try:
            result = await self.client.fetch(job.ticker, job.range.start, job.range.end)
            outcome = fetch_outcome(job, result)
            if outcome is None:
                rows = await asyncio.to_thread(self.store.upsert_bulk, job.symbol, result.records)
                outcome = written_outcome(job, rows)
        except Exception as exc:
            outcome = error_outcome(job.symbol, exc, job.range)
        return outcome

    async def update_split_tickers(
        self,
        entities: Sequence[Ticker | dict],
        *,
        on_date: date | None = None,
    ) -> SyncResult:
        """Re-fetch full history for tickers with a split on ``on_date``.

        ``on_date`` defaults to the reference end date. Split-adjusted values
        change retroactively, so the whole history is overwritten.
        """
        tickers = {ticker.symbol: ticker for ticker in as_tickers(entities)}
        aggregator = ResultAggregator(self.observer)
        if not tickers:
            logger.info("No tickers to process for split updates")
            return aggregator.result()

        with log_context(operation="split_update"):
            split_date = on_date or self.reference_end_date()
            candidates = self.store.split_candidates(split_date)
            for position, symbol in enumerate(candidates, start=1):
                ticker = tickers.get(symbol)
                if ticker is None:
                    logger.warning("No ticker info found for split ticker {}", symbol, symbol=symbol)
                    continue
                logger.info(
                    "{}: Updating split ticker {} from {} to {}", position, symbol, ticker.start_date, split_date
                )
                job = SyncJob(ticker, SyncRange.full_backfill(ticker.start_date, split_date))
                outcome = await self._backfill(job)
                if outcome.kind is OutcomeKind.MISSING_ADDED:
                    outcome = EntityOutcome(symbol, OutcomeKind.UPDATED, outcome.rows_written, range=job.range)
                elif outcome.kind is OutcomeKind.MISSING_EMPTY:
                    outcome = EntityOutcome(symbol, OutcomeKind.NO_NEW_DATA, range=job.range)
                aggregator.add(outcome)
            logger.info("Updated {} split tickers", len(aggregator.result().updated))
        return aggregator.result()

    async def add_ticker(self, symbol: str) -> EntityOutcome:
        """Backfill one ticker using the date range reported by its metadata."""

        with log_context(operation="add_ticker", symbol=symbol):
            try:
                metadata = await self.client.fetch_metadata(symbol)
                start = coerce_date(metadata.get("startDate"))
                end = coerce_date(metadata.get("endDate"))
                if start is None or end is None:
                    raise ValueError(f"No date range in metadata for {symbol}")
            except Exception as exc:
                outcome = error_outcome(symbol, exc)
                self.observer.on_outcome(outcome)
                return outcome

            ticker = Ticker(symbol, metadata.get("exchangeCode"), None, start, end)
            job = SyncJob(ticker, SyncRange.full_backfill(ticker.start_date, ticker.end_date))
            outcome = await self._backfill(job)
            self.observer.on_outcome(outcome)
            if outcome.kind is OutcomeKind.MISSING_EMPTY:
                logger.warning("No data retrieved for {}", symbol)
            return outcome


__all__ = ["SyncService"]
