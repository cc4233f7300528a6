"""Single-task sync engine: one ticker at a time, row-by-row writes."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING

from loguru import logger

from tickersync.core.logging.observer import NullObserver, SyncObserver
from tickersync.core.models.outcome import SyncResult
from tickersync.core.models.ticker import Ticker, as_tickers
from tickersync.core.services.aggregator import ResultAggregator
from tickersync.core.services.delta import DeltaCalculator
from tickersync.core.services.jobs import (
    batches,
    error_outcome,
    fetch_outcome,
    plan_batch,
    unique_tickers,
    validate_limits,
    written_outcome,
)

if TYPE_CHECKING:
    from tickersync.core.data.storage.database import HistoricalStore
    from tickersync.core.services.scheduler import PriceSource


class SequentialSync:
    """Same contract as :class:`SyncScheduler` without workers or queues."""

    def __init__(
        self,
        store: HistoricalStore,
        client: PriceSource,
        delta: DeltaCalculator | None = None,
        observer: SyncObserver | None = None,
    ):
        self.store = store
        self.client = client
        self.delta = delta or DeltaCalculator()
        self.observer = observer or NullObserver()
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Finish the current ticker, then leave the rest pending."""
        logger.info("Stop requested; finishing current ticker")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    async def run(
        self,
        entities: Sequence[Ticker | dict],
        *,
        reference_end_date: date,
        batch_size: int = 50,
        add_missing: bool = True,
    ) -> SyncResult:
        validate_limits(1, batch_size)
        self._stop.clear()
        tickers = unique_tickers(as_tickers(entities))
        aggregator = ResultAggregator(self.observer)
        total = (len(tickers) + batch_size - 1) // batch_size

        for index, batch in enumerate(batches(tickers, batch_size), start=1):
            if self.stop_requested:
                aggregator.mark_pending([ticker.symbol for ticker in batch])
                continue
            self.observer.on_batch_start(index, total, len(batch))
            jobs = plan_batch(self.store, self.delta, batch, reference_end_date, add_missing, aggregator)
            for position, job in enumerate(jobs):
                if self.stop_requested:
                    aggregator.mark_pending([pending.symbol for pending in jobs[position:]])
                    break
                try:
                    result = await self.client.fetch(job.ticker, job.range.start, job.range.end)
                    outcome = fetch_outcome(job, result)
                    if outcome is None:
                        outcome = written_outcome(job, self.store.upsert(job.symbol, result.records))
                except Exception as exc:
                    outcome = error_outcome(job.symbol, exc, job.range)
                aggregator.add(outcome)
            self.observer.on_batch_end(index, total, aggregator.result())

        result = aggregator.result()
        self.observer.on_run_end(result, add_missing)
        return result


__all__ = ["SequentialSync"]
