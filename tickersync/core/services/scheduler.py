"""Bounded-concurrency sync engine.

Each batch runs a producer, ``concurrency_limit`` fetch workers and a single
writer connected by two bounded queues::

    producer --jobs--> workers (K) --write lane--> writer --> HistoricalStore

The writer is the only task that touches storage while a batch is running;
the next batch starts after it has drained.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger

from tickersync.core.logging.observer import NullObserver, SyncObserver
from tickersync.core.models.outcome import FetchResult, SyncJob, SyncResult
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

_DONE: Any = None


class PriceSource(Protocol):
    async def fetch(self, ticker: Ticker | str, start_date: date, end_date: date) -> FetchResult: ...


class SyncScheduler:
    """Runs sync jobs with at most ``concurrency_limit`` fetches in flight."""

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
        """Stop enqueueing new jobs; queued and in-flight work is still committed."""
        logger.info("Stop requested; draining in-flight jobs")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    async def run(
        self,
        entities: Sequence[Ticker | dict],
        *,
        reference_end_date: date,
        concurrency_limit: int = 10,
        batch_size: int = 50,
        add_missing: bool = True,
    ) -> SyncResult:
        validate_limits(concurrency_limit, batch_size)
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
            if jobs:
                await self._run_batch(jobs, concurrency_limit, batch_size, aggregator)
            self.observer.on_batch_end(index, total, aggregator.result())

        result = aggregator.result()
        self.observer.on_run_end(result, add_missing)
        return result

    async def _run_batch(
        self,
        jobs: list[SyncJob],
        concurrency_limit: int,
        batch_size: int,
        aggregator: ResultAggregator,
    ) -> None:
        job_queue: asyncio.Queue[SyncJob | None] = asyncio.Queue(maxsize=batch_size)
        write_lane: asyncio.Queue[tuple[SyncJob, FetchResult] | None] = asyncio.Queue(maxsize=batch_size)
        worker_count = min(concurrency_limit, len(jobs))

        writer = asyncio.create_task(self._writer(write_lane, aggregator))
        workers = [
            asyncio.create_task(self._worker(job_queue, write_lane, aggregator)) for _ in range(worker_count)
        ]
        try:
            await self._produce(jobs, job_queue, worker_count, aggregator)
            await asyncio.gather(*workers)
            await write_lane.put(_DONE)
            await writer
        finally:
            for task in (*workers, writer):
                if not task.done():
                    task.cancel()

    async def _produce(
        self,
        jobs: list[SyncJob],
        job_queue: asyncio.Queue[SyncJob | None],
        worker_count: int,
        aggregator: ResultAggregator,
    ) -> None:
        for position, job in enumerate(jobs):
            if self.stop_requested:
                aggregator.mark_pending([pending.symbol for pending in jobs[position:]])
                break
            await job_queue.put(job)
        for _ in range(worker_count):
            await job_queue.put(_DONE)

    async def _worker(
        self,
        job_queue: asyncio.Queue[SyncJob | None],
        write_lane: asyncio.Queue[tuple[SyncJob, FetchResult] | None],
        aggregator: ResultAggregator,
    ) -> None:
        while True:
            job = await job_queue.get()
            if job is _DONE:
                return
            try:
                result = await self.client.fetch(job.ticker, job.range.start, job.range.end)
            except Exception as exc:
                aggregator.add(error_outcome(job.symbol, exc, job.range))
                continue
            outcome = fetch_outcome(job, result)
            if outcome is not None:
                aggregator.add(outcome)
            else:
                await write_lane.put((job, result))

    async def _writer(
        self,
        write_lane: asyncio.Queue[tuple[SyncJob, FetchResult] | None],
        aggregator: ResultAggregator,
    ) -> None:
        while True:
            item = await write_lane.get()
            if item is _DONE:
                return
            job, result = item
            try:
                rows = await asyncio.to_thread(self.store.upsert_bulk, job.symbol, result.records)
            except Exception as exc:
                aggregator.add(error_outcome(job.symbol, exc, job.range))
                continue
            aggregator.add(written_outcome(job, rows))


__all__ = ["PriceSource", "SyncScheduler"]
