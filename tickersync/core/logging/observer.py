"""Observer hooks through which the sync engine reports progress."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from loguru import logger

from tickersync.core.models.outcome import EntityOutcome, OutcomeKind

if TYPE_CHECKING:
    from tickersync.core.models.outcome import SyncResult


class SyncObserver(Protocol):
    """Receives engine events; implementations must not raise."""

    def on_batch_start(self, index: int, total: int, size: int) -> None: ...

    def on_outcome(self, outcome: EntityOutcome) -> None: ...

    def on_batch_end(self, index: int, total: int, result: SyncResult) -> None: ...

    def on_run_end(self, result: SyncResult, add_missing: bool) -> None: ...


class NullObserver:
    """Observer that ignores every event."""

    def on_batch_start(self, index: int, total: int, size: int) -> None:
        pass

    def on_outcome(self, outcome: EntityOutcome) -> None:
        pass

    def on_batch_end(self, index: int, total: int, result: SyncResult) -> None:
        pass

    def on_run_end(self, result: SyncResult, add_missing: bool) -> None:
        pass


class LoggingObserver:
    """Default observer writing engine events through loguru."""

    def __init__(self, log=logger) -> None:
        self._log = log

    def on_batch_start(self, index: int, total: int, size: int) -> None:
        self._log.info("Processing batch {}/{}", index, total, batch=index, tickers_in_batch=size)

    def on_outcome(self, outcome: EntityOutcome) -> None:
        bound = self._log.bind(symbol=outcome.symbol, outcome=outcome.kind.value)
        if outcome.kind is OutcomeKind.ERROR:
            code = outcome.error.error_code if outcome.error else None
            bound.bind(error_code=code).warning("Failed to update {}: {}", outcome.symbol, outcome.error)
        elif outcome.kind in (OutcomeKind.UPDATED, OutcomeKind.MISSING_ADDED):
            rng = outcome.range
            bound.info(
                "{} : {} ~ {} ({} rows)",
                outcome.symbol,
                rng.start if rng else None,
                rng.end if rng else None,
                outcome.rows_written,
            )
        else:
            bound.debug("{} : {}", outcome.symbol, outcome.kind.value)

    def on_batch_end(self, index: int, total: int, result: SyncResult) -> None:
        self._log.info(
            "Batch {} complete",
            index,
            updated=len(result.updated),
            missing=len(result.missing),
            errored=len(result.errored),
        )

    def on_run_end(self, result: SyncResult, add_missing: bool) -> None:
        if result.missing:
            if add_missing:
                self._log.info("Attempted to add {} missing tickers to historical_data", len(result.missing))
            else:
                self._log.warning("Tickers not in historical_data: {}", sorted(result.missing))
        if result.errored:
            self._log.warning("Tickers that encountered errors: {}", sorted(result.errored))
        if result.stopped:
            self._log.warning("Sync stopped early; {} tickers left unprocessed", len(result.pending))
        self._log.info(
            "Historical data update completed",
            updated_count=len(result.updated),
            missing_count=len(result.missing),
            error_count=len(result.errored),
            rows_written=result.rows_written,
        )


__all__ = ["LoggingObserver", "NullObserver", "SyncObserver"]
