"""Collects per-ticker outcomes into a run summary."""

from __future__ import annotations

from tickersync.core.logging.observer import NullObserver, SyncObserver
from tickersync.core.models.outcome import EntityOutcome, OutcomeKind, SyncResult


class ResultAggregator:
    """Classifies each outcome into exactly one of updated, missing or errored."""

    def __init__(self, observer: SyncObserver | None = None):
        self.observer = observer or NullObserver()
        self._result = SyncResult()
        self._seen: set[str] = set()

    def add(self, outcome: EntityOutcome) -> None:
        if outcome.symbol in self._seen:
            raise ValueError(f"Outcome for {outcome.symbol} recorded twice")
        self._seen.add(outcome.symbol)
        self._result.outcomes.append(outcome)
        if outcome.kind is OutcomeKind.UPDATED:
            self._result.updated.add(outcome.symbol)
        elif outcome.kind.is_missing:
            self._result.missing.add(outcome.symbol)
        elif outcome.kind is OutcomeKind.ERROR:
            self._result.errored.add(outcome.symbol)
        self.observer.on_outcome(outcome)

    def mark_pending(self, symbols: list[str]) -> None:
        """Record tickers left unprocessed by a stopped run."""
        self._result.pending.extend(symbols)
        self._result.stopped = True

    def result(self) -> SyncResult:
        return self._result


__all__ = ["ResultAggregator"]
