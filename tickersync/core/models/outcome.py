"""Per-ticker sync outcomes, sync ranges and fetch results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from tickersync.core.exceptions import TickerSyncError
from tickersync.core.models.record import HistoricalRecord
from tickersync.core.models.ticker import Ticker


class RangeKind(str, Enum):
    """What the delta calculator decided for a ticker."""

    FULL_BACKFILL = "full_backfill"
    INCREMENTAL = "incremental"
    UP_TO_DATE = "up_to_date"


@dataclass(frozen=True, slots=True)
class SyncRange:
    """Date range still owed for a ticker; ``start``/``end`` are ``None`` when up to date."""

    kind: RangeKind
    start: date | None = None
    end: date | None = None

    @classmethod
    def full_backfill(cls, start: date, end: date) -> SyncRange:
        return cls(RangeKind.FULL_BACKFILL, start, end)

    @classmethod
    def incremental(cls, start: date, end: date) -> SyncRange:
        return cls(RangeKind.INCREMENTAL, start, end)

    @classmethod
    def up_to_date(cls) -> SyncRange:
        return cls(RangeKind.UP_TO_DATE)

    @property
    def needs_fetch(self) -> bool:
        return self.kind is not RangeKind.UP_TO_DATE


@dataclass(frozen=True, slots=True)
class SyncJob:
    """One ticker plus the range to fetch for it."""

    ticker: Ticker
    range: SyncRange

    @property
    def symbol(self) -> str:
        return self.ticker.symbol

    @property
    def is_backfill(self) -> bool:
        return self.range.kind is RangeKind.FULL_BACKFILL


class FetchStatus(str, Enum):
    """Classification of a fetch once retries are exhausted."""

    SUCCESS = "success"
    NO_DATA = "no_data"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Result of one logical fetch (all attempts included)."""

    status: FetchStatus
    records: tuple[HistoricalRecord, ...] = ()
    error: TickerSyncError | None = None
    attempts: int = 1

    @classmethod
    def success(cls, records: tuple[HistoricalRecord, ...], attempts: int = 1) -> FetchResult:
        return cls(FetchStatus.SUCCESS, records, None, attempts)

    @classmethod
    def no_data(cls, attempts: int = 1) -> FetchResult:
        return cls(FetchStatus.NO_DATA, (), None, attempts)

    @classmethod
    def failed(cls, error: TickerSyncError, attempts: int = 1) -> FetchResult:
        return cls(FetchStatus.FAILED, (), error, attempts)


class OutcomeKind(str, Enum):
    """Final classification of a ticker in a sync run."""

    UPDATED = "updated"
    NO_NEW_DATA = "no_new_data"
    UP_TO_DATE = "up_to_date"
    MISSING_ADDED = "missing_added"
    MISSING_EMPTY = "missing_empty"
    MISSING_SKIPPED = "missing_skipped"
    ERROR = "error"

    @property
    def is_missing(self) -> bool:
        return self in (OutcomeKind.MISSING_ADDED, OutcomeKind.MISSING_EMPTY, OutcomeKind.MISSING_SKIPPED)


@dataclass(frozen=True, slots=True)
class EntityOutcome:
    """Outcome recorded for a single ticker."""

    symbol: str
    kind: OutcomeKind
    rows_written: int = 0
    error: TickerSyncError | None = None
    range: SyncRange | None = None


@dataclass(slots=True)
class SyncResult:
    """Summary of a sync run.

    ``updated``, ``missing`` and ``errored`` are disjoint. Callers normally
    only look at :meth:`public`, which folds errors into ``missing``.
    """

    updated: set[str] = field(default_factory=set)
    missing: set[str] = field(default_factory=set)
    errored: set[str] = field(default_factory=set)
    outcomes: list[EntityOutcome] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    stopped: bool = False

    def public(self) -> tuple[set[str], set[str]]:
        """Return ``(updated, missing)`` with errored tickers counted as missing."""

        return set(self.updated), self.missing | self.errored

    def outcome_for(self, symbol: str) -> EntityOutcome | None:
        for outcome in self.outcomes:
            if outcome.symbol == symbol:
                return outcome
        return None

    @property
    def rows_written(self) -> int:
        return sum(outcome.rows_written for outcome in self.outcomes)


__all__ = [
    "EntityOutcome",
    "FetchResult",
    "FetchStatus",
    "OutcomeKind",
    "RangeKind",
    "SyncJob",
    "SyncRange",
    "SyncResult",
]
