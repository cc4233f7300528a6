"""Core data models."""

from tickersync.core.models.outcome import (
    EntityOutcome,
    FetchResult,
    FetchStatus,
    OutcomeKind,
    RangeKind,
    SyncJob,
    SyncRange,
    SyncResult,
)
from tickersync.core.models.record import (
    FIELD_DEFAULTS,
    VALUE_FIELDS,
    HistoricalRecord,
    collapse_by_date,
    parse_records,
)
from tickersync.core.models.ticker import Ticker, as_tickers, coerce_date

__all__ = [
    "EntityOutcome",
    "FIELD_DEFAULTS",
    "FetchResult",
    "FetchStatus",
    "HistoricalRecord",
    "OutcomeKind",
    "RangeKind",
    "SyncJob",
    "SyncRange",
    "SyncResult",
    "Ticker",
    "VALUE_FIELDS",
    "as_tickers",
    "coerce_date",
    "collapse_by_date",
    "parse_records",
]
