"""Daily price records and the store-boundary default substitution."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from tickersync.core.models.ticker import coerce_date

NAN = math.nan

# Value substituted for a missing field when a record is written.
FIELD_DEFAULTS: dict[str, float | int] = {
    "close": NAN,
    "high": NAN,
    "low": NAN,
    "open": NAN,
    "volume": 0,
    "adj_close": NAN,
    "adj_high": NAN,
    "adj_low": NAN,
    "adj_open": NAN,
    "adj_volume": 0,
    "div_cash": 0.0,
    "split_factor": 1.0,
}

# Remote payload key -> record attribute.
PAYLOAD_KEYS: dict[str, str] = {
    "close": "close",
    "high": "high",
    "low": "low",
    "open": "open",
    "volume": "volume",
    "adjClose": "adj_close",
    "adjHigh": "adj_high",
    "adjLow": "adj_low",
    "adjOpen": "adj_open",
    "adjVolume": "adj_volume",
    "divCash": "div_cash",
    "splitFactor": "split_factor",
}

VALUE_FIELDS: tuple[str, ...] = tuple(FIELD_DEFAULTS)

_INTEGER_FIELDS = frozenset({"volume", "adj_volume"})


@dataclass(frozen=True, slots=True)
class HistoricalRecord:
    """One trading day for one ticker; every value field is optional."""

    date: date
    close: float | None = None
    high: float | None = None
    low: float | None = None
    open: float | None = None
    volume: int | None = None
    adj_close: float | None = None
    adj_high: float | None = None
    adj_low: float | None = None
    adj_open: float | None = None
    adj_volume: int | None = None
    div_cash: float | None = None
    split_factor: float | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> HistoricalRecord:
        """Parse one element of the remote JSON array.

        Raises:
            ValueError: when the element has no usable ``date``.
        """
        raw_date = payload.get("date")
        record_date = coerce_date(raw_date)
        if record_date is None:
            raise ValueError(f"record without date: {dict(payload)!r}")
        values: dict[str, Any] = {}
        for key, attribute in PAYLOAD_KEYS.items():
            value = payload.get(key, payload.get(attribute))
            if value is None:
                continue
            values[attribute] = int(value) if attribute in _INTEGER_FIELDS else float(value)
        return cls(date=record_date, **values)

    def to_row(self, symbol: str) -> tuple[Any, ...]:
        """Return the storage row ``(symbol, date, *values)`` with defaults applied."""

        values = []
        for name in VALUE_FIELDS:
            value = getattr(self, name)
            values.append(FIELD_DEFAULTS[name] if value is None else value)
        return (symbol, self.date, *values)


def parse_records(payload: Iterable[Mapping[str, Any]]) -> tuple[HistoricalRecord, ...]:
    """Parse a JSON array of daily records."""

    return tuple(HistoricalRecord.from_payload(item) for item in payload)


def collapse_by_date(records: Iterable[HistoricalRecord]) -> list[HistoricalRecord]:
    """Keep the last record per date, ordered by date."""

    by_date: dict[date, HistoricalRecord] = {}
    for record in records:
        by_date[record.date] = record
    return [by_date[key] for key in sorted(by_date)]


__all__ = [
    "FIELD_DEFAULTS",
    "HistoricalRecord",
    "PAYLOAD_KEYS",
    "VALUE_FIELDS",
    "collapse_by_date",
    "parse_records",
]
