"""Ticker reference data."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any


def coerce_date(value: Any) -> date | None:
    """Convert ``date``/``datetime``/ISO strings to a ``date``; ``None`` stays ``None``."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return date.fromisoformat(text[:10])
    # pandas.Timestamp and friends
    to_pydatetime = getattr(value, "to_pydatetime", None)
    if callable(to_pydatetime):
        return to_pydatetime().date()
    raise TypeError(f"Cannot interpret {value!r} as a date")


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None


@dataclass(frozen=True, slots=True)
class Ticker:
    """A named instrument with the interval of history the source offers."""

    symbol: str
    exchange: str | None
    asset_type: str | None
    start_date: date
    end_date: date
    price_currency: str | None = None

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("symbol is required")

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> Ticker:
        """Build a ticker from a row using either snake_case or camelCase keys."""

        symbol = _first(row, "symbol", "ticker")
        if symbol is None or not str(symbol).strip():
            raise ValueError(f"ticker row has no symbol: {dict(row)!r}")
        start = coerce_date(_first(row, "start_date", "startDate", "startdate"))
        end = coerce_date(_first(row, "end_date", "endDate", "enddate"))
        if start is None or end is None:
            raise ValueError(f"ticker row is missing its date interval: {dict(row)!r}")
        return cls(
            symbol=str(symbol).strip(),
            exchange=_first(row, "exchange"),
            asset_type=_first(row, "asset_type", "assetType", "assettype"),
            start_date=start,
            end_date=end,
            price_currency=_first(row, "price_currency", "priceCurrency"),
        )


def as_tickers(entities: Any) -> list[Ticker]:
    """Normalise an entity list of ``Ticker`` objects or mappings."""

    return [entity if isinstance(entity, Ticker) else Ticker.from_mapping(entity) for entity in entities]


__all__ = ["Ticker", "as_tickers", "coerce_date"]
