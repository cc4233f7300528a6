"""Per-ticker delta calculation."""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

import duckdb
from loguru import logger

from tickersync.core.exceptions import ReferenceCalendarError, StorageError
from tickersync.core.models.outcome import SyncRange
from tickersync.core.models.ticker import Ticker

if TYPE_CHECKING:
    from tickersync.core.data.storage.database import HistoricalStore

ONE_DAY = timedelta(days=1)


class DeltaCalculator:
    """Decides which dates a ticker still needs.

    Pure: depends only on the ticker, its latest stored date and the
    reference end date.
    """

    def range_for(self, ticker: Ticker, latest_known_date: date | None, reference_end_date: date) -> SyncRange:
        if latest_known_date is None:
            end = min(ticker.end_date, reference_end_date)
            if ticker.start_date > end:
                return SyncRange.up_to_date()
            return SyncRange.full_backfill(ticker.start_date, end)
        if latest_known_date >= reference_end_date:
            return SyncRange.up_to_date()
        return SyncRange.incremental(latest_known_date + ONE_DAY, reference_end_date)


def resolve_reference_end_date(
    store: HistoricalStore,
    reference_symbol: str = "SPY",
    today: date | None = None,
) -> date:
    """Latest stored date of ``reference_symbol``, else yesterday.

    Raises:
        ReferenceCalendarError: the store could not be queried
    """
    try:
        latest = store.latest_date(reference_symbol)
    except (duckdb.Error, StorageError) as exc:
        raise ReferenceCalendarError(
            f"Could not read latest date of reference ticker {reference_symbol}: {exc}",
            reference_symbol,
        ) from exc
    if latest is not None:
        return latest
    fallback = (today or date.today()) - ONE_DAY
    logger.warning(
        "Reference ticker {} has no stored rows; using {} as end date",
        reference_symbol,
        fallback,
    )
    return fallback


__all__ = ["DeltaCalculator", "resolve_reference_end_date"]
