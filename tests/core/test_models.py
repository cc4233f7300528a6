from __future__ import annotations

import math
from datetime import date, datetime

import pytest

from tickersync.core.models import (
    EntityOutcome,
    HistoricalRecord,
    OutcomeKind,
    SyncRange,
    SyncResult,
    Ticker,
    as_tickers,
    collapse_by_date,
    parse_records,
)
from tickersync.core.models.ticker import coerce_date


def test_coerce_date_accepts_common_inputs() -> None:
    assert coerce_date("2023-01-03T00:00:00.000Z") == date(2023, 1, 3)
    assert coerce_date(datetime(2023, 1, 3, 15, 30)) == date(2023, 1, 3)
    assert coerce_date(date(2023, 1, 3)) == date(2023, 1, 3)
    assert coerce_date(None) is None
    assert coerce_date("  ") is None
    with pytest.raises(TypeError):
        coerce_date(20230103)


def test_ticker_from_mapping_accepts_camel_case_rows() -> None:
    ticker = Ticker.from_mapping(
        {
            "ticker": "AAPL",
            "exchange": "NASDAQ",
            "assetType": "Stock",
            "startDate": "1980-12-12",
            "endDate": "2023-06-05",
        }
    )

    assert ticker.symbol == "AAPL"
    assert ticker.asset_type == "Stock"
    assert ticker.start_date == date(1980, 12, 12)
    assert ticker.end_date == date(2023, 6, 5)


def test_ticker_from_mapping_requires_date_interval() -> None:
    with pytest.raises(ValueError):
        Ticker.from_mapping({"symbol": "AAPL", "start_date": "2020-01-01"})


def test_ticker_requires_symbol() -> None:
    with pytest.raises(ValueError):
        Ticker("", "NYSE", "Stock", date(2020, 1, 1), date(2020, 1, 2))


@pytest.mark.parametrize("row", [{}, {"symbol": None}, {"ticker": "  "}])
def test_ticker_from_mapping_requires_symbol(row: dict) -> None:
    with pytest.raises(ValueError, match="no symbol"):
        Ticker.from_mapping({**row, "startDate": "2020-01-01", "endDate": "2020-01-02"})


def test_as_tickers_passes_ticker_objects_through() -> None:
    existing = Ticker("MSFT", "NASDAQ", "Stock", date(1986, 3, 13), date(2023, 6, 5))
    converted = as_tickers([existing, {"symbol": "SPY", "start_date": "1993-01-29", "end_date": "2023-06-05"}])

    assert converted[0] is existing
    assert converted[1].symbol == "SPY"


def test_record_from_payload_parses_tiingo_fields() -> None:
    record = HistoricalRecord.from_payload(
        {
            "date": "2023-06-02T00:00:00.000Z",
            "close": 335.4,
            "high": 336.0,
            "low": 332.1,
            "open": 334.2,
            "volume": 25_000_000,
            "adjClose": 333.9,
            "adjVolume": 25_000_000,
            "divCash": 0.0,
            "splitFactor": 1.0,
        }
    )

    assert record.date == date(2023, 6, 2)
    assert record.adj_close == pytest.approx(333.9)
    assert isinstance(record.volume, int)
    assert record.adj_high is None


def test_record_without_date_is_rejected() -> None:
    with pytest.raises(ValueError):
        HistoricalRecord.from_payload({"close": 1.0})


def test_to_row_applies_defaults_once() -> None:
    row = HistoricalRecord(date=date(2023, 1, 3), close=10.0).to_row("AAPL")

    assert row[:3] == ("AAPL", date(2023, 1, 3), 10.0)
    high, low, open_, volume = row[3:7]
    assert math.isnan(high) and math.isnan(low) and math.isnan(open_)
    assert volume == 0
    adj_volume, div_cash, split_factor = row[11:14]
    assert adj_volume == 0
    assert div_cash == 0.0
    assert split_factor == 1.0
    assert len(row) == 14


def test_collapse_by_date_keeps_last_occurrence_in_date_order() -> None:
    records = parse_records(
        [
            {"date": "2023-01-04", "close": 2.0},
            {"date": "2023-01-03", "close": 1.0},
            {"date": "2023-01-04", "close": 3.0},
        ]
    )

    collapsed = collapse_by_date(records)

    assert [record.date for record in collapsed] == [date(2023, 1, 3), date(2023, 1, 4)]
    assert collapsed[1].close == 3.0


def test_sync_range_kinds() -> None:
    assert not SyncRange.up_to_date().needs_fetch
    assert SyncRange.incremental(date(2023, 1, 2), date(2023, 1, 3)).needs_fetch


def test_sync_result_public_folds_errors_into_missing() -> None:
    result = SyncResult(updated={"AAPL"}, missing={"NEW"}, errored={"BAD"})
    result.outcomes.append(EntityOutcome("AAPL", OutcomeKind.UPDATED, rows_written=3))

    updated, missing = result.public()

    assert updated == {"AAPL"}
    assert missing == {"NEW", "BAD"}
    assert result.rows_written == 3
    assert result.outcome_for("AAPL").kind is OutcomeKind.UPDATED
    assert result.outcome_for("ZZZ") is None


def test_missing_outcome_kinds() -> None:
    assert OutcomeKind.MISSING_ADDED.is_missing
    assert OutcomeKind.MISSING_SKIPPED.is_missing
    assert not OutcomeKind.ERROR.is_missing
    assert not OutcomeKind.UP_TO_DATE.is_missing
