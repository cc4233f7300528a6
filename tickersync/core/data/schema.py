"""DuckDB tables owned by the sync engine.

Column names follow the upstream JSON payload (``adjClose``, ``splitFactor``)
so API rows can be inserted without renaming.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


@dataclass(frozen=True)
class TableSchema:
    name: str
    # (column, "TYPE [constraints]") pairs in table order
    columns: tuple[tuple[str, str], ...]
    primary_key: tuple[str, ...] = ()

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.columns)

    def create_ddl(self) -> str:
        lines = [f"{name} {definition}" for name, definition in self.columns]
        if self.primary_key:
            lines.append(f"PRIMARY KEY ({', '.join(self.primary_key)})")
        body = ",\n    ".join(lines)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    {body}\n)"

    def ensure(self, conn: DuckDBPyConnection) -> None:
        conn.execute(self.create_ddl())


US_TICKERS_TABLE = TableSchema(
    "us_tickers",
    (
        ("ticker", "VARCHAR"),
        ("exchange", "VARCHAR"),
        ("assetType", "VARCHAR"),
        ("priceCurrency", "VARCHAR"),
        ("startDate", "DATE"),
        ("endDate", "DATE"),
    ),
)

_PRICE_COLUMNS = tuple(
    (name, "BIGINT" if name.lower().endswith("volume") else "DOUBLE")
    for name in (
        "close", "high", "low", "open", "volume",
        "adjClose", "adjHigh", "adjLow", "adjOpen", "adjVolume",
        "divCash", "splitFactor",
    )
)  # fmt: skip

HISTORICAL_DATA_TABLE = TableSchema(
    "historical_data",
    (("ticker", "VARCHAR NOT NULL"), ("date", "DATE NOT NULL"), *_PRICE_COLUMNS),
    primary_key=("ticker", "date"),
)

US_TICKERS_FILTERED = "us_tickers_filtered"

HISTORICAL_INDEXES = {"idx_historical_ticker": "ticker", "idx_historical_date": "date"}


def core_tables() -> tuple[TableSchema, ...]:
    return (US_TICKERS_TABLE, HISTORICAL_DATA_TABLE)


def ensure_core_tables(conn: DuckDBPyConnection) -> None:
    """Create ``us_tickers`` and ``historical_data`` when absent; existing data is untouched."""

    for table in core_tables():
        table.ensure(conn)


def create_indexes(conn: DuckDBPyConnection) -> None:
    """Add the ticker and date indexes used by ``db optimize``."""

    for index, column in HISTORICAL_INDEXES.items():
        conn.execute(f"CREATE INDEX IF NOT EXISTS {index} ON {HISTORICAL_DATA_TABLE.name}({column})")


def create_core_ddl() -> Iterable[str]:
    return (table.create_ddl() for table in core_tables())


__all__ = [
    "HISTORICAL_DATA_TABLE",
    "HISTORICAL_INDEXES",
    "TableSchema",
    "US_TICKERS_FILTERED",
    "US_TICKERS_TABLE",
    "core_tables",
    "create_core_ddl",
    "create_indexes",
    "ensure_core_tables",
]
