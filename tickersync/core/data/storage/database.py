"""Historical price store backed by DuckDB."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from typing import TYPE_CHECKING, Any

import duckdb
from loguru import logger

from tickersync.core.data.schema import HISTORICAL_DATA_TABLE, ensure_core_tables
from tickersync.core.exceptions import StorageError
from tickersync.core.models.record import HistoricalRecord, collapse_by_date
from tickersync.core.models.ticker import coerce_date

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_TABLE = HISTORICAL_DATA_TABLE.name
_KEY_COLUMNS = ("ticker", "date")
_VALUE_COLUMNS = tuple(name for name in HISTORICAL_DATA_TABLE.column_names if name not in _KEY_COLUMNS)

UPSERT_SQL = """
    INSERT INTO {table} ({columns})
    VALUES ({placeholders})
    ON CONFLICT (ticker, date) DO UPDATE SET
        {assignments}
""".format(
    table=_TABLE,
    columns=", ".join(HISTORICAL_DATA_TABLE.column_names),
    placeholders=", ".join("?" for _ in HISTORICAL_DATA_TABLE.column_names),
    assignments=",\n        ".join(f"{column} = EXCLUDED.{column}" for column in _VALUE_COLUMNS),
)


class HistoricalStore:
    """Idempotent writer and state reader for ``historical_data``.

    Writes for one ticker are a single transaction: either every record is
    stored or none is. A connection is used by one thread at a time.
    """

    def __init__(self, conn: DuckDBPyConnection, *, ensure_schema: bool = True):
        self.conn = conn
        self._lock = threading.RLock()
        if ensure_schema:
            ensure_core_tables(conn)

    @contextmanager
    def transaction(self) -> Iterator[DuckDBPyConnection]:
        """BEGIN/COMMIT around the block, ROLLBACK on any exception."""
        with self._lock:
            self.conn.execute("BEGIN TRANSACTION")
            try:
                yield self.conn
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            self.conn.execute("COMMIT")

    def _rows(self, symbol: str, records: Iterable[HistoricalRecord]) -> list[tuple[Any, ...]]:
        return [record.to_row(symbol) for record in collapse_by_date(records)]

    def upsert(self, symbol: str, records: Iterable[HistoricalRecord]) -> int:
        """Write ``records`` one statement per row inside one transaction.

        Returns:
            Number of distinct dates written.

        Raises:
            StorageError: the transaction was rolled back
        """
        rows = self._rows(symbol, records)
        if not rows:
            return 0
        try:
            with self.transaction() as conn:
                for row in rows:
                    conn.execute(UPSERT_SQL, row)
        except duckdb.Error as exc:
            raise StorageError(f"Upsert failed for {symbol}: {exc}", symbol=symbol) from exc
        logger.debug("Upserted {} rows for {}", len(rows), symbol)
        return len(rows)

    def upsert_bulk(self, symbol: str, records: Iterable[HistoricalRecord]) -> int:
        """Write ``records`` with one ``executemany`` inside one transaction.

        Same result as :meth:`upsert` for the same input.
        """
        rows = self._rows(symbol, records)
        if not rows:
            return 0
        try:
            with self.transaction() as conn:
                conn.executemany(UPSERT_SQL, rows)
        except duckdb.Error as exc:
            raise StorageError(f"Bulk upsert failed for {symbol}: {exc}", symbol=symbol) from exc
        logger.debug("Bulk upserted {} rows for {}", len(rows), symbol)
        return len(rows)

    def latest_dates(self, symbols: Sequence[str] | None = None) -> dict[str, date]:
        """Latest stored date per ticker, optionally restricted to ``symbols``."""

        query = f"SELECT ticker, max(date) FROM {_TABLE}"
        params: list[Any] = []
        if symbols is not None:
            if not symbols:
                return {}
            query += f" WHERE ticker IN ({', '.join('?' for _ in symbols)})"
            params.extend(symbols)
        query += " GROUP BY ticker"
        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return {ticker: coerce_date(latest) for ticker, latest in rows if latest is not None}

    def latest_date(self, symbol: str) -> date | None:
        with self._lock:
            row = self.conn.execute(f"SELECT max(date) FROM {_TABLE} WHERE ticker = ?", [symbol]).fetchone()
        return coerce_date(row[0]) if row else None

    def row_count(self, symbol: str | None = None) -> int:
        query = f"SELECT count(*) FROM {_TABLE}"
        params: list[Any] = []
        if symbol is not None:
            query += " WHERE ticker = ?"
            params.append(symbol)
        with self._lock:
            return int(self.conn.execute(query, params).fetchone()[0])

    def fetch_rows(self, symbol: str) -> list[tuple[Any, ...]]:
        """Stored rows for ``symbol`` ordered by date, in column order."""

        columns = ", ".join(HISTORICAL_DATA_TABLE.column_names)
        with self._lock:
            return self.conn.execute(
                f"SELECT {columns} FROM {_TABLE} WHERE ticker = ? ORDER BY date", [symbol]
            ).fetchall()

    def list_tables(self) -> list[str]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT table_name FROM information_schema.tables WHERE table_schema = 'main' ORDER BY table_name"
            ).fetchall()
        return [row[0] for row in rows]

    def table_count(self, name: str) -> int:
        """Row count of ``name``; the name must be an existing table."""

        if name not in self.list_tables():
            raise StorageError(f"Table {name} does not exist", details={"table": name})
        with self._lock:
            return int(self.conn.execute(f'SELECT count(*) FROM "{name}"').fetchone()[0])

    def split_candidates(self, on_date: date) -> list[str]:
        """Tickers with a split factor other than 1.0 on ``on_date``."""

        with self._lock:
            rows = self.conn.execute(
                f"SELECT DISTINCT ticker FROM {_TABLE} WHERE date = ? AND splitFactor <> 1.0 ORDER BY ticker",
                [on_date],
            ).fetchall()
        return [row[0] for row in rows]


__all__ = ["HistoricalStore", "UPSERT_SQL"]
