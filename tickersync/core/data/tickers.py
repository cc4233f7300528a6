"""Ticker universe: download, load, filter and query."""

from __future__ import annotations

import tempfile
import zipfile
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import duckdb
import httpx
from loguru import logger

from tickersync.core.config.settings import FilterConfig
from tickersync.core.data.schema import US_TICKERS_FILTERED, US_TICKERS_TABLE
from tickersync.core.exceptions import StorageError
from tickersync.core.models.ticker import Ticker

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

CSV_NAME = "supported_tickers.csv"


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def download_tickers_zip(url: str, destination: Path, *, client: httpx.Client | None = None) -> Path:
    """Stream the supported-tickers archive to ``destination``."""

    owns_client = client is None
    http = client or httpx.Client(timeout=httpx.Timeout(60.0, connect=10.0), follow_redirects=True)
    try:
        with http.stream("GET", url) as response:
            response.raise_for_status()
            with destination.open("wb") as handle:
                for chunk in response.iter_bytes():
                    handle.write(chunk)
    finally:
        if owns_client:
            http.close()
    logger.info("Downloaded ticker archive to {}", destination)
    return destination


def extract_tickers_csv(archive: Path, workdir: Path) -> Path:
    """Extract the CSV member of ``archive`` into ``workdir``."""

    with zipfile.ZipFile(archive) as zf:
        members = [name for name in zf.namelist() if name.endswith(".csv")]
        if not members:
            raise ValueError(f"{archive} contains no CSV file")
        member = CSV_NAME if CSV_NAME in members else members[0]
        return Path(zf.extract(member, path=workdir))


def load_tickers_csv(conn: DuckDBPyConnection, path: str | Path) -> int:
    """Replace the contents of ``us_tickers`` with the rows of ``path``."""

    US_TICKERS_TABLE.ensure(conn)
    conn.execute("BEGIN TRANSACTION")
    try:
        conn.execute(f"DELETE FROM {US_TICKERS_TABLE.name}")
        conn.execute(
            f"""
            INSERT INTO {US_TICKERS_TABLE.name}
            SELECT ticker, exchange, assetType, priceCurrency,
                   TRY_CAST(startDate AS DATE), TRY_CAST(endDate AS DATE)
            FROM read_csv({_sql_literal(str(path))}, header = true, all_varchar = true)
            """
        )
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
    count = int(conn.execute(f"SELECT count(*) FROM {US_TICKERS_TABLE.name}").fetchone()[0])
    logger.info("Loaded {} tickers into {}", count, US_TICKERS_TABLE.name)
    return count


def create_filtered_tickers(conn: DuckDBPyConnection, filters: FilterConfig | None = None) -> int:
    """Rebuild ``us_tickers_filtered`` from ``us_tickers``.

    Keeps supported exchanges and asset types, drops symbols containing a
    ``/`` and tickers whose ``endDate`` is older than the newest stock
    ``endDate`` (delisted instruments).
    """
    filters = filters or FilterConfig()
    if not filters.supported_exchanges or not filters.supported_asset_types:
        raise ValueError("At least one exchange and one asset type are required")

    total = int(conn.execute(f"SELECT count(*) FROM {US_TICKERS_TABLE.name}").fetchone()[0])
    if total == 0:
        raise ValueError(f"{US_TICKERS_TABLE.name} is empty")

    exchanges = ", ".join("?" for _ in filters.supported_exchanges)
    asset_types = ", ".join("?" for _ in filters.supported_asset_types)
    conn.execute(
        f"""
        CREATE OR REPLACE TABLE {US_TICKERS_FILTERED} AS
        SELECT * FROM {US_TICKERS_TABLE.name}
        WHERE exchange IN ({exchanges})
          AND assetType IN ({asset_types})
          AND endDate >= (SELECT max(endDate) FROM {US_TICKERS_TABLE.name} WHERE assetType = 'Stock')
          AND ticker NOT LIKE '%/%'
        """,
        [*filters.supported_exchanges, *filters.supported_asset_types],
    )
    count = int(conn.execute(f"SELECT count(*) FROM {US_TICKERS_FILTERED}").fetchone()[0])
    if count == 0:
        logger.warning("{} was created but contains no rows", US_TICKERS_FILTERED)
    else:
        logger.info("Filtered {} of {} tickers into {}", count, total, US_TICKERS_FILTERED)
    return count


def refresh_ticker_universe(
    conn: DuckDBPyConnection,
    url: str,
    workdir: str | Path | None = None,
    *,
    filters: FilterConfig | None = None,
    client: httpx.Client | None = None,
) -> int:
    """Download the supported-tickers archive and rebuild both ticker tables.

    Temporary files are removed afterwards. Returns the filtered row count.
    """
    with tempfile.TemporaryDirectory(dir=workdir) as tmp:
        tmp_path = Path(tmp)
        archive = download_tickers_zip(url, tmp_path / "supported_tickers.zip", client=client)
        csv_path = extract_tickers_csv(archive, tmp_path)
        load_tickers_csv(conn, csv_path)
    return create_filtered_tickers(conn, filters)


def get_tickers(
    conn: DuckDBPyConnection,
    asset_type: str | None = None,
    *,
    symbols: Sequence[str] | None = None,
) -> list[Ticker]:
    """Tickers from ``us_tickers_filtered`` ordered by symbol."""

    query = f"""
        SELECT ticker, exchange, assetType, priceCurrency, startDate, endDate
        FROM {US_TICKERS_FILTERED}
        WHERE startDate IS NOT NULL AND endDate IS NOT NULL
    """
    params: list[object] = []
    if asset_type is not None:
        query += " AND assetType = ?"
        params.append(asset_type)
    if symbols:
        query += f" AND ticker IN ({', '.join('?' for _ in symbols)})"
        params.extend(symbols)
    query += " ORDER BY ticker"
    try:
        rows = conn.execute(query, params).fetchall()
    except duckdb.Error as exc:
        raise StorageError(
            f"Could not read {US_TICKERS_FILTERED}; refresh the ticker universe first: {exc}",
            details={"table": US_TICKERS_FILTERED},
        ) from exc
    return [
        Ticker(
            symbol=ticker,
            exchange=exchange,
            asset_type=kind,
            price_currency=currency,
            start_date=start,
            end_date=end,
        )
        for ticker, exchange, kind, currency, start, end in rows
    ]


__all__ = [
    "create_filtered_tickers",
    "download_tickers_zip",
    "extract_tickers_csv",
    "get_tickers",
    "load_tickers_csv",
    "refresh_ticker_universe",
]
