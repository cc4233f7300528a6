"""Mirror DuckDB tables into PostgreSQL through DuckDB's postgres extension."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

import duckdb
from loguru import logger

from tickersync.core.config.settings import PostgresConfig
from tickersync.core.data.schema import HISTORICAL_DATA_TABLE
from tickersync.core.exceptions import ExportError
from tickersync.core.logging.logger import mask_secret
from tickersync.core.patterns.retry import ExponentialBackoffRetry, RetryConfig, SyncSleep

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

ALIAS = "postgres_db"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# Checked in order; the first substring match wins.
_TYPE_MAP: tuple[tuple[str, str], ...] = (
    ("VARCHAR", "VARCHAR"),
    ("BIGINT", "BIGINT"),
    ("INTEGER", "INTEGER"),
    ("DOUBLE", "DOUBLE PRECISION"),
    ("FLOAT", "REAL"),
    ("BOOLEAN", "BOOLEAN"),
    ("TIMESTAMP", "TIMESTAMP"),
    ("DATE", "DATE"),
)


def validate_identifier(name: str) -> str:
    """Return ``name`` if it is a plain SQL identifier, else raise ``ExportError``."""

    if not _IDENTIFIER.match(name or ""):
        raise ExportError(f"Invalid table name: {name!r}", table=str(name))
    return name


def map_duckdb_to_postgres_type(duckdb_type: str) -> str:
    upper = duckdb_type.upper()
    for key, pg_type in _TYPE_MAP:
        if key in upper:
            return pg_type
    return duckdb_type


def generate_create_table_query(table_name: str, schema: Iterable[tuple[str, str]]) -> str:
    """PostgreSQL DDL for ``table_name`` from ``(column_name, column_type)`` pairs.

    Column names are lowercased; ``historical_data`` gets ``UNIQUE (ticker, date)``.
    """
    name = validate_identifier(table_name).lower()
    columns = [f"{column.lower()} {map_duckdb_to_postgres_type(column_type)}" for column, column_type in schema]
    if not columns:
        raise ExportError(f"Table {name} has no columns", table=name)
    if name == HISTORICAL_DATA_TABLE.name:
        columns.append("UNIQUE (ticker, date)")
    return f"CREATE TABLE IF NOT EXISTS {name} ({', '.join(columns)})"


_LIBPQ_PLAIN = re.compile(r"^[^\s'\\]+$")


def _libpq_value(value: object) -> str:
    """Quote a libpq keyword value when it is empty or holds spaces, quotes or backslashes."""

    text = str(value)
    if _LIBPQ_PLAIN.match(text):
        return text
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _dsn(pg: PostgresConfig) -> str:
    settings: dict[str, object] = {"dbname": pg.dbname, "user": pg.user, "host": pg.host, "port": pg.port}
    password = os.getenv(pg.password_env) if pg.password_env else None
    if password:
        mask_secret(password)
        settings["password"] = password
    return " ".join(f"{key}={_libpq_value(value)}" for key, value in settings.items())


def attach_statement(pg: PostgresConfig) -> str:
    dsn = _dsn(pg).replace("'", "''")
    return f"ATTACH '{dsn}' AS {ALIAS} (TYPE postgres)"


def attach_postgres(conn: DuckDBPyConnection, pg: PostgresConfig) -> None:
    """Load the postgres extension and attach the target database as ``postgres_db``."""

    conn.execute("INSTALL postgres")
    conn.execute("LOAD postgres")
    conn.execute(attach_statement(pg))
    logger.info("Attached PostgreSQL database {} on {}:{}", pg.dbname, pg.host, pg.port)


def detach_postgres(conn: DuckDBPyConnection) -> None:
    conn.execute(f"DETACH DATABASE IF EXISTS {ALIAS}")


def _duckdb_table_exists(conn: DuckDBPyConnection, table: str) -> bool:
    row = conn.execute(
        "SELECT count(*) FROM information_schema.tables WHERE table_catalog = current_database() "
        "AND table_schema = 'main' AND table_name = ?",
        [table],
    ).fetchone()
    return bool(row and row[0])


def _postgres_table_exists(conn: DuckDBPyConnection, table: str) -> bool:
    row = conn.execute(
        "SELECT count(*) FROM duckdb_tables() WHERE database_name = ? AND schema_name = 'public' AND table_name = ?",
        [ALIAS, table],
    ).fetchone()
    return bool(row and row[0])


def _postgres_execute(conn: DuckDBPyConnection, statement: str) -> None:
    conn.execute(f"CALL postgres_execute('{ALIAS}', ?)", [statement])
    conn.execute("CALL pg_clear_cache()")


def _require_duckdb_table(conn: DuckDBPyConnection, table: str) -> str:
    table = validate_identifier(table)
    if not _duckdb_table_exists(conn, table):
        raise ExportError(f"Table {table} does not exist in DuckDB", table=table)
    return table


def backup_table(conn: DuckDBPyConnection, table: str) -> bool:
    """Copy the current PostgreSQL ``table`` to ``<table>_backup``; ``False`` when there is none.

    The target itself is left in place, so this can be retried safely.
    """
    target = validate_identifier(table).lower()
    if not _postgres_table_exists(conn, target):
        return False
    backup = validate_identifier(f"{target}_backup")
    _postgres_execute(conn, f"DROP TABLE IF EXISTS {backup}")
    _postgres_execute(conn, f"CREATE TABLE {backup} AS TABLE {target}")
    logger.info("Existing PostgreSQL table {} kept as {}", target, backup)
    return True


def _copy_rows(conn: DuckDBPyConnection, table: str, target: str) -> int:
    conn.execute(f"INSERT INTO {ALIAS}.public.{target} SELECT * FROM main.{table}")
    return int(conn.execute(f"SELECT count(*) FROM main.{table}").fetchone()[0])


def load_table(conn: DuckDBPyConnection, table: str) -> int:
    """Recreate the PostgreSQL table and fill it from DuckDB; returns the row count.

    Never touches ``<table>_backup``, so a failed attempt can be repeated.
    """
    table = _require_duckdb_table(conn, table)
    schema = [(row[0], row[1]) for row in conn.execute(f"DESCRIBE {table}").fetchall()]
    target = table.lower()
    _postgres_execute(conn, f"DROP TABLE IF EXISTS {target}")
    _postgres_execute(conn, generate_create_table_query(target, schema))
    count = _copy_rows(conn, table, target)
    logger.info("Exported {} rows from {} to PostgreSQL", count, table)
    return count


def export_table(conn: DuckDBPyConnection, table: str) -> int:
    """Back up then reload one table in the attached PostgreSQL database."""

    table = _require_duckdb_table(conn, table)
    backup_table(conn, table)
    return load_table(conn, table)


def _with_retry(
    retry_config: RetryConfig,
    sleep: SyncSleep | None,
    step: Callable[[DuckDBPyConnection, str], Any],
    conn: DuckDBPyConnection,
    table: str,
) -> Any:
    retry = ExponentialBackoffRetry(retry_config, sync_sleep=sleep)
    try:
        return retry.execute_sync(step, conn, table)
    except duckdb.Error as exc:
        raise ExportError(
            f"Export of {table} failed after {retry.attempt_count} attempts: {exc}",
            table=table,
            details={"attempts": retry.attempt_count},
        ) from exc


def export_to_postgres(
    conn: DuckDBPyConnection,
    tables: Sequence[str],
    pg: PostgresConfig | None = None,
    *,
    sleep: SyncSleep | None = None,
) -> dict[str, int]:
    """Mirror ``tables`` to PostgreSQL, retrying each table with exponential backoff.

    Raises:
        ExportError: a table is missing or its export kept failing
    """
    pg = pg or PostgresConfig()
    for table in tables:
        validate_identifier(table)

    retry_config = RetryConfig(
        max_retries=pg.max_retries,
        base_delay=pg.retry_delay,
        max_delay=max(pg.retry_delay * 2 ** max(pg.max_retries - 1, 0), pg.retry_delay),
        retry_on_exceptions=[duckdb.Error],
    )
    exported: dict[str, int] = {}
    try:
        attach_postgres(conn, pg)
    except duckdb.Error as exc:
        raise ExportError(f"Could not attach PostgreSQL database {pg.dbname}: {exc}", table=",".join(tables)) from exc
    try:
        for table in tables:
            _require_duckdb_table(conn, table)
            # One backup per call; load_table retries leave it untouched.
            _with_retry(retry_config, sleep, backup_table, conn, table)
            exported[table] = _with_retry(retry_config, sleep, load_table, conn, table)
    finally:
        detach_postgres(conn)
    return exported


__all__ = [
    "attach_postgres",
    "attach_statement",
    "backup_table",
    "detach_postgres",
    "export_table",
    "export_to_postgres",
    "generate_create_table_query",
    "load_table",
    "map_duckdb_to_postgres_type",
    "validate_identifier",
]
