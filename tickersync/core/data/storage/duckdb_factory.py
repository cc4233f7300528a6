"""Opening, checking and tuning DuckDB database files."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import duckdb
from loguru import logger

from tickersync.core.exceptions import StorageConnectionError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from duckdb import DuckDBPyConnection


def _setting_literal(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


def apply_settings(conn: DuckDBPyConnection, settings: Mapping[str, object]) -> None:
    """Run ``SET name = value`` for each entry; values are rendered as SQL literals."""

    for name, value in settings.items():
        conn.execute(f"SET {name} = {_setting_literal(value)}")


@dataclass(frozen=True)
class DuckDBFactoryConfig:
    database: str | Path = ":memory:"
    read_only: bool = False
    settings: Mapping[str, object] = field(default_factory=dict)


class DuckDBFactory:
    """Opens connections to one database with the same settings every time."""

    def __init__(self, config: DuckDBFactoryConfig | None = None) -> None:
        self._config = config or DuckDBFactoryConfig()

    @property
    def database(self) -> str:
        return str(self._config.database)

    def create_connection(self) -> DuckDBPyConnection:
        """Open the database and apply the configured settings.

        Raises:
            StorageConnectionError: DuckDB cannot open the file
        """
        try:
            conn = duckdb.connect(database=self.database, read_only=self._config.read_only)
        except duckdb.Error as exc:
            message = f"Cannot open DuckDB database {self.database}: {exc}"
            raise StorageConnectionError(message, path=self.database) from exc
        apply_settings(conn, self._config.settings)
        logger.debug("Opened DuckDB database {}", self.database)
        return conn

    @contextmanager
    def connection(self) -> Iterator[DuckDBPyConnection]:
        conn = self.create_connection()
        try:
            yield conn
        finally:
            conn.close()


def connect_duckdb(path: str | Path = ":memory:", *, threads: int | None = None) -> DuckDBPyConnection:
    """Open ``path`` with optional thread setting; raises ``StorageConnectionError``."""

    settings = {"threads": threads} if threads is not None else {}
    return DuckDBFactory(DuckDBFactoryConfig(database=path, settings=settings)).create_connection()


def verify_duckdb_integrity(path: str | Path) -> bool:
    """Return ``True`` when ``path`` opens and answers a trivial query."""

    if not Path(path).exists():
        logger.error("DuckDB file does not exist: {}", path)
        return False
    try:
        conn = duckdb.connect(database=str(path), read_only=True)
    except duckdb.Error as exc:
        logger.error("DuckDB integrity check failed for {}: {}", path, exc)
        return False
    try:
        conn.execute("SELECT 1").fetchone()
        conn.execute("SELECT count(*) FROM information_schema.tables").fetchone()
    except duckdb.Error as exc:
        logger.error("DuckDB integrity check failed for {}: {}", path, exc)
        return False
    finally:
        conn.close()
    logger.info("DuckDB integrity check passed for {}", path)
    return True


def optimize_database(
    conn: DuckDBPyConnection,
    *,
    memory_limit: str | None = None,
    threads: int | None = None,
) -> None:
    """Apply resource settings and run ``VACUUM`` and ``ANALYZE``."""

    settings: dict[str, object] = {}
    if memory_limit:
        settings["memory_limit"] = memory_limit
    if threads:
        settings["threads"] = threads
    apply_settings(conn, settings)
    conn.execute("VACUUM")
    conn.execute("ANALYZE")
    logger.info("Database optimization complete")


__all__ = [
    "DuckDBFactory",
    "DuckDBFactoryConfig",
    "apply_settings",
    "connect_duckdb",
    "optimize_database",
    "verify_duckdb_integrity",
]
