"""Storage layer."""

from tickersync.core.data.storage.database import HistoricalStore
from tickersync.core.data.storage.duckdb_factory import (
    DuckDBFactory,
    DuckDBFactoryConfig,
    apply_settings,
    connect_duckdb,
    optimize_database,
    verify_duckdb_integrity,
)

__all__ = [
    "DuckDBFactory",
    "DuckDBFactoryConfig",
    "HistoricalStore",
    "apply_settings",
    "connect_duckdb",
    "optimize_database",
    "verify_duckdb_integrity",
]
