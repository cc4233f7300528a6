"""tickersync - incremental daily price sync into DuckDB.

Brings a local ``historical_data`` table up to date for a list of tickers,
fetching only the dates each ticker is missing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from tickersync.core.client.fetch import FetchClient
from tickersync.core.config.settings import TickerSyncConfig, get_api_key
from tickersync.core.data.storage import HistoricalStore, connect_duckdb
from tickersync.core.logging.observer import SyncObserver
from tickersync.core.models.outcome import SyncResult
from tickersync.core.models.ticker import Ticker
from tickersync.core.services.sync import SyncService

__version__ = "0.1.0"


async def sync_run(
    entities: Sequence[Ticker | dict[str, Any]],
    api_key: str | None = None,
    *,
    concurrency_limit: int | None = None,
    batch_size: int | None = None,
    add_missing: bool | None = None,
    sequential: bool = False,
    db_path: str | Path | None = None,
    config: TickerSyncConfig | None = None,
    observer: SyncObserver | None = None,
) -> SyncResult:
    """Open the store, run one sync and return the full :class:`SyncResult`.

    Raises:
        StorageConnectionError: the database could not be opened
        ReferenceCalendarError: the reference end date could not be resolved
    """
    config = config or TickerSyncConfig()
    api_key = api_key or get_api_key(config.api.api_key_env)
    conn = connect_duckdb(db_path or config.storage.duckdb_path, threads=config.storage.threads)
    try:
        store = HistoricalStore(conn)
        async with FetchClient(api_key, config.api) as client:
            service = SyncService(config, store=store, client=client, observer=observer)
            return await service.run(
                entities,
                concurrency_limit=concurrency_limit,
                batch_size=batch_size,
                add_missing=add_missing,
                sequential=sequential,
            )
    finally:
        conn.close()


async def sync_async(
    entities: Sequence[Ticker | dict[str, Any]],
    api_key: str | None = None,
    *,
    concurrency_limit: int | None = None,
    batch_size: int | None = None,
    add_missing: bool | None = None,
    db_path: str | Path | None = None,
    config: TickerSyncConfig | None = None,
) -> tuple[set[str], set[str]]:
    """Awaitable form of :func:`sync`."""
    result = await sync_run(
        entities,
        api_key,
        concurrency_limit=concurrency_limit,
        batch_size=batch_size,
        add_missing=add_missing,
        db_path=db_path,
        config=config,
    )
    return result.public()


def sync(
    entities: Sequence[Ticker | dict[str, Any]],
    api_key: str | None = None,
    *,
    concurrency_limit: int | None = None,
    batch_size: int | None = None,
    add_missing: bool | None = None,
    db_path: str | Path | None = None,
    config: TickerSyncConfig | None = None,
) -> tuple[set[str], set[str]]:
    """Sync ``entities`` with bounded concurrency.

    Returns:
        ``(updated, missing)``; tickers that failed are counted as missing.
    """
    return asyncio.run(
        sync_async(
            entities,
            api_key,
            concurrency_limit=concurrency_limit,
            batch_size=batch_size,
            add_missing=add_missing,
            db_path=db_path,
            config=config,
        )
    )


def sync_sequential(
    entities: Sequence[Ticker | dict[str, Any]],
    api_key: str | None = None,
    *,
    add_missing: bool | None = None,
    batch_size: int | None = None,
    db_path: str | Path | None = None,
    config: TickerSyncConfig | None = None,
) -> tuple[set[str], set[str]]:
    """Single-task variant of :func:`sync` with row-by-row writes."""
    result = asyncio.run(
        sync_run(
            entities,
            api_key,
            batch_size=batch_size,
            add_missing=add_missing,
            sequential=True,
            db_path=db_path,
            config=config,
        )
    )
    return result.public()


__all__ = [
    "SyncResult",
    "SyncService",
    "Ticker",
    "TickerSyncConfig",
    "__version__",
    "sync",
    "sync_async",
    "sync_run",
    "sync_sequential",
]
