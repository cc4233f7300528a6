"""Sync commands: incremental update, split refresh, single-ticker backfill and fundamentals lookup."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Sequence
from contextlib import suppress
from datetime import date, datetime
from pathlib import Path

import typer

from tickersync.core.client.fetch import FetchClient
from tickersync.core.config.settings import TickerSyncConfig, get_api_key
from tickersync.core.data.storage import HistoricalStore
from tickersync.core.data.tickers import get_tickers
from tickersync.core.models.outcome import EntityOutcome, OutcomeKind, SyncResult
from tickersync.core.models.ticker import Ticker
from tickersync.core.services.sync import SyncService

from .utils import guarded, open_database, prepare_output, split_symbols

RESULT_COLUMNS = ["symbol", "status", "outcome", "rows", "start", "end", "error"]

ASSET_TYPES = ("Stock", "ETF")


def register(app: typer.Typer) -> None:
    """Register sync commands on the root CLI application."""

    app.command("sync")(sync_command)
    app.command("splits")(splits_command)
    app.command("add")(add_command)
    app.command("fundamentals")(fundamentals_command)


def resolve_api_key(config: TickerSyncConfig) -> str:
    """Factory hook returning the API key."""

    return get_api_key(config.api.api_key_env)


def get_fetch_client(api_key: str, config: TickerSyncConfig) -> FetchClient:
    """Factory hook returning the client used for remote fetches."""

    return FetchClient(api_key, config.api)


def sync_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
    asset_type: str | None = typer.Option(None, "--asset-type", help="Restrict to Stock or ETF."),
    symbols: str | None = typer.Option(None, "--symbols", help="Comma separated list of symbols."),
    concurrency: int | None = typer.Option(None, "--concurrency", min=1, help="Concurrent fetches."),
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Tickers per batch."),
    add_missing: bool = typer.Option(
        True,
        "--add-missing/--skip-missing",
        help="Backfill tickers with no stored history.",
    ),
    sequential: bool = typer.Option(False, "--sequential", help="Process one ticker at a time."),
) -> None:
    """Bring historical_data up to date for the filtered ticker universe."""

    kind = _parse_asset_type(asset_type)
    formatter, stream, stack, options = prepare_output(ctx)
    config = options.config
    try:
        with guarded():
            api_key = resolve_api_key(config)
            with open_database(db, config) as conn:
                entities = get_tickers(conn, kind, symbols=split_symbols(symbols) or None)
                result = asyncio.run(
                    _run_sync(
                        conn,
                        config,
                        api_key,
                        entities,
                        concurrency_limit=concurrency,
                        batch_size=batch_size,
                        add_missing=add_missing,
                        sequential=sequential,
                    )
                )
        formatter.render(result_rows(result), stream=stream, columns=RESULT_COLUMNS)
    finally:
        stack.close()
    typer.echo(summary_line(result), err=True)


def splits_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
) -> None:
    """Re-fetch full history for tickers with a split on the latest trading day."""

    formatter, stream, stack, options = prepare_output(ctx)
    config = options.config
    try:
        with guarded():
            api_key = resolve_api_key(config)
            with open_database(db, config) as conn:
                entities = get_tickers(conn)
                result = asyncio.run(_run_splits(conn, config, api_key, entities))
        formatter.render(result_rows(result), stream=stream, columns=RESULT_COLUMNS)
    finally:
        stack.close()
    typer.echo(summary_line(result), err=True)


def add_command(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Ticker to backfill."),
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
) -> None:
    """Backfill the full history of a single ticker."""

    formatter, stream, stack, options = prepare_output(ctx)
    config = options.config
    try:
        with guarded():
            api_key = resolve_api_key(config)
            with open_database(db, config) as conn:
                outcome = asyncio.run(_run_add(conn, config, api_key, symbol.strip().upper()))
        formatter.render([outcome_row(outcome)], stream=stream, columns=RESULT_COLUMNS)
    finally:
        stack.close()
    if outcome.kind is OutcomeKind.ERROR:
        raise typer.Exit(code=1)


def fundamentals_command(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Ticker to look up."),
    start: datetime | None = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="First date (YYYY-MM-DD)."),
    end: datetime | None = typer.Option(None, "--end", formats=["%Y-%m-%d"], help="Last date (YYYY-MM-DD)."),
) -> None:
    """Print daily fundamentals (market cap, ratios) for one ticker; nothing is stored."""

    formatter, stream, stack, options = prepare_output(ctx)
    config = options.config
    try:
        with guarded():
            api_key = resolve_api_key(config)
            rows = asyncio.run(
                _run_fundamentals(
                    config,
                    api_key,
                    symbol.strip().upper(),
                    start.date() if start else None,
                    end.date() if end else None,
                )
            )
        formatter.render(rows, stream=stream)
    finally:
        stack.close()


async def _run_sync(
    conn,
    config: TickerSyncConfig,
    api_key: str,
    entities: Sequence[Ticker],
    **options,
) -> SyncResult:
    store = HistoricalStore(conn)
    async with get_fetch_client(api_key, config) as client:
        service = SyncService(config, store=store, client=client)
        loop = asyncio.get_running_loop()
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGINT, service.request_stop)
        try:
            return await service.run(entities, **options)
        finally:
            with suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signal.SIGINT)


async def _run_splits(conn, config: TickerSyncConfig, api_key: str, entities: Sequence[Ticker]) -> SyncResult:
    store = HistoricalStore(conn)
    async with get_fetch_client(api_key, config) as client:
        service = SyncService(config, store=store, client=client)
        return await service.update_split_tickers(entities)


async def _run_add(conn, config: TickerSyncConfig, api_key: str, symbol: str) -> EntityOutcome:
    store = HistoricalStore(conn)
    async with get_fetch_client(api_key, config) as client:
        service = SyncService(config, store=store, client=client)
        return await service.add_ticker(symbol)


async def _run_fundamentals(
    config: TickerSyncConfig, api_key: str, symbol: str, start: date | None, end: date | None
) -> list[dict]:
    async with get_fetch_client(api_key, config) as client:
        return await client.fetch_daily_fundamentals(symbol, start, end)


def _parse_asset_type(value: str | None) -> str | None:
    if value is None:
        return None
    for allowed in ASSET_TYPES:
        if value.strip().lower() == allowed.lower():
            return allowed
    raise typer.BadParameter(
        f"Unsupported asset type '{value}'. Allowed values: {', '.join(ASSET_TYPES)}",
        param_hint="--asset-type",
    )


def _status(kind: OutcomeKind) -> str:
    if kind is OutcomeKind.UPDATED:
        return "updated"
    if kind is OutcomeKind.ERROR:
        return "error"
    if kind.is_missing:
        return "missing"
    return "unchanged"


def outcome_row(outcome: EntityOutcome) -> dict[str, object]:
    sync_range = outcome.range
    return {
        "symbol": outcome.symbol,
        "status": _status(outcome.kind),
        "outcome": outcome.kind.value,
        "rows": outcome.rows_written,
        "start": sync_range.start.isoformat() if sync_range and sync_range.start else None,
        "end": sync_range.end.isoformat() if sync_range and sync_range.end else None,
        "error": outcome.error.message if outcome.error else None,
    }


def result_rows(result: SyncResult) -> list[dict[str, object]]:
    """One row per updated, missing or errored ticker, ordered by symbol."""

    listed = result.updated | result.missing | result.errored
    ordered = sorted(result.outcomes, key=lambda outcome: outcome.symbol)
    return [outcome_row(outcome) for outcome in ordered if outcome.symbol in listed]


def summary_line(result: SyncResult) -> str:
    line = (
        f"updated={len(result.updated)} missing={len(result.missing)} "
        f"errored={len(result.errored)} rows={result.rows_written}"
    )
    if result.stopped:
        line += f" stopped pending={len(result.pending)}"
    return line


__all__ = ["register", "result_rows", "summary_line"]
