"""Ticker universe commands."""

from __future__ import annotations

from pathlib import Path

import typer

from tickersync.core.data.tickers import (
    create_filtered_tickers,
    get_tickers,
    load_tickers_csv,
    refresh_ticker_universe,
)

from .sync import _parse_asset_type
from .utils import guarded, open_database, prepare_output

tickers_app = typer.Typer(help="Ticker universe operations.")

TICKER_COLUMNS = ["symbol", "exchange", "asset_type", "start_date", "end_date"]


def register(app: typer.Typer) -> None:
    """Register the tickers command group on the provided application."""

    app.add_typer(tickers_app, name="tickers", help="Download and inspect the ticker universe")


@tickers_app.command("refresh")
def refresh_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
    csv: Path | None = typer.Option(
        None,
        "--csv",
        exists=True,
        dir_okay=False,
        help="Load a local supported_tickers.csv instead of downloading.",
    ),
    workdir: Path | None = typer.Option(None, "--workdir", help="Directory for temporary download files."),
) -> None:
    """Rebuild us_tickers and us_tickers_filtered."""

    formatter, stream, stack, options = prepare_output(ctx)
    config = options.config
    try:
        with guarded(), open_database(db, config) as conn:
            if csv is not None:
                loaded = load_tickers_csv(conn, csv)
                filtered = create_filtered_tickers(conn, config.filtering)
            else:
                filtered = refresh_ticker_universe(conn, config.api.tickers_url, workdir, filters=config.filtering)
                loaded = int(conn.execute("SELECT count(*) FROM us_tickers").fetchone()[0])
        formatter.render([{"loaded": loaded, "filtered": filtered}], stream=stream, columns=["loaded", "filtered"])
    finally:
        stack.close()


@tickers_app.command("list")
def list_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
    asset_type: str | None = typer.Option(None, "--asset-type", help="Restrict to Stock or ETF."),
) -> None:
    """List the filtered ticker universe."""

    kind = _parse_asset_type(asset_type)
    formatter, stream, stack, options = prepare_output(ctx)
    try:
        with guarded(), open_database(db, options.config) as conn:
            tickers = get_tickers(conn, kind)
        rows = [
            {
                "symbol": ticker.symbol,
                "exchange": ticker.exchange,
                "asset_type": ticker.asset_type,
                "start_date": ticker.start_date.isoformat(),
                "end_date": ticker.end_date.isoformat(),
            }
            for ticker in tickers
        ]
        formatter.render(rows, stream=stream, columns=TICKER_COLUMNS)
    finally:
        stack.close()


__all__ = ["register", "tickers_app"]
