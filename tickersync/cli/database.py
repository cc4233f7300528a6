"""Database maintenance and PostgreSQL export commands."""

from __future__ import annotations

from pathlib import Path

import typer

from tickersync.core.data.postgres import export_to_postgres
from tickersync.core.data.schema import HISTORICAL_DATA_TABLE, create_indexes
from tickersync.core.data.storage import HistoricalStore, optimize_database, verify_duckdb_integrity

from .constants import STORAGE_EXIT_CODE
from .utils import emit_error, get_cli_options, guarded, open_database, prepare_output

db_app = typer.Typer(help="Database maintenance.")


def register(app: typer.Typer) -> None:
    """Register database commands on the root CLI application."""

    app.command("export")(export_command)
    app.add_typer(db_app, name="db", help="Inspect and maintain the DuckDB database")


def export_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
    tables: list[str] = typer.Option(
        [HISTORICAL_DATA_TABLE.name],
        "--table",
        "-t",
        help="Table to mirror; repeat for several tables.",
    ),
) -> None:
    """Mirror DuckDB tables into PostgreSQL."""

    formatter, stream, stack, options = prepare_output(ctx)
    config = options.config
    try:
        with guarded(), open_database(db, config) as conn:
            exported = export_to_postgres(conn, tables, config.postgres)
        rows = [{"table": table, "rows": count} for table, count in exported.items()]
        formatter.render(rows, stream=stream, columns=["table", "rows"])
    finally:
        stack.close()


@db_app.command("info")
def info_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
) -> None:
    """Show tables and their row counts."""

    formatter, stream, stack, options = prepare_output(ctx)
    try:
        with guarded(), open_database(db, options.config) as conn:
            store = HistoricalStore(conn)
            rows = [{"table": table, "rows": store.table_count(table)} for table in store.list_tables()]
        formatter.render(rows, stream=stream, columns=["table", "rows"])
    finally:
        stack.close()


@db_app.command("verify")
def verify_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
) -> None:
    """Check that the database file opens and answers queries."""

    path = db or Path(get_cli_options(ctx).config.storage.duckdb_path)
    if not verify_duckdb_integrity(path):
        emit_error(f"Integrity check failed for {path}", "STORAGE_CONNECTION_ERROR", details={"path": str(path)})
        raise typer.Exit(code=STORAGE_EXIT_CODE)
    typer.echo(f"{path}: ok")


@db_app.command("optimize")
def optimize_command(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="DuckDB database path."),
    memory_limit: str | None = typer.Option(None, "--memory-limit", help="DuckDB memory limit, e.g. 4GB."),
    threads: int | None = typer.Option(None, "--threads", min=1, help="DuckDB worker threads."),
) -> None:
    """Create indexes and run VACUUM and ANALYZE."""

    config = get_cli_options(ctx).config
    with guarded(), open_database(db, config) as conn:
        HistoricalStore(conn)
        create_indexes(conn)
        optimize_database(conn, memory_limit=memory_limit, threads=threads)
    typer.echo("optimized")


__all__ = ["db_app", "register"]
