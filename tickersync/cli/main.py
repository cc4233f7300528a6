"""``tickersync`` console script: root options plus the sync, tickers, db and export commands."""

from __future__ import annotations

from pathlib import Path

import typer

from tickersync.core.config.settings import ConfigManager
from tickersync.core.exceptions import ConfigurationError
from tickersync.core.logging.logger import configure_logging

from .constants import VALIDATION_EXIT_CODE
from .database import register as register_database_commands
from .formatters import FORMATTERS
from .sync import register as register_sync_commands
from .tickers import register as register_ticker_commands
from .utils import emit_error


def create_app() -> typer.Typer:
    app = typer.Typer(add_completion=False, help="Incremental daily price sync into DuckDB")

    @app.callback()
    def main(
        ctx: typer.Context,
        format: str = typer.Option("table", "--format", "-f", help=f"One of: {', '.join(FORMATTERS)}."),
        output: Path | None = typer.Option(None, "--output", "-o", help="Write rows to this file, not stdout."),
        log_level: str | None = typer.Option(None, "--log-level", help="Overrides [logging] level."),
        config_path: Path | None = typer.Option(
            None, "--config", exists=True, dir_okay=False, help="TOML file with [api], [sync], [storage] tables."
        ),
        no_color: bool = typer.Option(False, "--no-color", help="Plain table output."),
    ) -> None:
        output_format = format.strip().lower()
        if output_format not in FORMATTERS:
            raise typer.BadParameter(f"expected one of: {', '.join(FORMATTERS)}", param_hint="--format")

        try:
            config = ConfigManager(config_path).get_config()
        except ConfigurationError as error:
            emit_error(error.message, error.error_code, details=error.details)
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from error

        level = log_level or config.logging.level
        try:
            settings = configure_logging(level, serialize=config.logging.serialize, file_path=config.logging.file)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--log-level") from exc

        ctx.ensure_object(dict).update(
            format=output_format,
            output_path=output,
            log_level=settings.level,
            no_color=no_color,
            config=config,
        )

    register_sync_commands(app)
    register_ticker_commands(app)
    register_database_commands(app)
    return app


app = create_app()
