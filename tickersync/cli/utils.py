"""Plumbing shared by the CLI commands: context options, output streams, error exits."""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator, Mapping
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import typer

from tickersync.core.config.settings import TickerSyncConfig
from tickersync.core.data.storage import connect_duckdb
from tickersync.core.exceptions import (
    ConfigurationError,
    ExportError,
    ReferenceCalendarError,
    StorageConnectionError,
    StorageError,
    TickerSyncError,
)

from .constants import EXPORT_EXIT_CODE, STORAGE_EXIT_CODE, SYSTEM_EXIT_CODE, VALIDATION_EXIT_CODE
from .formatters import OutputFormatter, create_formatter

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# Most specific first; anything else is a system failure.
EXIT_CODES: tuple[tuple[type[TickerSyncError] | tuple[type[TickerSyncError], ...], int], ...] = (
    (ConfigurationError, VALIDATION_EXIT_CODE),
    ((StorageConnectionError, StorageError, ReferenceCalendarError), STORAGE_EXIT_CODE),
    (ExportError, EXPORT_EXIT_CODE),
)


@dataclass(slots=True)
class CLIOptions:
    """Root callback options as seen by a subcommand."""

    format: str = "table"
    output_path: Path | None = None
    no_color: bool = False
    config: TickerSyncConfig = field(default_factory=TickerSyncConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> CLIOptions:
        return cls(
            format=str(data.get("format") or "table"),
            output_path=data.get("output_path"),
            no_color=bool(data.get("no_color")),
            config=data.get("config") or TickerSyncConfig(),
        )


def get_cli_options(ctx: typer.Context) -> CLIOptions:
    return CLIOptions.from_mapping(ctx.ensure_object(dict))


def prepare_output(ctx: typer.Context) -> tuple[OutputFormatter, TextIO, ExitStack, CLIOptions]:
    """Return the formatter, the target stream and an exit stack the caller must close.

    ``--output`` is opened (and truncated) here, so call this only after
    arguments have been validated.
    """
    options = get_cli_options(ctx)
    formatter = create_formatter(options.format, no_color=options.no_color)
    stack = ExitStack()
    if options.output_path is None:
        return formatter, sys.stdout, stack, options
    try:
        stream = stack.enter_context(Path(options.output_path).open("w", encoding="utf-8"))
    except OSError as exc:
        emit_error(f"Cannot write to '{options.output_path}': {exc}", "OUTPUT_WRITE_ERROR")
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc
    return formatter, stream, stack, options


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item) for item in value]
    return str(value)


def emit_error(message: str, code: str, *, details: Mapping[str, object] | None = None) -> None:
    """Write ``{"code", "message", "details"}`` as one JSON line on stderr."""

    payload: dict[str, object] = {"code": code, "message": message}
    if details:
        payload["details"] = {key: _jsonable(value) for key, value in details.items()}
    typer.echo(json.dumps(payload, ensure_ascii=False), err=True)


def exit_code_for(error: TickerSyncError) -> int:
    for kinds, code in EXIT_CODES:
        if isinstance(error, kinds):
            return code
    return SYSTEM_EXIT_CODE


@contextmanager
def guarded() -> Iterator[None]:
    """Report tickersync and validation errors, then exit with the matching code."""

    try:
        yield
    except TickerSyncError as error:
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=exit_code_for(error)) from error
    except ValueError as error:
        emit_error(str(error), "VALIDATION_ERROR")
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from error


@contextmanager
def open_database(path: Path | None, config: TickerSyncConfig) -> Iterator[DuckDBPyConnection]:
    conn = connect_duckdb(path or config.storage.duckdb_path, threads=config.storage.threads)
    try:
        yield conn
    finally:
        conn.close()


def split_symbols(raw: str | None) -> list[str]:
    """``"aapl, msft,"`` -> ``["AAPL", "MSFT"]``."""

    return [part.strip().upper() for part in (raw or "").split(",") if part.strip()]


__all__ = [
    "CLIOptions",
    "emit_error",
    "exit_code_for",
    "get_cli_options",
    "guarded",
    "open_database",
    "prepare_output",
    "split_symbols",
]
