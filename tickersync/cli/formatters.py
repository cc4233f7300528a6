"""Renderers for CLI result rows: a rich table for terminals, JSON lines for pipes."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import TextIO

from rich.box import SIMPLE_HEAD
from rich.console import Console
from rich.table import Table
from rich.text import Text

Row = Mapping[str, object]

STATUS_STYLES = {
    "updated": "green",
    "missing": "yellow",
    "error": "bold red",
    "unchanged": "dim",
}


def _columns_for(rows: Sequence[Row], columns: Sequence[str] | None) -> list[str]:
    if columns:
        return list(columns)
    return list(rows[0]) if rows else []


class OutputFormatter:
    """Writes a list of flat rows to a text stream."""

    name: str

    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class TableFormatter(OutputFormatter):
    """Rich table; the ``status`` column is coloured unless ``no_color`` is set."""

    name: str = "table"
    no_color: bool = False

    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        console = Console(file=stream, no_color=self.no_color, highlight=False, soft_wrap=True)
        names = _columns_for(rows, columns)
        if not rows:
            console.print("No rows.")
            return

        table = Table(box=SIMPLE_HEAD, header_style=None if self.no_color else "bold")
        for column in names:
            table.add_column(column, justify="right" if column == "rows" else "left")
        for row in rows:
            table.add_row(*(self._cell(column, row.get(column)) for column in names))
        console.print(table)

    def _cell(self, column: str, value: object) -> Text:
        if value is None:
            return Text("-", style="" if self.no_color else "dim")
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        style = ""
        if column == "status" and not self.no_color:
            style = STATUS_STYLES.get(str(value), "")
        return Text(str(value), style=style)


@dataclass(slots=True)
class JSONLFormatter(OutputFormatter):
    """One JSON object per row, restricted to ``columns`` when given."""

    name: str = "jsonl"

    def render(self, rows: Sequence[Row], *, stream: TextIO, columns: Sequence[str] | None = None) -> None:
        for row in rows:
            record = {column: row.get(column) for column in columns} if columns else dict(row)
            stream.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        stream.flush()


FORMATTERS: dict[str, type[OutputFormatter]] = {"table": TableFormatter, "jsonl": JSONLFormatter}


def create_formatter(name: str, *, no_color: bool = False) -> OutputFormatter:
    """Build the formatter registered under ``name``.

    Raises:
        ValueError: ``name`` is not a registered format
    """
    key = name.strip().lower()
    if key not in FORMATTERS:
        raise ValueError(f"Unsupported format '{name}'. Available formats: {', '.join(FORMATTERS)}.")
    if key == "table":
        return TableFormatter(no_color=no_color)
    return FORMATTERS[key]()


__all__ = ["FORMATTERS", "JSONLFormatter", "OutputFormatter", "STATUS_STYLES", "TableFormatter", "create_formatter"]
