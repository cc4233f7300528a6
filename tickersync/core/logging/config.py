"""Settings model for the sync engine's log output."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class LogConfig(BaseModel):
    """Where sync events go and how they are rendered.

    ``stream`` defaults to ``sys.stderr``; ``file_path`` adds a JSON-lines
    file next to it. ``secrets`` are masked in every rendered message.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    level: str = "INFO"
    stream: Any = None
    console: bool = True
    file_path: str | None = None
    serialize: bool = True
    colorize: bool = False
    secrets: tuple[str, ...] = ()

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LEVELS:
            raise ValueError(f"Unknown log level '{value}'. Expected one of: {', '.join(LEVELS)}")
        return level


__all__ = ["LEVELS", "LogConfig"]
