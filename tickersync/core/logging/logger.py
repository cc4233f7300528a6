"""loguru setup for sync runs: JSON lines, trace ids and secret masking."""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import IO, Any, Iterator
from uuid import uuid4

from loguru import logger

from tickersync.core.logging.config import LogConfig

_TRACE_ID: ContextVar[str | None] = ContextVar("tickersync_trace_id", default=None)
_CONTEXT: ContextVar[dict[str, Any]] = ContextVar("tickersync_log_context", default={})

# Extra keys lifted to the top level of every JSON record.
TOP_LEVEL_KEYS = ("symbol", "error_code", "operation")

_MASK = "***"
_secrets: set[str] = set()


def mask_secret(value: str | None) -> None:
    """Never render ``value`` (an API key or password) in log output."""

    if value:
        _secrets.add(value)


def _masked(text: str) -> str:
    for secret in _secrets:
        text = text.replace(secret, _MASK)
    return text


def _trace_id() -> str:
    trace_id = _TRACE_ID.get()
    if trace_id is None:
        trace_id = uuid4().hex
        _TRACE_ID.set(trace_id)
    return trace_id


def _enrich(record: dict[str, Any]) -> None:
    extra = record["extra"]
    extra.setdefault("trace_id", _trace_id())
    for key, value in _CONTEXT.get().items():
        if extra.get(key) is None:
            extra[key] = value
    for key in TOP_LEVEL_KEYS:
        extra.setdefault(key, None)
    record["message"] = _masked(record["message"])


def _render(record: dict[str, Any]) -> str:
    extra = record["extra"]
    payload: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "trace_id": extra.get("trace_id"),
    }
    payload.update({key: extra.get(key) for key in TOP_LEVEL_KEYS})
    context = {k: v for k, v in extra.items() if k != "trace_id" and k not in TOP_LEVEL_KEYS}
    if context:
        payload["context"] = context
    if record["exception"] is not None:
        payload["exception"] = _masked(repr(record["exception"].value))
    return _masked(json.dumps(payload, default=str))


class JsonLineSink:
    """Writes one JSON object per record to a stream or appends it to a file."""

    def __init__(self, target: IO[str] | str | Path) -> None:
        self._stream: IO[str] | None = None
        self._path: Path | None = None
        if isinstance(target, (str, Path)):
            self._path = Path(target)
            self._path.parent.mkdir(parents=True, exist_ok=True)
        else:
            self._stream = target

    def __call__(self, message: Any) -> None:
        line = _render(message.record) + "\n"
        if self._path is not None:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line)
            return
        self._stream.write(line)
        self._stream.flush()


def apply_config(config: LogConfig) -> None:
    """Replace every loguru handler according to ``config``."""

    for secret in config.secrets:
        mask_secret(secret)
    handlers: list[dict[str, Any]] = []
    if config.console:
        stream = config.stream or sys.stderr
        if config.serialize:
            handlers.append({"sink": JsonLineSink(stream), "level": config.level})
        else:
            handlers.append({"sink": stream, "level": config.level, "colorize": config.colorize})
    if config.file_path:
        handlers.append({"sink": JsonLineSink(config.file_path), "level": config.level})
    logger.configure(handlers=handlers, patcher=_enrich)


def configure_logging(level: str = "INFO", **options: Any) -> LogConfig:
    """Configure loguru for a sync run; see :class:`LogConfig` for ``options``.

    Raises:
        ValueError: ``level`` is not a loguru level name
    """
    config = LogConfig(level=level, **options)
    apply_config(config)
    return config


def get_logger(name: str | None = None):
    """Return the loguru logger, bound to ``name`` when given."""

    return logger.bind(logger_name=name) if name else logger


@contextmanager
def log_context(*, trace_id: str | None = None, **values: Any) -> Iterator[str]:
    """Tag every record emitted inside the block with a trace id and ``values``."""

    context_token = _CONTEXT.set({**_CONTEXT.get(), **values})
    active = trace_id or uuid4().hex
    trace_token = _TRACE_ID.set(active)
    try:
        yield active
    finally:
        _TRACE_ID.reset(trace_token)
        _CONTEXT.reset(context_token)


__all__ = [
    "JsonLineSink",
    "TOP_LEVEL_KEYS",
    "apply_config",
    "configure_logging",
    "get_logger",
    "log_context",
    "logger",
    "mask_secret",
]
