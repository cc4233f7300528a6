"""Structured logging and sync progress reporting."""

from tickersync.core.logging.config import LogConfig
from tickersync.core.logging.logger import (
    apply_config,
    configure_logging,
    get_logger,
    log_context,
    logger,
    mask_secret,
)
from tickersync.core.logging.observer import LoggingObserver, NullObserver, SyncObserver

__all__ = [
    "LogConfig",
    "LoggingObserver",
    "NullObserver",
    "SyncObserver",
    "apply_config",
    "configure_logging",
    "get_logger",
    "log_context",
    "logger",
    "mask_secret",
]
