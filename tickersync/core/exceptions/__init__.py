"""Exception handling module."""

from tickersync.core.exceptions.base import (
    ConfigurationError,
    ExportError,
    FetchError,
    FetchFailed,
    ReferenceCalendarError,
    StorageConnectionError,
    StorageError,
    TickerSyncError,
    TransientFetchError,
)
from tickersync.core.exceptions.codes import ErrorCode

__all__ = [
    "TickerSyncError",
    "FetchError",
    "TransientFetchError",
    "FetchFailed",
    "StorageError",
    "StorageConnectionError",
    "ReferenceCalendarError",
    "ConfigurationError",
    "ExportError",
    "ErrorCode",
]
