"""tickersync exception hierarchy."""

from __future__ import annotations

from typing import Any

from tickersync.core.exceptions.codes import ErrorCode


class TickerSyncError(Exception):
    """Base class for every error raised by tickersync."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode | str = ErrorCode.GENERAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        """Initialise the error.

        Args:
            message: human readable message
            error_code: code used by log records and the CLI
            details: extra structured context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code.value if isinstance(error_code, ErrorCode) else error_code
        self.details = details or {}


class FetchError(TickerSyncError):
    """Errors raised while fetching records from the remote API."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        symbol: str,
        error_code: ErrorCode | str = ErrorCode.FETCH_FAILED,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details["symbol"] = symbol
        if status_code is not None:
            super_details["status_code"] = status_code
        super().__init__(message, error_code, super_details)
        self.symbol = symbol
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Rate-limit, server-side or transport failure worth retrying."""

    retryable = True

    def __init__(
        self,
        message: str,
        symbol: str,
        status_code: int | None = None,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if retry_after is not None:
            super_details["retry_after"] = retry_after
        code = ErrorCode.RATE_LIMITED if status_code == 429 else ErrorCode.FETCH_TRANSIENT
        super().__init__(message, symbol, code, status_code, super_details)
        self.retry_after = retry_after


class FetchFailed(FetchError):
    """Terminal fetch failure for a single ticker."""

    def __init__(
        self,
        message: str,
        symbol: str,
        status_code: int | None = None,
        error_code: ErrorCode | str = ErrorCode.FETCH_FAILED,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, symbol, error_code, status_code, details)


class StorageError(TickerSyncError):
    """A storage transaction failed and was rolled back."""

    def __init__(
        self,
        message: str,
        symbol: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if symbol is not None:
            super_details["symbol"] = symbol
        super().__init__(message, ErrorCode.STORAGE_ERROR, super_details)
        self.symbol = symbol


class StorageConnectionError(TickerSyncError):
    """The DuckDB database could not be opened; fatal for a run."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, ErrorCode.STORAGE_CONNECTION_ERROR, {"path": path} if path else None)
        self.path = path


class ReferenceCalendarError(TickerSyncError):
    """The reference calendar ticker could not be resolved at all."""

    def __init__(self, message: str, reference_symbol: str):
        super().__init__(message, ErrorCode.REFERENCE_CALENDAR_ERROR, {"reference_symbol": reference_symbol})
        self.reference_symbol = reference_symbol


class ConfigurationError(TickerSyncError):
    """Invalid or incomplete configuration."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, {"key": key} if key else None)
        self.key = key


class ExportError(TickerSyncError):
    """Mirroring a table to PostgreSQL failed."""

    def __init__(self, message: str, table: str, details: dict[str, Any] | None = None):
        super_details = details or {}
        super_details["table"] = table
        super().__init__(message, ErrorCode.EXPORT_ERROR, super_details)
        self.table = table
