"""Standardized error codes carried by tickersync exceptions."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes shared by the sync engine, CLI and log records."""

    GENERAL_ERROR = "GENERAL_ERROR"

    # Fetch errors
    FETCH_TRANSIENT = "FETCH_TRANSIENT"
    FETCH_FAILED = "FETCH_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"

    # Storage errors
    STORAGE_ERROR = "STORAGE_ERROR"
    STORAGE_CONNECTION_ERROR = "STORAGE_CONNECTION_ERROR"
    REFERENCE_CALENDAR_ERROR = "REFERENCE_CALENDAR_ERROR"

    # Configuration and export errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    EXPORT_ERROR = "EXPORT_ERROR"

    # Unexpected failures inside a sync job
    JOB_ERROR = "JOB_ERROR"


__all__ = ["ErrorCode"]
