"""Configuration management module."""

from tickersync.core.config.settings import (
    ApiConfig,
    ConfigManager,
    FilterConfig,
    LoggingConfig,
    PostgresConfig,
    StorageConfig,
    SyncConfig,
    TickerSyncConfig,
    get_api_key,
    load_config_from_env,
)

__all__ = [
    "ApiConfig",
    "ConfigManager",
    "FilterConfig",
    "LoggingConfig",
    "PostgresConfig",
    "StorageConfig",
    "SyncConfig",
    "TickerSyncConfig",
    "get_api_key",
    "load_config_from_env",
]
