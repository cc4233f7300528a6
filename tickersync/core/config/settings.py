"""Configuration management for tickersync."""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from loguru import logger

from tickersync.core.exceptions import ConfigurationError
from tickersync.core.logging.logger import mask_secret

CONFIG_PATH_ENV = "TICKERSYNC_CONFIG_PATH"
DEFAULT_CONFIG_FILE = "tickersync.toml"


@dataclass
class ApiConfig:
    """Remote API settings."""

    base_url: str = "https://api.tiingo.com/tiingo/daily"
    tickers_url: str = "https://apimedia.tiingo.com/docs/tiingo/daily/supported_tickers.zip"
    fundamentals_url: str = "https://api.tiingo.com/tiingo/fundamentals"
    timeout: float = 30.0
    connect_timeout: float = 10.0
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    api_key_env: str = "TIINGO_API_KEY"


@dataclass
class StorageConfig:
    """DuckDB settings."""

    duckdb_path: str = "tiingo_historical_data.duckdb"
    threads: int | None = None


@dataclass
class SyncConfig:
    """Scheduler defaults."""

    batch_size: int = 50
    concurrency_limit: int = 10
    add_missing: bool = True
    reference_ticker: str = "SPY"


@dataclass
class FilterConfig:
    """Ticker-universe filtering rules."""

    supported_exchanges: list[str] = field(
        default_factory=lambda: ["NYSE", "NASDAQ", "NYSE ARCA", "AMEX", "ASX"]
    )
    supported_asset_types: list[str] = field(default_factory=lambda: ["Stock", "ETF"])


@dataclass
class PostgresConfig:
    """Mirror target settings."""

    host: str = "127.0.0.1"
    port: int = 5432
    user: str = "postgres"
    dbname: str = "tiingo"
    password_env: str = "TICKERSYNC_PG_PASSWORD"
    max_retries: int = 3
    retry_delay: float = 5.0


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    file: str | None = None
    serialize: bool = True


@dataclass
class TickerSyncConfig:
    """Top-level configuration passed explicitly to services."""

    api: ApiConfig = field(default_factory=ApiConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    filtering: FilterConfig = field(default_factory=FilterConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> TickerSyncConfig:
        """Build a configuration from a nested dictionary."""
        try:
            return cls(
                api=ApiConfig(**config_dict.get("api", {})),
                storage=StorageConfig(**config_dict.get("storage", {})),
                sync=SyncConfig(**config_dict.get("sync", {})),
                filtering=FilterConfig(**config_dict.get("filtering", {})),
                postgres=PostgresConfig(**config_dict.get("postgres", {})),
                logging=LoggingConfig(**config_dict.get("logging", {})),
            )
        except TypeError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        """Convert to a nested dictionary."""
        return asdict(self)


class ConfigManager:
    """Loads configuration from a TOML file and environment overrides."""

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or resolve_config_path()
        self.config = self._load_config()

    def _load_config(self) -> TickerSyncConfig:
        config_dict: dict[str, Any] = {}
        if self.config_path is not None and self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    config_dict = tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigurationError(f"Failed to parse {self.config_path}: {exc}") from exc
        _deep_update(config_dict, load_config_from_env())
        return TickerSyncConfig.from_dict(config_dict)

    def get_config(self) -> TickerSyncConfig:
        """Return the loaded configuration."""
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Apply nested updates, e.g. ``update_config(sync={"batch_size": 10})``."""
        config_dict = self.config.to_dict()
        _deep_update(config_dict, updates)
        self.config = TickerSyncConfig.from_dict(config_dict)


def _deep_update(d: dict[str, Any], u: dict[str, Any]) -> dict[str, Any]:
    for k, v in u.items():
        if isinstance(v, dict):
            d[k] = _deep_update(d.get(k, {}), v)
        else:
            d[k] = v
    return d


def resolve_config_path() -> Path | None:
    """Return the configured TOML path, or ``./tickersync.toml`` when present."""
    env_path = os.getenv(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve()
    local = Path.cwd() / DEFAULT_CONFIG_FILE
    if local.is_file():
        return local
    return None


def _env_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer environment variable, using default", var=name, value=raw)
        return None


def _env_list(name: str) -> list[str] | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config_from_env() -> dict[str, Any]:
    """Collect ``TICKERSYNC_*`` overrides into a nested dictionary."""
    config: dict[str, Any] = {}

    api_config: dict[str, Any] = {}
    if os.getenv("TICKERSYNC_API_BASE_URL"):
        api_config["base_url"] = os.getenv("TICKERSYNC_API_BASE_URL")
    if os.getenv("TICKERSYNC_TICKERS_URL"):
        api_config["tickers_url"] = os.getenv("TICKERSYNC_TICKERS_URL")
    if os.getenv("TICKERSYNC_FUNDAMENTALS_URL"):
        api_config["fundamentals_url"] = os.getenv("TICKERSYNC_FUNDAMENTALS_URL")
    max_retries = _env_int("TICKERSYNC_API_MAX_RETRIES")
    if max_retries is not None:
        api_config["max_retries"] = max_retries
    if api_config:
        config["api"] = api_config

    storage_config: dict[str, Any] = {}
    if os.getenv("TICKERSYNC_DB_PATH"):
        storage_config["duckdb_path"] = os.getenv("TICKERSYNC_DB_PATH")
    if storage_config:
        config["storage"] = storage_config

    sync_config: dict[str, Any] = {}
    batch_size = _env_int("TICKERSYNC_BATCH_SIZE")
    if batch_size is not None:
        sync_config["batch_size"] = batch_size
    concurrency = _env_int("TICKERSYNC_CONCURRENCY")
    if concurrency is not None:
        sync_config["concurrency_limit"] = concurrency
    if os.getenv("TICKERSYNC_REFERENCE_TICKER"):
        sync_config["reference_ticker"] = os.getenv("TICKERSYNC_REFERENCE_TICKER")
    if sync_config:
        config["sync"] = sync_config

    filter_config: dict[str, Any] = {}
    exchanges = _env_list("TICKERSYNC_SUPPORTED_EXCHANGES")
    if exchanges is not None:
        filter_config["supported_exchanges"] = exchanges
    asset_types = _env_list("TICKERSYNC_SUPPORTED_ASSET_TYPES")
    if asset_types is not None:
        filter_config["supported_asset_types"] = asset_types
    if filter_config:
        config["filtering"] = filter_config

    if os.getenv("TICKERSYNC_LOG_LEVEL"):
        config["logging"] = {"level": os.getenv("TICKERSYNC_LOG_LEVEL")}

    return config


def get_api_key(env_name: str = "TIINGO_API_KEY", env_file: str | Path | None = ".env") -> str:
    """Return the API key from the environment, loading ``env_file`` first."""
    if env_file is not None and Path(env_file).is_file():
        load_dotenv(env_file, override=False)
    api_key = os.getenv(env_name, "").strip()
    if not api_key:
        raise ConfigurationError(f"{env_name} is not set; add it to the environment or a .env file", key=env_name)
    mask_secret(api_key)
    return api_key
