"""tickersync core modules."""

from tickersync.core.config.settings import ConfigManager, TickerSyncConfig
from tickersync.core.models.outcome import OutcomeKind, SyncResult
from tickersync.core.models.ticker import Ticker

__all__ = [
    "ConfigManager",
    "OutcomeKind",
    "SyncResult",
    "Ticker",
    "TickerSyncConfig",
]
