"""Sync services."""

from tickersync.core.services.aggregator import ResultAggregator
from tickersync.core.services.delta import DeltaCalculator, resolve_reference_end_date
from tickersync.core.services.scheduler import PriceSource, SyncScheduler
from tickersync.core.services.sequential import SequentialSync
from tickersync.core.services.sync import SyncService

__all__ = [
    "DeltaCalculator",
    "PriceSource",
    "ResultAggregator",
    "SequentialSync",
    "SyncScheduler",
    "SyncService",
    "resolve_reference_end_date",
]
