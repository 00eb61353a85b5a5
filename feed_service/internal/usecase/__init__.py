"""
Use case package for the Feed Service.

Contains catalog aggregation and sync job orchestration.
"""
from .variant_grouper import VariantGrouper
from .aggregate_catalog import (
    CatalogAggregator,
    AggregationResult,
    CatalogStatistics,
    CatalogView,
    SourceOutcome,
)
from .sync_scheduler import SyncJobScheduler
from .sync_worker import SyncWorker, JobHandler
from .sync_handlers import DatasetSyncHandler

__all__ = [
    "VariantGrouper",
    "CatalogAggregator",
    "AggregationResult",
    "CatalogStatistics",
    "CatalogView",
    "SourceOutcome",
    "SyncJobScheduler",
    "SyncWorker",
    "JobHandler",
    "DatasetSyncHandler",
]
