"""
Domain package for the Feed Service.

Contains domain entities, value objects, and domain errors.
"""
from .product import (
    Category,
    UnifiedProduct,
    ProductVariantGroup,
    UNKNOWN_EXTERNAL_ID,
    flatten_groups,
)
from .source import SourceType, DataSourceConfig, RawFeedDocument
from .value_objects import ProductSize, SizeType
from .sync_job import (
    SyncJob,
    SyncJobType,
    SyncJobStatus,
    SyncHistory,
    SyncSummary,
)
from .errors import (
    DomainError,
    DomainValidationError,
    FetchError,
    FeedItemError,
    UnsupportedPlatformError,
    AggregationError,
    SyncJobNotFoundError,
    InvalidJobTransitionError,
    JobAccessDeniedError,
    JobExecutionError,
)

__all__ = [
    "Category",
    "UnifiedProduct",
    "ProductVariantGroup",
    "UNKNOWN_EXTERNAL_ID",
    "flatten_groups",
    "SourceType",
    "DataSourceConfig",
    "RawFeedDocument",
    "ProductSize",
    "SizeType",
    # Sync jobs
    "SyncJob",
    "SyncJobType",
    "SyncJobStatus",
    "SyncHistory",
    "SyncSummary",
    # Errors
    "DomainError",
    "DomainValidationError",
    "FetchError",
    "FeedItemError",
    "UnsupportedPlatformError",
    "AggregationError",
    "SyncJobNotFoundError",
    "InvalidJobTransitionError",
    "JobAccessDeniedError",
    "JobExecutionError",
]
