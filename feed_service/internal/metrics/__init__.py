"""
Metrics package for the Feed Service.
"""
from .prometheus import (
    FEED_FETCHES,
    FEED_FETCH_DURATION,
    FEED_ITEMS_PARSED,
    FEED_PARSE_DURATION,
    SOURCES_AGGREGATED,
    AGGREGATED_GROUPS,
    SYNC_JOB_TRANSITIONS,
    SYNC_JOBS_RUNNING,
    SYNC_JOB_DURATION,
    CATALOG_MESSAGES_PRODUCED,
)

__all__ = [
    "FEED_FETCHES",
    "FEED_FETCH_DURATION",
    "FEED_ITEMS_PARSED",
    "FEED_PARSE_DURATION",
    "SOURCES_AGGREGATED",
    "AGGREGATED_GROUPS",
    "SYNC_JOB_TRANSITIONS",
    "SYNC_JOBS_RUNNING",
    "SYNC_JOB_DURATION",
    "CATALOG_MESSAGES_PRODUCED",
]
