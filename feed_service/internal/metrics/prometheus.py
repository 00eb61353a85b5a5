"""
Prometheus Metrics for the Feed Service.

Defines the metrics for feed ingestion and sync job processing.
"""

from prometheus_client import Counter, Histogram, Gauge

# Fetching
FEED_FETCHES = Counter(
    'feed_fetches_total',
    'Feed fetch attempts',
    ['status']  # success, attempt_failed, failed
)

FEED_FETCH_DURATION = Histogram(
    'feed_fetch_duration_seconds',
    'Duration of a complete feed fetch including retries',
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0]
)

# Parsing
FEED_ITEMS_PARSED = Counter(
    'feed_items_parsed_total',
    'Feed items processed by parsers',
    ['platform', 'status']  # status: success, error
)

FEED_PARSE_DURATION = Histogram(
    'feed_parse_duration_seconds',
    'Feed document parsing duration',
    ['platform'],
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0]
)

# Aggregation
SOURCES_AGGREGATED = Counter(
    'feed_sources_aggregated_total',
    'Sources processed by the aggregator',
    ['platform', 'status']  # status: success, failed, cancelled
)

AGGREGATED_GROUPS = Gauge(
    'feed_aggregated_groups',
    'Variant groups produced by the last aggregation'
)

# Sync jobs
SYNC_JOB_TRANSITIONS = Counter(
    'sync_job_transitions_total',
    'Sync job state transitions',
    ['job_type', 'status']
)

SYNC_JOBS_RUNNING = Gauge(
    'sync_jobs_running',
    'Sync jobs currently running in this process'
)

SYNC_JOB_DURATION = Histogram(
    'sync_job_duration_seconds',
    'Sync job run duration',
    ['job_type'],
    buckets=[1.0, 5.0, 30.0, 60.0, 300.0, 900.0, 1800.0]
)

# Publishing
CATALOG_MESSAGES_PRODUCED = Counter(
    'catalog_messages_produced_total',
    'Catalog group messages produced',
    ['status']  # success, error
)
