"""
Sync Worker Entry Point.

Runs the sync job worker: schedules a DATASET_SYNC job for the configured
sources at a fixed interval and executes due jobs, publishing aggregated
catalog groups to Kafka when enabled.
"""

import asyncio
import signal
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv
from prometheus_client import start_http_server

from feed_service.config import get_settings
from feed_service.internal.domain.sync_job import SyncJobType
from feed_service.internal.fetcher import FeedFetcher
from feed_service.internal.infrastructure.kafka import KafkaCatalogPublisher
from feed_service.internal.infrastructure.memory import (
    InMemorySyncHistoryRepository,
    InMemorySyncJobRepository,
)
from feed_service.internal.usecase.aggregate_catalog import CatalogAggregator
from feed_service.internal.usecase.sync_handlers import DatasetSyncHandler
from feed_service.internal.usecase.sync_scheduler import SyncJobScheduler
from feed_service.internal.usecase.sync_worker import SyncWorker
from pkg.logger.logger import get_logger, setup_logging
from pkg.resilience.retry import LinearBackoff

# Load environment variables
load_dotenv()

settings = get_settings()

# Setup logging
setup_logging(
    level=settings.log_level,
    json_format=settings.log_format == "json",
)

logger = get_logger(__name__)


WORKER_USER_ID = "feed-service"


class FeedSyncWorker:
    """
    Process hosting the sync scheduler and worker.

    Jobs live in memory, so pending work does not survive a restart.
    """

    def __init__(self) -> None:
        """Initialize the worker."""
        self._fetcher: Optional[FeedFetcher] = None
        self._publisher: Optional[KafkaCatalogPublisher] = None
        self._scheduler = SyncJobScheduler(
            InMemorySyncJobRepository(),
            InMemorySyncHistoryRepository(),
            max_concurrent_jobs=settings.max_concurrent_jobs,
            job_timeout=timedelta(minutes=settings.job_timeout_minutes),
            retry_delay=timedelta(seconds=settings.retry_delay_seconds),
            retention=timedelta(days=settings.job_retention_days),
        )

    async def start(self, stop_event: asyncio.Event) -> None:
        """Start the worker and run until ``stop_event`` is set."""
        logger.info("Starting Feed Sync Worker...")

        self._fetcher = FeedFetcher(
            policy=LinearBackoff(
                max_attempts=settings.fetch_max_attempts,
                backoff_unit=settings.fetch_backoff_seconds,
            ),
            timeout=settings.fetch_timeout_seconds,
            user_agent=settings.fetch_user_agent,
        )

        if settings.kafka_enabled:
            self._publisher = KafkaCatalogPublisher(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                topic=settings.kafka_catalog_topic,
                client_id=settings.kafka_client_id,
                compression_type=settings.kafka_compression_type,
            )
            await self._publisher.start()

        aggregator = CatalogAggregator(
            self._fetcher,
            max_concurrency=settings.max_concurrent_sources,
        )
        handler = DatasetSyncHandler(
            aggregator,
            publisher=self._publisher,
            timeout=settings.aggregation_timeout_seconds,
        )
        worker = SyncWorker(
            self._scheduler,
            {SyncJobType.DATASET_SYNC: handler},
            poll_interval=settings.poll_interval_seconds,
            reaper_interval=settings.reaper_interval_seconds,
            concurrency=settings.max_concurrent_jobs,
        )

        logger.info(
            "Feed Sync Worker started successfully",
            kafka_enabled=settings.kafka_enabled,
            max_concurrent_jobs=settings.max_concurrent_jobs,
        )

        await asyncio.gather(
            worker.run_forever(stop_event),
            self._schedule_loop(stop_event),
        )

    async def _schedule_loop(self, stop_event: asyncio.Event) -> None:
        interval = settings.dataset_sync_interval_minutes * 60
        while not stop_event.is_set():
            sources = settings.load_sources()
            if sources:
                await self._scheduler.schedule(
                    SyncJobType.DATASET_SYNC,
                    entity_type="dataset",
                    entity_id=settings.dataset_id,
                    user_id=WORKER_USER_ID,
                    metadata={"sources": [s.model_dump(mode="json") for s in sources]},
                )
            else:
                logger.warning("No feed sources configured", sources_file=settings.sources_file)
            await self._scheduler.cleanup_old_jobs()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the worker."""
        logger.info("Stopping Feed Sync Worker...")

        if self._publisher:
            await self._publisher.stop()

        if self._fetcher:
            await self._fetcher.close()

        logger.info("Feed Sync Worker stopped")


async def main() -> None:
    """Main entry point."""
    start_http_server(settings.metrics_port)
    worker = FeedSyncWorker()
    shutdown_event = asyncio.Event()

    # Handle shutdown signals
    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await worker.start(shutdown_event)
    except Exception as e:
        logger.error("Worker failed", error=str(e))
        raise
    finally:
        await worker.stop()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
