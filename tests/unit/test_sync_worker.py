"""
Unit tests for the sync worker and job handlers.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from feed_service.internal.domain.errors import AggregationError, JobExecutionError
from feed_service.internal.domain.source import DataSourceConfig, SourceType
from feed_service.internal.domain.sync_job import (
    SyncJob,
    SyncJobStatus,
    SyncJobType,
    SyncSummary,
)
from feed_service.internal.infrastructure.memory import (
    InMemorySyncHistoryRepository,
    InMemorySyncJobRepository,
)
from feed_service.internal.usecase.aggregate_catalog import AggregationResult, SourceOutcome
from feed_service.internal.usecase.sync_handlers import DatasetSyncHandler
from feed_service.internal.usecase.sync_scheduler import SyncJobScheduler
from feed_service.internal.usecase.sync_worker import SyncWorker
from feed_service.internal.usecase.variant_grouper import VariantGrouper


T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
SOURCE = {"platform_type": "EASYDROP", "url": "https://easydrop.example.com/feed.xml"}


@pytest.fixture
def history():
    """In-memory history repository."""
    return InMemorySyncHistoryRepository()


@pytest.fixture
def scheduler(history):
    """Scheduler over in-memory repositories."""
    return SyncJobScheduler(InMemorySyncJobRepository(), history)


async def _schedule(scheduler, **kwargs):
    return await scheduler.schedule(
        SyncJobType.DATASET_SYNC,
        entity_type="dataset",
        entity_id="ds-1",
        user_id="user-1",
        **kwargs,
    )


def _handler(**kwargs):
    handler = MagicMock()
    handler.handle = AsyncMock(**kwargs)
    return handler


# =============================================================================
# SyncWorker
# =============================================================================


class TestSyncWorker:
    """Tests for SyncWorker."""

    @pytest.mark.asyncio
    async def test_idle_when_nothing_due(self, scheduler):
        """Test that run_once returns None without due jobs."""
        worker = SyncWorker(scheduler, {})

        assert await worker.run_once() is None

    @pytest.mark.asyncio
    async def test_successful_job_completes(self, scheduler, history):
        """Test that a handler summary completes the job."""
        job = await _schedule(scheduler)
        handler = _handler(return_value=SyncSummary(products_added=3))
        worker = SyncWorker(scheduler, {SyncJobType.DATASET_SYNC: handler})

        result = await worker.run_once()

        assert result.id == job.id
        assert result.status == SyncJobStatus.COMPLETED
        handler.handle.assert_awaited_once()
        assert handler.handle.await_args.args[0].status == SyncJobStatus.RUNNING
        records = await history.list_by_job(job.id)
        assert records[0].products_added == 3

    @pytest.mark.asyncio
    async def test_retryable_failure_requeues(self, scheduler):
        """Test that an ordinary error consumes one retry."""
        await _schedule(scheduler)
        handler = _handler(side_effect=RuntimeError("socket closed"))
        worker = SyncWorker(scheduler, {SyncJobType.DATASET_SYNC: handler})

        result = await worker.run_once()

        assert result.status == SyncJobStatus.PENDING
        assert result.retry_count == 1
        assert result.error_message == "socket closed"

    @pytest.mark.asyncio
    async def test_non_retryable_failure_fails(self, scheduler):
        """Test that a non-retryable JobExecutionError is terminal."""
        await _schedule(scheduler)
        handler = _handler(side_effect=JobExecutionError("no sources", retryable=False))
        worker = SyncWorker(scheduler, {SyncJobType.DATASET_SYNC: handler})

        result = await worker.run_once()

        assert result.status == SyncJobStatus.FAILED
        assert result.error_message == "no sources"

    @pytest.mark.asyncio
    async def test_missing_handler_fails_job(self, scheduler):
        """Test that a job type without a handler fails for good."""
        await _schedule(scheduler)
        worker = SyncWorker(scheduler, {})

        result = await worker.run_once()

        assert result.status == SyncJobStatus.FAILED
        assert "DATASET_SYNC" in result.error_message

    @pytest.mark.asyncio
    async def test_handler_timeout_is_retryable(self, scheduler):
        """Test that a handler exceeding the time limit is retried."""
        await _schedule(scheduler)

        async def slow(job):
            await asyncio.sleep(1)

        handler = MagicMock()
        handler.handle = slow
        worker = SyncWorker(scheduler, {SyncJobType.DATASET_SYNC: handler}, job_timeout_seconds=0.01)

        result = await worker.run_once()

        assert result.status == SyncJobStatus.PENDING
        assert result.retry_count == 1

    @pytest.mark.asyncio
    async def test_job_cancelled_while_running(self, scheduler):
        """Test that a result for a cancelled job does not resurrect it."""
        job = await _schedule(scheduler)

        async def cancel_midway(claimed):
            await scheduler.cancel(claimed.id)
            return SyncSummary()

        handler = MagicMock()
        handler.handle = cancel_midway
        worker = SyncWorker(scheduler, {SyncJobType.DATASET_SYNC: handler})

        result = await worker.run_once()

        assert result.id == job.id
        assert result.status == SyncJobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_result_of_reaped_claim_is_discarded(self, scheduler, history):
        """Test that a job reaped and claimed again keeps running for its new owner."""
        job = await _schedule(scheduler)

        async def reclaimed_midway(claimed):
            later = datetime.now(timezone.utc) + timedelta(hours=1)
            await scheduler.reap_stale(later)
            await scheduler.claim_next(later + timedelta(hours=1))
            return SyncSummary(products_added=9)

        handler = MagicMock()
        handler.handle = reclaimed_midway
        worker = SyncWorker(scheduler, {SyncJobType.DATASET_SYNC: handler})

        result = await worker.run_once()

        assert result.id == job.id
        assert result.status == SyncJobStatus.RUNNING
        assert result.attempt == 2
        assert await history.list_by_job(job.id) == []

    @pytest.mark.asyncio
    async def test_run_forever_stops_on_event(self, scheduler):
        """Test that the loops drain due work and exit on shutdown."""
        await _schedule(scheduler)
        stop = asyncio.Event()

        async def handle(job):
            stop.set()
            return SyncSummary()

        handler = MagicMock()
        handler.handle = handle
        worker = SyncWorker(
            scheduler,
            {SyncJobType.DATASET_SYNC: handler},
            poll_interval=0.01,
            reaper_interval=0.01,
            concurrency=2,
        )

        await asyncio.wait_for(worker.run_forever(stop), timeout=2)

        jobs = await scheduler.get_user_jobs("user-1")
        assert [j.status for j in jobs] == [SyncJobStatus.COMPLETED]

    def test_invalid_concurrency(self, scheduler):
        """Test that concurrency must be positive."""
        with pytest.raises(ValueError):
            SyncWorker(scheduler, {}, concurrency=0)


# =============================================================================
# DatasetSyncHandler
# =============================================================================


class TestDatasetSyncHandler:
    """Tests for DatasetSyncHandler."""

    @pytest.fixture
    def job(self):
        """A running dataset sync job."""
        job = SyncJob(
            job_type=SyncJobType.DATASET_SYNC,
            entity_type="dataset",
            entity_id="ds-1",
            user_id="user-1",
            metadata={"sources": [SOURCE]},
        )
        job.start(T0)
        return job

    @pytest.fixture
    def result(self, make_product):
        """Aggregation result with one failed source and one skipped item."""
        ok = SourceOutcome(
            source=DataSourceConfig.model_validate(SOURCE),
            products=[make_product("A", group_id="G1"), make_product("B", group_id="G1")],
            skipped_items=1,
        )
        failed = SourceOutcome(
            source=DataSourceConfig(platform_type=SourceType.MYDROP, url="https://m.example.com/f.xml"),
            error="HTTP 500",
        )
        return AggregationResult(groups=VariantGrouper().group(ok.products), outcomes=[ok, failed])

    @pytest.mark.asyncio
    async def test_aggregates_and_publishes(self, job, result):
        """Test the summary of a successful sync."""
        aggregator = MagicMock()
        aggregator.collect = AsyncMock(return_value=result)
        publisher = MagicMock()
        publisher.publish_groups = AsyncMock(return_value=1)
        handler = DatasetSyncHandler(aggregator, publisher=publisher, timeout=30)

        summary = await handler.handle(job)

        sources = aggregator.collect.await_args.args[0]
        assert sources[0].platform_type == SourceType.EASYDROP
        assert aggregator.collect.await_args.kwargs == {"timeout": 30}
        publisher.publish_groups.assert_awaited_once_with(result.groups, entity_id="ds-1")
        assert summary.products_added == 2
        assert summary.errors_encountered == 2
        assert summary.metadata["groups"] == 1
        assert summary.metadata["failed_sources"] == ["https://m.example.com/f.xml"]

    @pytest.mark.asyncio
    async def test_missing_sources_is_not_retryable(self, job):
        """Test that a job without sources fails permanently."""
        job.metadata.clear()
        handler = DatasetSyncHandler(MagicMock())

        with pytest.raises(JobExecutionError) as exc_info:
            await handler.handle(job)

        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_invalid_source_is_not_retryable(self, job):
        """Test that a malformed source configuration fails permanently."""
        job.metadata["sources"] = [{"platform_type": "EASYDROP", "url": "ftp://nope"}]
        handler = DatasetSyncHandler(MagicMock())

        with pytest.raises(JobExecutionError) as exc_info:
            await handler.handle(job)

        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_all_sources_failed_is_retryable(self, job):
        """Test that a total aggregation failure may be retried."""
        aggregator = MagicMock()
        aggregator.collect = AsyncMock(side_effect=AggregationError([SOURCE["url"]]))
        handler = DatasetSyncHandler(aggregator)

        with pytest.raises(JobExecutionError) as exc_info:
            await handler.handle(job)

        assert exc_info.value.retryable is True
        assert SOURCE["url"] in exc_info.value.reason
