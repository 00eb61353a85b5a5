"""
Sync Worker.

Polls the scheduler for due jobs and runs them through the handler
registered for their job type, reporting the outcome back.
"""
import asyncio
import time
from typing import Dict, Mapping, Optional, Protocol

from feed_service.internal.domain.errors import (
    DomainError,
    InvalidJobTransitionError,
    JobExecutionError,
)
from feed_service.internal.domain.sync_job import SyncJob, SyncJobType, SyncSummary
from feed_service.internal.metrics import SYNC_JOB_DURATION, SYNC_JOBS_RUNNING
from feed_service.internal.usecase.sync_scheduler import SyncJobScheduler
from pkg.logger.logger import get_logger, set_correlation_id


logger = get_logger(__name__)


class JobHandler(Protocol):
    """Protocol for the code that performs one kind of sync job."""

    async def handle(self, job: SyncJob) -> SyncSummary:
        """
        Perform the job.

        Raises:
            JobExecutionError: To mark the failure as (non-)retryable.
        """
        ...


class SyncWorker:
    """
    Worker executing sync jobs.

    Handler failures never escape the worker: a JobExecutionError carries
    its own retry classification, a timeout or any other error counts as
    retryable, and a job type without a handler fails for good.
    """

    def __init__(
        self,
        scheduler: SyncJobScheduler,
        handlers: Mapping[SyncJobType, JobHandler],
        job_timeout_seconds: Optional[float] = None,
        poll_interval: float = 10.0,
        reaper_interval: float = 60.0,
        concurrency: int = 1,
    ) -> None:
        """
        Initialize the worker.

        Args:
            scheduler: Job scheduler.
            handlers: Handler per job type.
            job_timeout_seconds: Per-run time limit, defaults to the
                scheduler's job timeout.
            poll_interval: Idle wait between polls, in seconds.
            reaper_interval: Seconds between stale job sweeps.
            concurrency: Jobs processed at once by this worker.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._scheduler = scheduler
        self._handlers: Dict[SyncJobType, JobHandler] = dict(handlers)
        self._job_timeout = (
            job_timeout_seconds
            if job_timeout_seconds is not None
            else scheduler.job_timeout.total_seconds()
        )
        self._poll_interval = poll_interval
        self._reaper_interval = reaper_interval
        self._concurrency = concurrency

    async def run_once(self) -> Optional[SyncJob]:
        """
        Claim and process a single job.

        Returns:
            The job in its resulting state, or None if nothing was due.
        """
        job = await self._scheduler.claim_next()
        if job is None:
            return None

        set_correlation_id(str(job.id))
        handler = self._handlers.get(job.job_type)
        if handler is None:
            logger.error("No handler for job type", job_id=str(job.id), job_type=job.job_type.value)
            return await self._fail(job, f"No handler for job type {job.job_type.value}", False)

        SYNC_JOBS_RUNNING.inc()
        started = time.monotonic()
        try:
            summary = await asyncio.wait_for(handler.handle(job), timeout=self._job_timeout)
        except JobExecutionError as e:
            return await self._fail(job, e.reason, e.retryable)
        except asyncio.TimeoutError:
            return await self._fail(job, f"Job exceeded {self._job_timeout:g}s", True)
        except DomainError as e:
            return await self._fail(job, e.message, True)
        except Exception as e:
            logger.error(
                "Unexpected error in job handler",
                job_id=str(job.id),
                error=str(e),
                exc_info=True,
            )
            return await self._fail(job, str(e) or type(e).__name__, True)
        finally:
            SYNC_JOBS_RUNNING.dec()
            SYNC_JOB_DURATION.labels(job_type=job.job_type.value).observe(
                time.monotonic() - started
            )

        try:
            await self._scheduler.complete(job.id, summary, attempt=job.attempt)
        except InvalidJobTransitionError as e:
            logger.warning("Job finished after leaving RUNNING", job_id=str(job.id), error=e.message)
        return await self._scheduler.get_job(job.id)

    async def _fail(self, job: SyncJob, error: str, retryable: bool) -> SyncJob:
        try:
            return await self._scheduler.fail(job.id, error, retryable=retryable, attempt=job.attempt)
        except InvalidJobTransitionError as e:
            # Cancelled or reaped while the handler was running
            logger.warning("Job failed after leaving RUNNING", job_id=str(job.id), error=e.message)
            return await self._scheduler.get_job(job.id)

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """
        Process jobs until ``stop_event`` is set.

        Args:
            stop_event: Event signalling shutdown.
        """
        logger.info(
            "Sync worker started",
            concurrency=self._concurrency,
            handlers=[t.value for t in self._handlers],
        )
        loops = [
            asyncio.create_task(self._poll_loop(stop_event))
            for _ in range(self._concurrency)
        ]
        loops.append(asyncio.create_task(self._reaper_loop(stop_event)))
        try:
            await asyncio.gather(*loops)
        finally:
            for task in loops:
                task.cancel()
            await asyncio.gather(*loops, return_exceptions=True)
            logger.info("Sync worker stopped")

    async def _poll_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            job = await self.run_once()
            if job is None:
                await self._wait(stop_event, self._poll_interval)

    async def _reaper_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self._scheduler.reap_stale()
            await self._wait(stop_event, self._reaper_interval)

    @staticmethod
    async def _wait(stop_event: asyncio.Event, seconds: float) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
