"""
Sync Job Scheduler Use Case.

Owns the lifecycle of sync jobs: scheduling, exclusive claiming,
completion, retry with backoff, cancellation and staleness reaping.
History records are written once, when a job reaches a terminal state.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol
from uuid import UUID

from feed_service.internal.domain.errors import (
    InvalidJobTransitionError,
    JobAccessDeniedError,
    SyncJobNotFoundError,
)
from feed_service.internal.domain.product import utcnow
from feed_service.internal.domain.sync_job import (
    SyncHistory,
    SyncJob,
    SyncJobStatus,
    SyncJobType,
    SyncSummary,
)
from feed_service.internal.metrics import SYNC_JOB_TRANSITIONS
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


MAX_RETRIES_PREFIX = "Max retries exceeded: "


class SyncJobRepository(Protocol):
    """Protocol for sync job storage."""

    async def add(self, job: SyncJob) -> None:
        ...

    async def get(self, job_id: UUID) -> Optional[SyncJob]:
        ...

    async def save(
        self,
        job: SyncJob,
        expected_status: SyncJobStatus,
        expected_attempt: Optional[int] = None,
    ) -> bool:
        """Store ``job`` only if the stored status and claim still match."""
        ...

    async def claim(
        self, job_id: UUID, now: datetime, max_running: Optional[int] = None
    ) -> Optional[SyncJob]:
        """Atomically move a PENDING job to RUNNING while a slot is free."""
        ...

    async def find_pending_for_entity(
        self, entity_type: str, entity_id: str, job_type: SyncJobType
    ) -> Optional[SyncJob]:
        ...

    async def find_due(self, now: datetime, limit: Optional[int] = None) -> List[SyncJob]:
        ...

    async def count_running(self) -> int:
        ...

    async def find_stale_running(self, cutoff: datetime) -> List[SyncJob]:
        ...

    async def list_by_user(
        self, user_id: str, status: Optional[SyncJobStatus] = None
    ) -> List[SyncJob]:
        ...

    async def delete_finished_before(
        self, cutoff: datetime, statuses: Iterable[SyncJobStatus]
    ) -> int:
        ...


class SyncHistoryRepository(Protocol):
    """Protocol for append-only sync history storage."""

    async def add(self, record: SyncHistory) -> None:
        ...

    async def list_by_entity(self, entity_type: str, entity_id: str) -> List[SyncHistory]:
        ...

    async def delete_before(self, cutoff: datetime) -> int:
        ...


class SyncJobScheduler:
    """
    Scheduler for sync jobs.

    State machine:
        PENDING -> RUNNING            claim_next (exclusive)
        RUNNING -> COMPLETED          complete
        RUNNING -> PENDING            fail(retryable) while retries remain
        RUNNING -> FAILED             fail(not retryable) or retries exhausted
        RUNNING -> PENDING | TIMEOUT  reap_stale, same retry budget
        PENDING/RUNNING -> CANCELLED  cancel
    """

    def __init__(
        self,
        jobs: SyncJobRepository,
        history: SyncHistoryRepository,
        max_concurrent_jobs: int = 5,
        job_timeout: timedelta = timedelta(minutes=30),
        retry_delay: timedelta = timedelta(minutes=5),
        retention: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            jobs: Job repository.
            history: History repository.
            max_concurrent_jobs: Upper bound of RUNNING jobs.
            job_timeout: Age after which a RUNNING job is considered stale.
            retry_delay: Delay unit; retry ``n`` waits ``n * retry_delay``.
            retention: Age after which finished jobs and history are purged.
            clock: Source of the current time.
        """
        self._jobs = jobs
        self._history = history
        self._max_concurrent_jobs = max_concurrent_jobs
        self._job_timeout = job_timeout
        self._retry_delay = retry_delay
        self._retention = retention
        self._clock = clock

    @property
    def job_timeout(self) -> timedelta:
        return self._job_timeout

    # ==========================================================================
    # Scheduling
    # ==========================================================================

    async def schedule(
        self,
        job_type: SyncJobType,
        entity_type: str,
        entity_id: str,
        user_id: str,
        priority: int = 5,
        scheduled_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
    ) -> SyncJob:
        """
        Schedule a job.

        A job of the same type still pending for the same entity is moved
        to the new slot instead of creating a duplicate. Its retry budget
        becomes ``max_retries`` unless more retries were already consumed.

        Args:
            job_type: Kind of work.
            entity_type: Type of the target entity.
            entity_id: Identifier of the target entity.
            user_id: Owner.
            priority: Higher runs first.
            scheduled_at: Earliest run time, now by default.
            metadata: Job parameters.
            max_retries: Retry budget.

        Returns:
            The scheduled job.
        """
        now = self._clock()
        scheduled_at = scheduled_at or now

        existing = await self._jobs.find_pending_for_entity(entity_type, entity_id, job_type)
        if existing is not None:
            existing.reschedule(scheduled_at, priority, now, metadata, max_retries)
            if await self._jobs.save(existing, SyncJobStatus.PENDING, existing.attempt):
                logger.info(
                    "Pending sync job rescheduled",
                    job_id=str(existing.id),
                    entity_type=entity_type,
                    entity_id=entity_id,
                    scheduled_at=scheduled_at.isoformat(),
                )
                return existing

        job = SyncJob(
            job_type=job_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            priority=priority,
            scheduled_at=scheduled_at,
            max_retries=max_retries,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        await self._jobs.add(job)
        self._record_transition(job)
        logger.info(
            "Sync job scheduled",
            job_id=str(job.id),
            job_type=job_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            priority=priority,
            scheduled_at=scheduled_at.isoformat(),
        )
        return job

    async def claim_next(self, now: Optional[datetime] = None) -> Optional[SyncJob]:
        """
        Claim the most urgent due job.

        Candidates are PENDING jobs with ``scheduled_at <= now`` ordered by
        priority, then by ``scheduled_at``. The claim itself is a
        compare-and-swap that also enforces ``max_concurrent_jobs``, so a
        job lost to another worker is skipped.

        Args:
            now: Current time.

        Returns:
            The claimed RUNNING job, or None.
        """
        now = now or self._clock()
        running = await self._jobs.count_running()
        if running >= self._max_concurrent_jobs:
            logger.debug("All job slots busy", running=running)
            return None

        for candidate in await self._jobs.find_due(now):
            job = await self._jobs.claim(candidate.id, now, self._max_concurrent_jobs)
            if job is None:
                continue
            self._record_transition(job)
            logger.info(
                "Sync job claimed",
                job_id=str(job.id),
                job_type=job.job_type.value,
                attempt=job.retry_count + 1,
            )
            return job
        return None

    # ==========================================================================
    # Completion
    # ==========================================================================

    async def complete(
        self,
        job_id: UUID,
        summary: Optional[SyncSummary] = None,
        now: Optional[datetime] = None,
        attempt: Optional[int] = None,
    ) -> SyncHistory:
        """
        Mark a running job as completed and record its history.

        Args:
            job_id: Job identifier.
            summary: Counts reported by the job.
            now: Completion time.
            attempt: Claim the result belongs to, as returned by
                ``claim_next``.

        Returns:
            The written history record.

        Raises:
            InvalidJobTransitionError: If the job is not running, or was
                claimed again after ``attempt``.
        """
        now = now or self._clock()
        job = await self.get_job(job_id)
        self._check_claim(job, attempt, SyncJobStatus.COMPLETED)
        expected = job.status
        job.complete(now)
        await self._store(job, expected)

        history = await self._write_history(job, summary)
        logger.info(
            "Sync job completed",
            job_id=str(job.id),
            duration_seconds=job.duration_seconds,
            products_added=history.products_added,
            errors=history.errors_encountered,
        )
        return history

    async def fail(
        self,
        job_id: UUID,
        error: str,
        retryable: bool = True,
        now: Optional[datetime] = None,
        attempt: Optional[int] = None,
    ) -> SyncJob:
        """
        Record a failed attempt.

        A retryable failure with budget left returns the job to PENDING
        with ``retry_count`` incremented; anything else is terminal.

        Args:
            job_id: Job identifier.
            error: Failure description.
            retryable: Whether the failure may succeed on another attempt.
            now: Failure time.
            attempt: Claim the failure belongs to, as returned by
                ``claim_next``.

        Returns:
            The updated job.

        Raises:
            InvalidJobTransitionError: If the job is not running, or was
                claimed again after ``attempt``.
        """
        now = now or self._clock()
        job = await self.get_job(job_id)
        self._check_claim(job, attempt, SyncJobStatus.FAILED)
        expected = job.status

        if retryable and job.can_retry:
            job.requeue(error, self._next_attempt_at(job, now), now)
            await self._store(job, expected)
            logger.warning(
                "Sync job failed, will retry",
                job_id=str(job.id),
                retry_count=job.retry_count,
                max_retries=job.max_retries,
                scheduled_at=job.scheduled_at.isoformat(),
                error=error,
            )
            return job

        message = MAX_RETRIES_PREFIX + error if retryable else error
        job.fail(message, now)
        await self._store(job, expected)
        await self._write_history(job)
        logger.error(
            "Sync job failed",
            job_id=str(job.id),
            retry_count=job.retry_count,
            error=message,
        )
        return job

    async def cancel(
        self,
        job_id: UUID,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SyncJob:
        """
        Cancel a pending or running job.

        Args:
            job_id: Job identifier.
            user_id: Requesting user; must own the job when given.
            now: Cancellation time.

        Returns:
            The cancelled job.

        Raises:
            JobAccessDeniedError: If ``user_id`` does not own the job.
            InvalidJobTransitionError: If the job already finished.
        """
        now = now or self._clock()
        job = await self.get_job(job_id)
        if user_id is not None and job.user_id != user_id:
            raise JobAccessDeniedError(str(job_id), user_id)

        expected = job.status
        job.cancel(now)
        await self._store(job, expected)
        if expected == SyncJobStatus.RUNNING:
            await self._write_history(job)
        logger.info("Sync job cancelled", job_id=str(job.id), previous_status=expected.value)
        return job

    async def reap_stale(self, now: Optional[datetime] = None) -> List[SyncJob]:
        """
        Reclassify RUNNING jobs older than the job timeout.

        Jobs with retries left go back to PENDING, the rest end in TIMEOUT.

        Args:
            now: Current time.

        Returns:
            The reaped jobs.
        """
        now = now or self._clock()
        cutoff = now - self._job_timeout
        reaped = []
        for job in await self._jobs.find_stale_running(cutoff):
            if job.can_retry:
                job.requeue(
                    f"Job timed out after {int(self._job_timeout.total_seconds())}s",
                    self._next_attempt_at(job, now),
                    now,
                )
            else:
                job.time_out(now)
            if not await self._jobs.save(job, SyncJobStatus.RUNNING, job.attempt):
                continue
            self._record_transition(job)
            if job.status == SyncJobStatus.TIMEOUT:
                await self._write_history(job)
            reaped.append(job)
            logger.warning(
                "Stale sync job reaped",
                job_id=str(job.id),
                status=job.status.value,
                retry_count=job.retry_count,
            )
        return reaped

    # ==========================================================================
    # Queries and housekeeping
    # ==========================================================================

    async def get_job(self, job_id: UUID) -> SyncJob:
        """
        Get a job.

        Raises:
            SyncJobNotFoundError: If the job does not exist.
        """
        job = await self._jobs.get(job_id)
        if job is None:
            raise SyncJobNotFoundError(str(job_id))
        return job

    async def get_user_jobs(
        self,
        user_id: str,
        status: Optional[SyncJobStatus] = None,
    ) -> List[SyncJob]:
        """Get a user's jobs, optionally filtered by status."""
        return await self._jobs.list_by_user(user_id, status)

    async def get_history(self, entity_type: str, entity_id: str) -> List[SyncHistory]:
        """Get an entity's sync history, newest first."""
        return await self._history.list_by_entity(entity_type, entity_id)

    async def cleanup_old_jobs(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Purge completed and cancelled jobs and history past retention.

        Returns:
            Counts of deleted jobs and history records.
        """
        now = now or self._clock()
        cutoff = now - self._retention
        jobs_deleted = await self._jobs.delete_finished_before(
            cutoff, (SyncJobStatus.COMPLETED, SyncJobStatus.CANCELLED)
        )
        history_deleted = await self._history.delete_before(cutoff)
        logger.info(
            "Old sync jobs cleaned up",
            jobs_deleted=jobs_deleted,
            history_deleted=history_deleted,
        )
        return {"jobs": jobs_deleted, "history": history_deleted}

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _next_attempt_at(self, job: SyncJob, now: datetime) -> datetime:
        return now + self._retry_delay * (job.retry_count + 1)

    @staticmethod
    def _check_claim(job: SyncJob, attempt: Optional[int], target: SyncJobStatus) -> None:
        if attempt is None or job.attempt == attempt:
            return
        logger.warning(
            "Result of a superseded claim ignored",
            job_id=str(job.id),
            attempt=attempt,
            current_attempt=job.attempt,
        )
        raise InvalidJobTransitionError(str(job.id), job.status.value, target.value)

    async def _store(self, job: SyncJob, expected: SyncJobStatus) -> None:
        if not await self._jobs.save(job, expected, job.attempt):
            current = await self._jobs.get(job.id)
            current_status = current.status.value if current else "DELETED"
            raise InvalidJobTransitionError(str(job.id), current_status, job.status.value)
        self._record_transition(job)

    async def _write_history(
        self,
        job: SyncJob,
        summary: Optional[SyncSummary] = None,
    ) -> SyncHistory:
        history = SyncHistory.from_job(job, summary)
        await self._history.add(history)
        return history

    @staticmethod
    def _record_transition(job: SyncJob) -> None:
        SYNC_JOB_TRANSITIONS.labels(job_type=job.job_type.value, status=job.status.value).inc()
