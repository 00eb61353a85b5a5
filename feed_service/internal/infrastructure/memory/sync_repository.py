"""
In-memory sync job and history repositories.

Jobs are stored as copies so callers never share state with the store;
every status change goes through a compare-and-swap on the stored status
and claim counter, which keeps claims exclusive between concurrent workers.
"""
import asyncio
import copy
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from feed_service.internal.domain.sync_job import (
    SyncHistory,
    SyncJob,
    SyncJobStatus,
    SyncJobType,
)
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class InMemorySyncJobRepository:
    """Sync job store guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._jobs: Dict[UUID, SyncJob] = {}
        self._lock = asyncio.Lock()

    async def add(self, job: SyncJob) -> None:
        """
        Store a new job.

        Args:
            job: Job to store.

        Raises:
            ValueError: If a job with the same id exists.
        """
        async with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Sync job {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)

    async def get(self, job_id: UUID) -> Optional[SyncJob]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    async def save(
        self,
        job: SyncJob,
        expected_status: SyncJobStatus,
        expected_attempt: Optional[int] = None,
    ) -> bool:
        """
        Replace a stored job if it is still in the state the caller read.

        Args:
            job: Updated job.
            expected_status: Status the caller read before changing the job.
            expected_attempt: Claim the caller acted on; a job that was
                claimed again since then is not overwritten.

        Returns:
            False if the stored job changed in the meantime.
        """
        async with self._lock:
            current = self._jobs.get(job.id)
            if current is None or current.status != expected_status:
                return False
            if expected_attempt is not None and current.attempt != expected_attempt:
                return False
            self._jobs[job.id] = copy.deepcopy(job)
            return True

    async def claim(
        self,
        job_id: UUID,
        now: datetime,
        max_running: Optional[int] = None,
    ) -> Optional[SyncJob]:
        """
        Atomically move a PENDING job to RUNNING.

        Args:
            job_id: Job to claim.
            now: Claim time, recorded as ``started_at``.
            max_running: Refuse the claim while this many jobs are running.

        Returns:
            The claimed job, or None if it is no longer pending or all
            slots are taken.
        """
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.status != SyncJobStatus.PENDING:
                return None
            if max_running is not None and self._running() >= max_running:
                return None
            current.start(now)
            return copy.deepcopy(current)

    async def find_pending_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        job_type: SyncJobType,
    ) -> Optional[SyncJob]:
        async with self._lock:
            for job in self._jobs.values():
                if (
                    job.status == SyncJobStatus.PENDING
                    and job.entity_type == entity_type
                    and job.entity_id == entity_id
                    and job.job_type == job_type
                ):
                    return copy.deepcopy(job)
            return None

    async def find_due(self, now: datetime, limit: Optional[int] = None) -> List[SyncJob]:
        """
        Get pending jobs whose time has come.

        Ordered by priority (highest first), then by ``scheduled_at``.
        """
        async with self._lock:
            due = [
                j for j in self._jobs.values()
                if j.status == SyncJobStatus.PENDING and j.scheduled_at <= now
            ]
            due.sort(key=lambda j: (-j.priority, j.scheduled_at))
            if limit is not None:
                due = due[:limit]
            return [copy.deepcopy(j) for j in due]

    async def count_running(self) -> int:
        async with self._lock:
            return self._running()

    def _running(self) -> int:
        return sum(1 for j in self._jobs.values() if j.status == SyncJobStatus.RUNNING)

    async def find_stale_running(self, cutoff: datetime) -> List[SyncJob]:
        """Get RUNNING jobs started before ``cutoff``."""
        async with self._lock:
            return [
                copy.deepcopy(j) for j in self._jobs.values()
                if j.status == SyncJobStatus.RUNNING
                and j.started_at is not None
                and j.started_at < cutoff
            ]

    async def list_by_user(
        self,
        user_id: str,
        status: Optional[SyncJobStatus] = None,
    ) -> List[SyncJob]:
        """Get a user's jobs, newest first."""
        async with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.user_id == user_id and (status is None or j.status == status)
            ]
            jobs.sort(key=lambda j: j.created_at, reverse=True)
            return [copy.deepcopy(j) for j in jobs]

    async def delete_finished_before(
        self,
        cutoff: datetime,
        statuses: Iterable[SyncJobStatus],
    ) -> int:
        """
        Delete jobs in ``statuses`` completed before ``cutoff``.

        Returns:
            Number of deleted jobs.
        """
        statuses = set(statuses)
        async with self._lock:
            doomed = [
                job_id for job_id, j in self._jobs.items()
                if j.status in statuses
                and j.completed_at is not None
                and j.completed_at < cutoff
            ]
            for job_id in doomed:
                del self._jobs[job_id]
            return len(doomed)


class InMemorySyncHistoryRepository:
    """Append-only sync history store."""

    def __init__(self) -> None:
        self._records: List[SyncHistory] = []
        self._lock = asyncio.Lock()

    async def add(self, record: SyncHistory) -> None:
        async with self._lock:
            self._records.append(record)

    async def list_by_entity(self, entity_type: str, entity_id: str) -> List[SyncHistory]:
        """Get an entity's history, newest first."""
        async with self._lock:
            records = [
                r for r in self._records
                if r.entity_type == entity_type and r.entity_id == entity_id
            ]
        return sorted(records, key=lambda r: r.completed_at, reverse=True)

    async def list_by_job(self, job_id: UUID) -> List[SyncHistory]:
        async with self._lock:
            return [r for r in self._records if r.sync_job_id == job_id]

    async def delete_before(self, cutoff: datetime) -> int:
        """
        Delete records completed before ``cutoff``.

        Returns:
            Number of deleted records.
        """
        async with self._lock:
            kept = [r for r in self._records if r.completed_at >= cutoff]
            removed = len(self._records) - len(kept)
            self._records = kept
        if removed:
            logger.info("Old sync history removed", removed=removed)
        return removed
