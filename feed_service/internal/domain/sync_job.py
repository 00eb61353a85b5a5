"""
Domain model for synchronisation jobs.

A SyncJob is a unit of asynchronous work over an entity. Its status follows
a small state machine enforced by the methods below; SyncHistory is the
audit record written when a job finishes.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from .errors import DomainValidationError, InvalidJobTransitionError
from .product import utcnow


class SyncJobType(str, Enum):
    """Kinds of synchronisation work."""
    DATASET_SYNC = "DATASET_SYNC"
    PRODUCT_UPDATE = "PRODUCT_UPDATE"
    AI_OPTIMIZATION = "AI_OPTIMIZATION"
    PRICE_UPDATE = "PRICE_UPDATE"
    STOCK_UPDATE = "STOCK_UPDATE"
    CATEGORY_SYNC = "CATEGORY_SYNC"
    IMAGE_SYNC = "IMAGE_SYNC"

    @property
    def description(self) -> str:
        return _JOB_TYPE_DESCRIPTIONS[self]


_JOB_TYPE_DESCRIPTIONS = {
    SyncJobType.DATASET_SYNC: "Synchronize dataset with its feed sources",
    SyncJobType.PRODUCT_UPDATE: "Update product information",
    SyncJobType.AI_OPTIMIZATION: "Run AI content optimization",
    SyncJobType.PRICE_UPDATE: "Update product prices",
    SyncJobType.STOCK_UPDATE: "Update stock levels",
    SyncJobType.CATEGORY_SYNC: "Synchronize categories",
    SyncJobType.IMAGE_SYNC: "Synchronize product images",
}


class SyncJobStatus(str, Enum):
    """Lifecycle states of a sync job."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"

    @property
    def description(self) -> str:
        return _STATUS_DESCRIPTIONS[self]

    @property
    def is_terminal(self) -> bool:
        """Terminal jobs are never picked up by the scheduler again."""
        return self not in (SyncJobStatus.PENDING, SyncJobStatus.RUNNING)


_STATUS_DESCRIPTIONS = {
    SyncJobStatus.PENDING: "Waiting to be processed",
    SyncJobStatus.RUNNING: "Currently being processed",
    SyncJobStatus.COMPLETED: "Successfully completed",
    SyncJobStatus.FAILED: "Failed with errors",
    SyncJobStatus.CANCELLED: "Cancelled by user",
    SyncJobStatus.TIMEOUT: "Timed out while running",
}

_ALLOWED_TRANSITIONS = {
    SyncJobStatus.PENDING: {SyncJobStatus.RUNNING, SyncJobStatus.CANCELLED},
    SyncJobStatus.RUNNING: {
        SyncJobStatus.COMPLETED,
        SyncJobStatus.FAILED,
        SyncJobStatus.PENDING,
        SyncJobStatus.CANCELLED,
        SyncJobStatus.TIMEOUT,
    },
}


@dataclass
class SyncJob:
    """
    SyncJob entity.

    Attributes:
        job_type: Kind of work.
        entity_type: Type of the entity the job works on (e.g. "dataset").
        entity_id: Identifier of that entity.
        user_id: Owner of the job.
        id: Job identifier.
        status: Current state.
        priority: Higher runs first.
        scheduled_at: Earliest time the job may run.
        started_at: When the current attempt was claimed.
        completed_at: When the job reached a terminal state.
        retry_count: Retries consumed so far.
        attempt: Number of times the job has been claimed; identifies the
            current claim.
        max_retries: Retry budget.
        error_message: Last failure description.
        metadata: Free-form job parameters.
        created_at: Timestamp of creation.
        updated_at: Timestamp of last update.
    """
    job_type: SyncJobType
    entity_type: str
    entity_id: str
    user_id: str
    id: UUID = field(default_factory=uuid4)
    status: SyncJobStatus = SyncJobStatus.PENDING
    priority: int = 5
    scheduled_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    attempt: int = 0
    max_retries: int = 3
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate domain invariants after initialization."""
        if not self.entity_type:
            raise DomainValidationError("entity_type is required")
        if not self.entity_id:
            raise DomainValidationError("entity_id is required")
        if self.max_retries < 0:
            raise DomainValidationError("max_retries cannot be negative")
        if not 0 <= self.retry_count <= self.max_retries:
            raise DomainValidationError("retry_count must be between 0 and max_retries")

    def _transition(self, target: SyncJobStatus, now: datetime) -> None:
        if target not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidJobTransitionError(str(self.id), self.status.value, target.value)
        self.status = target
        self.updated_at = now

    @property
    def can_retry(self) -> bool:
        """Whether another failure would still be retried."""
        return self.retry_count < self.max_retries

    @property
    def duration_seconds(self) -> Optional[int]:
        """Runtime of the finished attempt."""
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds())

    def start(self, now: datetime) -> None:
        """Move a claimed job to RUNNING."""
        self._transition(SyncJobStatus.RUNNING, now)
        self.started_at = now
        self.attempt += 1
        self.completed_at = None

    def complete(self, now: datetime) -> None:
        """Mark the running attempt as successful."""
        self._transition(SyncJobStatus.COMPLETED, now)
        self.completed_at = now
        self.error_message = None

    def requeue(self, error: str, scheduled_at: datetime, now: datetime) -> None:
        """
        Return a failed attempt to the queue, consuming one retry.

        Args:
            error: Failure description.
            scheduled_at: When the job may run again.
            now: Current time.

        Raises:
            InvalidJobTransitionError: If the job is not running or has no
                retries left.
        """
        if not self.can_retry:
            raise InvalidJobTransitionError(
                str(self.id), self.status.value, SyncJobStatus.PENDING.value
            )
        self._transition(SyncJobStatus.PENDING, now)
        self.retry_count += 1
        self.error_message = error
        self.scheduled_at = scheduled_at
        self.started_at = None

    def fail(self, error: str, now: datetime) -> None:
        """Mark the job as terminally failed."""
        self._transition(SyncJobStatus.FAILED, now)
        self.completed_at = now
        self.error_message = error

    def time_out(self, now: datetime) -> None:
        """Mark a stuck job as terminally timed out."""
        self._transition(SyncJobStatus.TIMEOUT, now)
        self.completed_at = now
        self.error_message = "Job timed out"

    def cancel(self, now: datetime) -> None:
        """Cancel a pending or running job."""
        self._transition(SyncJobStatus.CANCELLED, now)
        self.completed_at = now

    def reschedule(
        self,
        scheduled_at: datetime,
        priority: int,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        """
        Move a pending job to a new slot.

        A new ``max_retries`` is applied only if it still covers the
        retries already consumed; otherwise the current budget is kept.

        Raises:
            InvalidJobTransitionError: If the job is no longer pending.
        """
        if self.status != SyncJobStatus.PENDING:
            raise InvalidJobTransitionError(
                str(self.id), self.status.value, SyncJobStatus.PENDING.value
            )
        self.scheduled_at = scheduled_at
        self.priority = priority
        if metadata:
            self.metadata.update(metadata)
        if max_retries is not None and max_retries >= self.retry_count:
            self.max_retries = max_retries
        self.updated_at = now

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary with all job data.
        """
        return {
            "id": str(self.id),
            "job_type": self.job_type.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "status": self.status.value,
            "priority": self.priority,
            "scheduled_at": self.scheduled_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "retry_count": self.retry_count,
            "attempt": self.attempt,
            "max_retries": self.max_retries,
            "error_message": self.error_message,
            "metadata": dict(self.metadata),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class SyncSummary:
    """
    Counts reported by a finished sync operation.

    Attributes:
        products_added: Records added downstream.
        products_updated: Records updated downstream.
        products_removed: Records removed downstream.
        errors_encountered: Non-fatal errors seen during the run.
        metadata: Extra details worth keeping in history.
    """
    products_added: int = 0
    products_updated: int = 0
    products_removed: int = 0
    errors_encountered: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate counters."""
        for name in ("products_added", "products_updated", "products_removed", "errors_encountered"):
            if getattr(self, name) < 0:
                raise DomainValidationError(f"{name} cannot be negative")


@dataclass(frozen=True)
class SyncHistory:
    """
    Immutable audit record of a finished sync operation.

    Attributes:
        entity_type: Type of the synchronised entity.
        entity_id: Identifier of the synchronised entity.
        user_id: Owner of the operation.
        sync_type: Kind of work performed.
        status: Final status.
        started_at: Start of the final attempt.
        completed_at: End of the final attempt.
        sync_job_id: Job that produced the record, if any.
        duration_seconds: Runtime of the final attempt.
        products_added: Records added downstream.
        products_updated: Records updated downstream.
        products_removed: Records removed downstream.
        errors_encountered: Errors seen during the run.
        metadata: Extra details, including the error message on failure.
        id: Record identifier.
        created_at: Timestamp of creation.
    """
    entity_type: str
    entity_id: str
    user_id: str
    sync_type: SyncJobType
    status: SyncJobStatus
    started_at: Optional[datetime]
    completed_at: datetime
    sync_job_id: Optional[UUID] = None
    duration_seconds: Optional[int] = None
    products_added: int = 0
    products_updated: int = 0
    products_removed: int = 0
    errors_encountered: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)

    def __hash__(self) -> int:
        return hash(self.id)

    @classmethod
    def from_job(cls, job: SyncJob, summary: Optional[SyncSummary] = None) -> "SyncHistory":
        """
        Build the history record for a job in a terminal state.

        Args:
            job: Finished job.
            summary: Counts reported by the job handler.

        Returns:
            New history record.
        """
        summary = summary or SyncSummary()
        completed_at = job.completed_at or job.updated_at
        metadata = dict(summary.metadata)
        if job.error_message:
            metadata["error_message"] = job.error_message
        metadata["retry_count"] = job.retry_count
        return cls(
            sync_job_id=job.id,
            entity_type=job.entity_type,
            entity_id=job.entity_id,
            user_id=job.user_id,
            sync_type=job.job_type,
            status=job.status,
            started_at=job.started_at,
            completed_at=completed_at,
            duration_seconds=job.duration_seconds,
            products_added=summary.products_added,
            products_updated=summary.products_updated,
            products_removed=summary.products_removed,
            errors_encountered=summary.errors_encountered,
            metadata=metadata,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": str(self.id),
            "sync_job_id": str(self.sync_job_id) if self.sync_job_id else None,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "sync_type": self.sync_type.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "products_added": self.products_added,
            "products_updated": self.products_updated,
            "products_removed": self.products_removed,
            "errors_encountered": self.errors_encountered,
            "metadata": dict(self.metadata),
            "created_at": self.created_at.isoformat(),
        }
