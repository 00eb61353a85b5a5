"""
Domain-specific exceptions.

Custom exceptions for feed ingestion, aggregation and sync job handling.
"""
from typing import Optional, Sequence


class DomainError(Exception):
    """Base exception for domain errors."""

    def __init__(self, message: str) -> None:
        """
        Initialize domain error.

        Args:
            message: Error message describing the issue.
        """
        self.message = message
        super().__init__(self.message)


class DomainValidationError(DomainError):
    """Exception raised when domain validation fails."""
    pass


class FetchError(DomainError):
    """Exception raised when a feed could not be retrieved."""

    def __init__(self, url: str, last_cause: Optional[BaseException] = None) -> None:
        """
        Initialize fetch error.

        Args:
            url: URL of the feed that could not be fetched.
            last_cause: Error of the final attempt.
        """
        reason = str(last_cause) if last_cause is not None else "unknown error"
        super().__init__(f"Failed to fetch feed from {url}: {reason}")
        self.url = url
        self.last_cause = last_cause


class FeedItemError(DomainError):
    """Exception raised when a single feed item cannot be mapped."""

    def __init__(self, item_id: str, reason: str) -> None:
        """
        Initialize feed item error.

        Args:
            item_id: Identifier of the offending item.
            reason: What was wrong with it.
        """
        super().__init__(f"Feed item {item_id} is malformed: {reason}")
        self.item_id = item_id
        self.reason = reason


class UnsupportedPlatformError(DomainError):
    """Exception raised when no parser exists for a platform."""

    def __init__(self, platform: str) -> None:
        super().__init__(f"Unsupported platform: {platform}")
        self.platform = platform


class AggregationError(DomainError):
    """Exception raised when every configured source failed."""

    def __init__(self, failed_sources: Sequence[str]) -> None:
        """
        Initialize aggregation error.

        Args:
            failed_sources: URLs of the sources that failed.
        """
        super().__init__(
            f"All {len(failed_sources)} sources failed: {', '.join(failed_sources)}"
        )
        self.failed_sources = list(failed_sources)


class SyncJobNotFoundError(DomainError):
    """Exception raised when a sync job is not found."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Sync job with ID {job_id} not found")
        self.job_id = job_id


class InvalidJobTransitionError(DomainError):
    """Exception raised when a sync job is moved to a state it cannot reach."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        """
        Initialize invalid transition error.

        Args:
            job_id: The job identifier.
            current: Current job status.
            target: Requested job status.
        """
        super().__init__(f"Sync job {job_id} cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobAccessDeniedError(DomainError):
    """Exception raised when a user acts on a job they do not own."""

    def __init__(self, job_id: str, user_id: str) -> None:
        super().__init__(f"User {user_id} is not allowed to modify sync job {job_id}")
        self.job_id = job_id
        self.user_id = user_id


class JobExecutionError(DomainError):
    """
    Exception raised by job handlers to classify a failure.

    A non-retryable error moves the job straight to FAILED.
    """

    def __init__(self, reason: str, retryable: bool = True) -> None:
        """
        Initialize job execution error.

        Args:
            reason: Failure description stored on the job.
            retryable: Whether the job may be attempted again.
        """
        super().__init__(reason)
        self.reason = reason
        self.retryable = retryable
