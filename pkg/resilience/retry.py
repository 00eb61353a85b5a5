"""
Retry with linear backoff.

Wraps an awaitable factory and re-invokes it on configured exceptions,
sleeping ``backoff_unit * attempt`` seconds between attempts.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from pkg.logger.logger import get_logger


logger = get_logger(__name__)


T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Exception raised when every attempt of a retried call has failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        """
        Initialize retry exhausted error.

        Args:
            attempts: Number of attempts that were made.
            last_error: Exception raised by the final attempt.
        """
        self.attempts = attempts
        self.last_error = last_error
        self.message = f"Gave up after {attempts} attempts: {last_error}"
        super().__init__(self.message)


@dataclass(frozen=True)
class LinearBackoff:
    """
    Linear backoff policy.

    Attempt ``n`` that fails is followed by a wait of ``backoff_unit * n``
    seconds, so the first retry waits 1x, the second 2x and so on.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        backoff_unit: Base delay in seconds.
    """
    max_attempts: int = 3
    backoff_unit: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_unit < 0:
            raise ValueError("backoff_unit cannot be negative")

    def delay_for(self, attempt: int) -> float:
        """
        Get the delay that follows a failed attempt.

        Args:
            attempt: 1-based number of the attempt that failed.

        Returns:
            Delay in seconds.
        """
        return self.backoff_unit * attempt


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: LinearBackoff,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_failure: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Run ``func`` until it succeeds or the policy runs out of attempts.

    The wait between attempts goes through ``sleep`` so a cancelled caller
    stops retrying immediately.

    Args:
        func: Zero-argument coroutine factory, called once per attempt.
        policy: Backoff policy.
        retry_on: Exception types that trigger another attempt.
        operation: Label used in log records.
        sleep: Awaitable sleep function.
        on_failure: Optional callback invoked with (attempt, error).

    Returns:
        The result of the first successful attempt.

    Raises:
        RetryExhaustedError: If all attempts failed with ``retry_on`` errors.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            last_error = e
            if on_failure is not None:
                on_failure(attempt, e)
            if attempt == policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "Attempt failed, retrying",
                operation=operation,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await sleep(delay)

    assert last_error is not None
    raise RetryExhaustedError(policy.max_attempts, last_error)
