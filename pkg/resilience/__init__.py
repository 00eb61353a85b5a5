"""
Resilience package.
"""
from .retry import LinearBackoff, RetryExhaustedError, retry_async

__all__ = [
    "LinearBackoff",
    "RetryExhaustedError",
    "retry_async",
]
