"""
Retry with capped exponential backoff for remote calls.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from runscope.errors import RetryExhaustedError
from runscope.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_PATTERNS = (
    "502",
    "503",
    "504",
    "429",
    "timeout",
    "connection refused",
    "network is unreachable",
    "temporary failure",
    "service unavailable",
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt is zero based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


DEFAULT_POLICY = RetryPolicy()


def is_retryable(error: BaseException) -> bool:
    """Check if an error looks transient (server-side 5xx, rate limit, network)."""
    error_str = str(error).lower()
    return any(pattern in error_str for pattern in RETRYABLE_PATTERNS)


def retry_with_backoff(
    func: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute ``func`` with automatic retry on transient errors.

    Args:
        func: The remote operation to execute
        policy: Attempts and backoff bounds (default: 3 retries, 1s base, 30s cap)
        sleep: Sleep function, replaceable in tests

    Returns:
        The result of the operation

    Raises:
        RetryExhaustedError: If every attempt failed with a transient error
        Exception: Non-transient errors are re-raised immediately
    """
    policy = policy or DEFAULT_POLICY
    last_error: Optional[BaseException] = None

    for attempt in range(policy.max_retries + 1):
        try:
            return func()
        except Exception as exc:
            if not is_retryable(exc):
                raise

            last_error = exc

            if attempt < policy.max_retries:
                delay = policy.delay(attempt)
                logger.warning(
                    "remote_call_retry",
                    extra={
                        "attempt": attempt + 1,
                        "max_retries": policy.max_retries,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                )
                sleep(delay)

    assert last_error is not None
    raise RetryExhaustedError(policy.max_retries, last_error) from last_error
