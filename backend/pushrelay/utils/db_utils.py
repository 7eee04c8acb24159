"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of driver messages that indicate a retryable condition
TRANSIENT_ERRORS = (
    "database is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient(exc: Exception) -> bool:
    """Whether a driver error is worth another attempt."""
    error_str = str(exc).lower()
    return any(msg in error_str for msg in TRANSIENT_ERRORS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.1,
) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    The number of attempts is bounded; the last error is re-raised once
    they are used up.

    Args:
        coro_func: Callable returning a fresh coroutine per attempt
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)

    Returns:
        The result of the coroutine function

    Raises:
        OperationalError: If all retries fail or the error is not transient
    """
    for attempt in range(max_retries):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient(e) or attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Database transient error, retrying in {delay}s (attempt {attempt + 1}/{max_retries})"
            )
            await asyncio.sleep(delay)
    raise RuntimeError("retry_on_lock called with max_retries < 1")
