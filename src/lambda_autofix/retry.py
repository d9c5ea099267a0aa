"""
Retry logic with exponential backoff for read-only external calls.

Only reads are retried: error windows, diagnostics, snapshots and the
verification read. Mutations (apply, publish, alias updates) are never
retried, since a partial success would be repeated.
"""

import asyncio
import random
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar
from dataclasses import dataclass

from .exceptions import ReadError, SignalUnavailableError, SnapshotError

logger = logging.getLogger(__name__)

T = TypeVar('T')

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts, including the first
        backoff_factor: Multiplier for exponential backoff (default 1.0)
        min_wait: Minimum wait time in seconds (default 1)
        max_wait: Maximum wait time in seconds (default 30)
        jitter: Whether to add random jitter to wait time (default True)
        retryable_exceptions: Tuple of exception types to retry
    """
    max_attempts: int = 3
    backoff_factor: float = 1.0
    min_wait: float = 1.0
    max_wait: float = 30.0
    jitter: bool = True
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)


def calculate_backoff(
    attempt: int,
    backoff_factor: float,
    min_wait: float,
    max_wait: float,
    jitter: bool
) -> float:
    """
    Calculate exponential backoff wait time.

    Args:
        attempt: Current attempt number (0-indexed)
        backoff_factor: Multiplier for exponential backoff
        min_wait: Minimum wait time
        max_wait: Maximum wait time
        jitter: Whether to add random jitter

    Returns:
        Wait time in seconds
    """
    # wait = min(max_wait, min_wait * (2^attempt) * backoff_factor)
    wait = min(max_wait, min_wait * (2 ** attempt) * backoff_factor)

    # Randomize between 50-100% of calculated wait
    if jitter:
        wait = wait * (0.5 + random.random() * 0.5)

    return wait


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    sleep: SleepFunc = asyncio.sleep,
    **kwargs: Any
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying retryable failures.

    Args:
        func: Coroutine function to call
        config: Retry policy (defaults to ``READ_RETRY``)
        sleep: Awaitable used to wait between attempts

    Returns:
        Result of the first successful call

    Raises:
        The last exception once attempts are exhausted, or immediately for
        exceptions outside ``config.retryable_exceptions``.
    """
    config = config or READ_RETRY
    name = getattr(func, '__name__', repr(func))

    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt + 1 >= config.max_attempts:
                logger.error(
                    f"Max retries ({config.max_attempts}) exceeded for {name}: {e}"
                )
                raise

            wait_time = calculate_backoff(
                attempt, config.backoff_factor, config.min_wait, config.max_wait, config.jitter
            )

            logger.warning(
                f"Retry {attempt + 1}/{config.max_attempts} for {name} "
                f"after {wait_time:.2f}s: {e}"
            )

            await sleep(wait_time)

    raise RuntimeError(f"call_with_retry for {name} made no attempts")


def retry_async(
    max_attempts: int = 3,
    backoff_factor: float = 1.0,
    min_wait: float = 1.0,
    max_wait: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    sleep: SleepFunc = asyncio.sleep
) -> Callable:
    """
    Decorator for async retry with exponential backoff.

    Args:
        max_attempts: Maximum attempts
        backoff_factor: Backoff multiplier
        min_wait: Minimum wait seconds
        max_wait: Maximum wait seconds
        jitter: Add random jitter
        retryable_exceptions: Exception types to retry
        sleep: Awaitable used to wait between attempts

    Returns:
        Decorated async function

    Example:
        @retry_async(max_attempts=3, retryable_exceptions=(SignalUnavailableError,))
        async def fetch_window(resource_id):
            return await source.get_error_window(resource_id, window)
    """
    config = RetryConfig(
        max_attempts=max_attempts,
        backoff_factor=backoff_factor,
        min_wait=min_wait,
        max_wait=max_wait,
        jitter=jitter,
        retryable_exceptions=retryable_exceptions
    )

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await call_with_retry(func, *args, config=config, sleep=sleep, **kwargs)

        return wrapper
    return decorator


# Retry policy for signal-source and control-plane reads
READ_RETRY = RetryConfig(
    max_attempts=3,
    backoff_factor=1.0,
    min_wait=1.0,
    max_wait=10.0,
    jitter=True,
    retryable_exceptions=(SignalUnavailableError, SnapshotError, ReadError)
)
