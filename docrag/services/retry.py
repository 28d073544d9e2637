"""Retry logic for throttled operations."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from openai import RateLimitError

from docrag.core.config import settings
from docrag.core.exceptions import ThrottlingError
from docrag.monitoring.metrics import embedding_retries_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

THROTTLING_MARKERS = ("throttl", "rate limit", "rate_limit", "too many requests", "429")


def is_throttling_error(error: BaseException) -> bool:
    """
    Decide whether an error is a rate-limit rejection.

    Args:
        error: Raised exception.

    Returns:
        True for throttling errors, identified by type or message.
    """
    if isinstance(error, (RateLimitError, ThrottlingError)):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in THROTTLING_MARKERS)


def full_jitter_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Uniform random delay in [0, min(max_delay, base_delay * 2**attempt))."""
    return min(max_delay, base_delay * (2 ** attempt)) * random.random()


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    should_retry: Callable[[BaseException], bool] = is_throttling_error,
) -> T:
    """
    Retry an async function with full-jitter exponential backoff.

    Args:
        func: Async function to retry.
        max_retries: Maximum number of retry attempts.
        base_delay: Delay unit in seconds, doubled per attempt.
        max_delay: Cap on the exponential delay.
        should_retry: Predicate selecting retryable errors. Any other error
            propagates immediately.

    Returns:
        Result of the function call.

    Raises:
        The last exception if all retries fail, or the first non-retryable one.
    """
    max_retries = settings.embedding_max_retries if max_retries is None else max_retries
    base_delay = settings.embedding_retry_base_delay if base_delay is None else base_delay
    max_delay = settings.embedding_retry_max_delay if max_delay is None else max_delay

    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not should_retry(e):
                raise
            if attempt >= max_retries:
                logger.error(
                    f"All {max_retries + 1} attempts failed. Last error: {str(e)}")
                raise
            wait_time = full_jitter_delay(attempt, base_delay, max_delay)
            embedding_retries_total.inc()
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} throttled: {str(e)}. "
                f"Retrying in {wait_time:.2f}s..."
            )
            await asyncio.sleep(wait_time)
            attempt += 1
