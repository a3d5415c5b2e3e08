"""
Retry helper for store reads.

Reads are safe to repeat, so transient StoreUnavailable errors are retried
with exponential backoff. Writes never go through here: a repeated write can
duplicate content, so write failures are surfaced to the caller instead.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from core.config import settings
from core.exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def with_read_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    """
    Run a read operation, retrying on StoreUnavailable.

    Args:
        operation: Zero-argument coroutine factory performing the read
        attempts: Total attempts (defaults to STORE_READ_RETRIES)
        backoff_seconds: Initial delay, doubled per attempt

    Raises:
        StoreUnavailable: If every attempt failed
    """
    attempts = max(1, attempts if attempts is not None else settings.STORE_READ_RETRIES)
    delay = backoff_seconds if backoff_seconds is not None else settings.STORE_RETRY_BACKOFF_SECONDS

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except StoreUnavailable as e:
            if attempt == attempts:
                logger.error("store_read_failed", attempts=attempts, error=str(e))
                raise
            logger.warning("store_read_retry", attempt=attempt, delay=delay, error=str(e))
            await asyncio.sleep(delay)
            delay *= 2

    raise StoreUnavailable("No read attempts were made")
