"""Bounded retry for read-only units of work.

Only reads are retried: a read that failed with StorageUnavailableError
changed nothing, so running it again is always safe. Mutations are never
passed through here — a failed write may or may not have committed, and the
caller must re-observe state instead of blindly repeating it.

Backoff is exponential with ±25% jitter so that many handlers recovering
from the same outage don't hammer the database in lockstep.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from markethub.config import settings
from markethub.exceptions import StorageUnavailableError
from markethub.storage.base import Storage, StorageSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

BASE_DELAY_SECONDS = 0.05


async def read_with_retry(
    storage: Storage,
    operation: Callable[[StorageSession], Awaitable[T]],
    attempts: int | None = None,
) -> T:
    """Run `operation` in a fresh unit of work, retrying transient failures."""
    max_attempts = max(1, attempts if attempts is not None else settings.STORAGE_READ_RETRIES)

    for attempt in range(1, max_attempts + 1):
        try:
            async with storage.unit_of_work() as uow:
                return await operation(uow)
        except StorageUnavailableError:
            if attempt == max_attempts:
                logger.error("Read failed after %d attempts", max_attempts)
                raise
            delay = BASE_DELAY_SECONDS * (2 ** (attempt - 1))
            delay *= random.uniform(0.75, 1.25)
            logger.warning(
                "Storage unavailable (attempt %d/%d), retrying in %.2fs",
                attempt, max_attempts, delay,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
