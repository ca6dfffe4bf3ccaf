"""Retry policies for ledger writes and batch jobs (tenacity)."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from leavedesk.common.exceptions import ConcurrencyConflict, PersistenceError
from leavedesk.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A lost compare-and-set is retried exactly once, then surfaced.
retry_on_conflict = retry(
    retry=retry_if_exception_type(ConcurrencyConflict),
    stop=stop_after_attempt(2),
    reraise=True,
)


async def with_batch_retry(operation: Callable[[], Awaitable[T]]) -> T:
    """Run ``operation`` retrying PersistenceError with bounded exponential backoff."""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(PersistenceError),
        stop=stop_after_attempt(settings.BATCH_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=settings.BATCH_RETRY_BACKOFF_SECONDS,
            max=settings.BATCH_RETRY_BACKOFF_MAX_SECONDS,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await operation()
    raise AssertionError("unreachable")  # pragma: no cover
