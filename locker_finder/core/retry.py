"""Fixed-delay retry for flaky RPC calls.

Every failure is treated as transient: public RPC endpoints fail for
rate limits, pruned state and plain network errors alike, and none of
those are worth telling apart here. Attempts run strictly one after the
other with the same pause in between; there is no backoff and no jitter.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from locker_finder.config import RetryPolicy
from locker_finder.core.types import AsyncOperation, T

logger = logging.getLogger(__name__)


async def retry_operation(
    operation: AsyncOperation[T],
    max_attempts: int = 3,
    delay_ms: int = 1000,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation()`` up to *max_attempts* times.

    Returns the first successful result. When every attempt fails the
    exception of the last attempt is re-raised as is.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            last_error = exc
            if attempt == max_attempts:
                break
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %dms...",
                attempt,
                max_attempts,
                exc,
                delay_ms,
            )
            await sleep(delay_ms / 1000)

    assert last_error is not None
    logger.warning(
        "All %d attempts failed, giving up: %s", max_attempts, last_error
    )
    raise last_error


class CallExecutor:
    """Runs chain calls under a :class:`RetryPolicy`."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(
        self,
        operation: AsyncOperation[T],
        max_attempts: int | None = None,
        delay_ms: int | None = None,
    ) -> T:
        return await retry_operation(
            operation,
            max_attempts=(
                self._policy.max_attempts if max_attempts is None else max_attempts
            ),
            delay_ms=self._policy.delay_ms if delay_ms is None else delay_ms,
            sleep=self._sleep,
        )
