"""Retry with exponential backoff for remote calls."""
from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from jobtracker.errors import NonRetryableRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _default_retryable(exc: BaseException) -> bool:
    return not isinstance(exc, NonRetryableRemoteError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: bool = False
    is_retryable: Callable[[BaseException], bool] = field(default=_default_retryable)

    @classmethod
    def from_settings(cls, settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            multiplier=settings.retry_backoff_multiplier,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based), capped at ``max_delay``."""
        delay = min(self.initial_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()
        return delay


async def execute_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    context: str = "API call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn()`` until it succeeds, the error is not retryable, or attempts run out.

    The last error is re-raised unchanged.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except Exception as exc:
            if not policy.is_retryable(exc):
                logger.error("%s failed with a non-retryable error: %s", context, exc)
                raise
            if attempt == policy.max_attempts:
                logger.error("%s failed after %d attempts: %s", context, attempt, exc)
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s), retrying in %.1fs",
                context,
                attempt,
                policy.max_attempts,
                exc,
                delay,
            )
            await sleep(delay)
    raise ValueError("RetryPolicy.max_attempts must be at least 1")
