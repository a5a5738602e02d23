"""Caller-side retry helper for lock contention and stale reads."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from ..core.exceptions import BusyError, StaleStateError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ConflictRetryPolicy:
    """Exponential backoff with jitter for retryable engine errors."""

    max_attempts: int = 4
    initial_delay_ms: int = 25
    max_delay_ms: int = 1000
    jitter: bool = True
    retry_on: Tuple[Type[Exception], ...] = (BusyError, StaleStateError)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be non-negative")
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (1-based)."""
        if attempt <= 0:
            return 0.0
        delay = min(self.initial_delay_ms * (2 ** (attempt - 1)), self.max_delay_ms)
        if self.jitter and delay > 0:
            jitter_range = int(delay * 0.1)
            delay = max(0, delay + random.randint(-jitter_range, jitter_range))
        return delay / 1000.0


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    policy: ConflictRetryPolicy = ConflictRetryPolicy(),
) -> T:
    """Run ``operation`` and retry it on retryable conflicts.

    The operation is re-invoked from scratch so it re-reads state on every
    attempt. The last error is raised once attempts are exhausted.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except policy.retry_on as e:
            if attempt >= policy.max_attempts:
                logger.warning(f"Giving up after {attempt} attempts: {e}")
                raise
            delay = policy.calculate_delay(attempt)
            logger.debug(f"Retrying after {type(e).__name__} (attempt {attempt}, delay {delay:.3f}s)")
            await asyncio.sleep(delay)
            attempt += 1
