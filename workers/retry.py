"""
Workers - Retry Policy.

============================================================
RESPONSIBILITY
============================================================
Fixed-delay retry for upstream calls.

The partner asks clients to wait a stated cooldown between
attempts, so the delay is constant, never exponential.

- Only recoverable errors (TrackerException.is_recoverable)
  are retried; anything else propagates immediately
- The last error propagates once attempts are exhausted
- cancel() stops further attempts
- Inside an execution deadline (set by the queue around each
  handler) a cooldown that would end past it is not started;
  the last error propagates so the job can still fail cleanly

============================================================
"""

import asyncio
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

from core.exceptions import JobError, TrackerException


T = TypeVar("T")

logger = logging.getLogger("worker.retry")

# Event-loop time by which the running handler must return
_deadline: ContextVar[Optional[float]] = ContextVar("execution_deadline", default=None)


@contextmanager
def execution_deadline(timeout_seconds: Optional[float]) -> Iterator[None]:
    """Bound the retry cooldowns of everything awaited inside the block."""
    if timeout_seconds is None:
        yield
        return
    token = _deadline.set(asyncio.get_running_loop().time() + timeout_seconds)
    try:
        yield
    finally:
        _deadline.reset(token)


def remaining_seconds() -> Optional[float]:
    """Time left before the execution deadline, or None when unbounded."""
    deadline = _deadline.get()
    if deadline is None:
        return None
    return deadline - asyncio.get_running_loop().time()


class RetryCancelledError(JobError):
    """Retry loop stopped by cancel()."""


class RetryPolicy:
    """
    Bounded attempts with a fixed delay.

    Usage:
        policy = RetryPolicy(max_attempts=5, delay_seconds=900)
        records = await policy.run(lambda: api.get_top(uid), description=uid)
    """

    def __init__(self, max_attempts: int = 5, delay_seconds: float = 900.0) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "",
    ) -> T:
        """
        Run operation until it succeeds or attempts are exhausted.

        Raises:
            RetryCancelledError: cancel() was called
            TrackerException: last error after exhausting attempts,
                or the first non-recoverable error
        """
        last_error: Optional[TrackerException] = None

        for attempt in range(1, self.max_attempts + 1):
            if self._cancelled:
                raise RetryCancelledError(f"Retry cancelled: {description}")

            try:
                return await operation()
            except TrackerException as e:
                if not e.is_recoverable:
                    raise
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed for {description}: {e.message}"
                )

            if attempt < self.max_attempts:
                left = remaining_seconds()
                if left is not None and left <= self.delay_seconds:
                    logger.error(
                        f"Giving up on {description} after attempt {attempt}: "
                        f"{self.delay_seconds}s cooldown exceeds the {max(left, 0):.1f}s left"
                    )
                    raise last_error
                await asyncio.sleep(self.delay_seconds)

        logger.error(f"All {self.max_attempts} attempts failed for {description}")
        raise last_error
