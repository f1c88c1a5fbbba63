"""
Workers - Single-Consumer Queue.

============================================================
RESPONSIBILITY
============================================================
In-process stand-in for the external durable queue, with the
one property the upstream rate contract depends on: at most
one handler runs at a time per queue.

- enqueue: validate and store a message
- consume_once: dequeue, handle, acknowledge
- drain: consume until empty

============================================================
DELIVERY SEMANTICS
============================================================
At-least-once. A handler exception leaves the message
un-acknowledged and it is re-queued until max_deliveries is
reached, then dropped with an error log. A handler that
exceeds the execution timeout is NOT re-queued: the job stays
non-terminal and expires through its TTL. The timeout is also
published as an execution deadline, so retry cooldowns that
cannot finish in time end the job with its last error instead.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from core.clock import ClockProtocol, SystemClock
from core.exceptions import JobTimeoutError, RequestLimitError
from storage.database import Database
from storage.repositories.jobs import JobRepository
from workers.retry import execution_deadline


M = TypeVar("M", bound=BaseModel)


@dataclass
class _Envelope(Generic[M]):
    message: M
    deliveries: int = 0


class SingleConsumerQueue(Generic[M]):
    """
    asyncio.Queue guarded by a lock so handlers never overlap.

    Usage:
        queue = SingleConsumerQueue("map-search", MapSearchMessage, worker.handle)
        await queue.enqueue({"job_id": ..., ...})
        await queue.drain()
    """

    def __init__(
        self,
        name: str,
        message_type: Type[M],
        handler: Callable[[M], Awaitable[Any]],
        max_deliveries: int = 3,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.name = name
        self._message_type = message_type
        self._handler = handler
        self._max_deliveries = max(1, max_deliveries)
        self._timeout = timeout_seconds
        self._queue: "asyncio.Queue[_Envelope[M]]" = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger(f"worker.queue.{name}")

    def qsize(self) -> int:
        return self._queue.qsize()

    async def enqueue(self, message: Union[M, Dict[str, Any]]) -> M:
        """
        Validate and store a message.

        Raises:
            pydantic.ValidationError: malformed payload
        """
        if not isinstance(message, self._message_type):
            message = self._message_type.model_validate(message)
        await self._queue.put(_Envelope(message))
        return message

    async def consume_once(self) -> bool:
        """
        Handle the next message, if any.

        Returns:
            False when the queue was empty
        """
        async with self._lock:
            try:
                envelope = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return False

            envelope.deliveries += 1
            try:
                with execution_deadline(self._timeout):
                    if self._timeout is not None:
                        await asyncio.wait_for(
                            self._handler(envelope.message), timeout=self._timeout
                        )
                    else:
                        await self._handler(envelope.message)
            except asyncio.TimeoutError:
                error = JobTimeoutError(
                    f"Handler exceeded {self._timeout}s",
                    job_id=getattr(envelope.message, "job_id", None),
                )
                self._logger.error(error.message, extra={"context": error.to_dict()})
            except Exception as e:
                if envelope.deliveries < self._max_deliveries:
                    self._logger.warning(
                        f"Handler failed (delivery {envelope.deliveries}/{self._max_deliveries}), "
                        f"re-queueing: {e}"
                    )
                    self._queue.put_nowait(envelope)
                else:
                    self._logger.error(
                        f"Dropping message after {envelope.deliveries} deliveries: {e}",
                        exc_info=True,
                    )
            finally:
                self._queue.task_done()
            return True

    async def drain(self) -> int:
        """Consume until the queue is empty. Returns deliveries handled."""
        handled = 0
        while await self.consume_once():
            handled += 1
        return handled


class RequestLimiter:
    """
    Per-username on-demand request limit.

    Counts jobs created in the last minute in the job store, so
    the limit holds across restarts and instances.
    """

    def __init__(
        self,
        database: Database,
        requests_per_minute: int = 2,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._database = database
        self._limit = requests_per_minute
        self._clock = clock or SystemClock()

    def check(self, username: str) -> None:
        """
        Raises:
            RequestLimitError: limit reached for this username
        """
        since = self._clock.now() - timedelta(minutes=1)
        with self._database.transaction() as session:
            recent = JobRepository(session, self._clock).count_recent_for_user(username, since)
        if recent >= self._limit:
            raise RequestLimitError(
                f"Too many requests for {username}: {recent} in the last minute",
                username=username,
            )
