"""
Serial request queue for catalog API calls.
Runs one operation at a time in submission order, with a fixed pause after each.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple, TypeVar

from tunesmith.utils.backoff import BackoffPolicy, call_with_backoff

logger = logging.getLogger(__name__)

T = TypeVar("T")

class RequestQueue:
    """FIFO queue that serializes every catalog call in the process."""

    def __init__(
        self,
        spacing_seconds: float = 0.05,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize request queue.

        Args:
            spacing_seconds: Pause after each operation, success or failure
            policy: Rate-limit retry policy applied to every operation
            sleep: Awaitable sleep, injectable for tests
        """
        self.spacing_seconds = spacing_seconds
        self.policy = policy or BackoffPolicy()
        self._sleep = sleep
        self._pending: Deque[Tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._processing = False
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending_count(self) -> int:
        """Number of operations waiting to start."""
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def enqueue(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Queue an operation and wait for its result.

        Backoff retries happen while the operation holds the queue. Cancelling the
        awaiting task before the operation starts removes it from the queue.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending.append((operation, future))
        logger.debug(f"Queued catalog operation ({len(self._pending)} pending)")

        if not self._processing:
            self._processing = True
            self._worker = loop.create_task(self._process())

        return await future

    async def _process(self) -> None:
        try:
            while self._pending:
                operation, future = self._pending.popleft()
                if future.done():
                    logger.debug("Skipping cancelled catalog operation")
                    continue

                try:
                    result = await call_with_backoff(operation, self.policy, self._sleep)
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)

                await self._sleep(self.spacing_seconds)
        finally:
            self._processing = False
