"""Per-room serialized execution.

Handlers for one room run strictly one after another, in submission order;
handlers for different rooms interleave freely on the event loop. Each room
with pending work gets a lightweight worker task that drains its FIFO queue
and exits when the queue is empty.

Usage:
    result = await dispatcher.run("ABC", lambda: coordinator.handle_join(...))
    dispatcher.schedule("ABC", job)   # fire-and-forget (timers, disconnects)
"""
import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

from .errors import ChatError

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class RoomDispatcher:
    """One FIFO queue and at most one worker task per room."""

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[Tuple[Job, asyncio.Future]]] = {}
        self._workers: Dict[str, asyncio.Task] = {}

    def submit(self, room_code: str, job: Job) -> asyncio.Future:
        """Queue a job for a room and return a future for its result."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queues.setdefault(room_code, deque()).append((job, future))
        if room_code not in self._workers:
            self._workers[room_code] = loop.create_task(self._drain(room_code))
        return future

    async def run(self, room_code: str, job: Job) -> Any:
        """Queue a job and wait for it to finish."""
        return await self.submit(room_code, job)

    def schedule(self, room_code: str, job: Job) -> None:
        """Queue a job without waiting; failures are logged by the worker."""
        future = self.submit(room_code, job)
        future.add_done_callback(_consume_result)

    def active_rooms(self) -> list:
        return list(self._workers)

    async def wait_idle(self) -> None:
        """Wait until every queue has drained, including work queued meanwhile."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def _drain(self, room_code: str) -> None:
        queue = self._queues[room_code]
        future: Optional[asyncio.Future] = None
        try:
            while queue:
                job, future = queue.popleft()
                try:
                    result = await job()
                except ChatError as exc:
                    if not future.done():
                        future.set_exception(exc)
                except Exception as exc:
                    logger.exception(f"[Dispatch] Job failed in room {room_code}")
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(result)
        finally:
            self._workers.pop(room_code, None)
            self._queues.pop(room_code, None)
            # Only reached with pending work if the worker was cancelled mid-drain.
            if future is not None and not future.done():
                future.cancel()
            while queue:
                _, future = queue.popleft()
                if not future.done():
                    future.cancel()


def _consume_result(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()
