"""
ShuffleBot — Worker Pool.

N worker tasks consume one shared queue and run the dispatcher for every
event. The queue holds a single item, so a producer that submits faster than
the workers drain it waits in submit(); that's the only throttle.

Shutdown: close() lets every event submitted before it be handled, then the
workers exit and `done` is set.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.dispatcher import Dispatcher
    from src.core.events import Event

logger = logging.getLogger(__name__)

# Tells one worker to exit; queued after every real event.
_STOP = object()


class PoolClosedError(RuntimeError):
    """Raised by submit() after the pool has been closed."""


class WorkerPool:
    """Fixed set of asyncio workers pulling events off a shared queue."""

    def __init__(self, size: int, dispatcher: Dispatcher) -> None:
        if size < 1:
            raise ValueError("number of workers must be greater than 0")
        self._size = size
        self._dispatcher = dispatcher
        self._queue: asyncio.Queue[object] | None = None
        self._workers: list[asyncio.Task] = []
        self._watcher: asyncio.Task | None = None
        self._closed = False
        self.done = asyncio.Event()

    @property
    def size(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Spawn the workers. Must be called from a running event loop."""
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=1)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"worker-{i}")
            for i in range(self._size)
        ]
        self._watcher = asyncio.create_task(self._watch(), name="worker-pool-join")
        logger.info("Worker pool started with %d workers", self._size)

    async def submit(self, event: Event) -> None:
        """Queue an event, waiting while all workers are busy."""
        if self._closed or self._queue is None:
            raise PoolClosedError("worker pool is not accepting events")
        await self._queue.put(event)

    async def close(self) -> None:
        """Stop accepting events; workers exit after draining the queue."""
        if self._closed:
            return
        self._closed = True
        if self._queue is None:
            self.done.set()
            return
        for _ in self._workers:
            await self._queue.put(_STOP)
        logger.info("Worker pool closing, draining queue")

    async def join(self) -> None:
        """Wait until every worker has exited."""
        await self.done.wait()

    async def _watch(self) -> None:
        await asyncio.gather(*self._workers, return_exceptions=True)
        self.done.set()
        logger.info("Worker pool stopped")

    async def _worker(self, number: int) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            if item is _STOP:
                logger.debug("Worker %d exits", number)
                return

            event: Event = item  # type: ignore[assignment]
            start = time.monotonic()
            try:
                result = await self._dispatcher.dispatch(event)
            except Exception:
                logger.exception(
                    "[%s] error handling event after %.2fs",
                    event.msg_id, time.monotonic() - start,
                )
                continue

            duration = time.monotonic() - start
            if result.error is not None:
                logger.error(
                    "[%s] error handling event after %.2fs: %s",
                    event.msg_id, duration, result.error,
                )
            else:
                logger.info(
                    "[%s] handled event in %.2fs (handled=%s)",
                    event.msg_id, duration, result.handled,
                )
