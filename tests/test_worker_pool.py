"""Tests for src.core.worker_pool — bounded concurrent event processing."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from src.core.dispatcher import DispatchResult
from src.core.events import Event, EventKind
from src.core.worker_pool import PoolClosedError, WorkerPool


def _event(n: int, chat_id: str = "c1") -> Event:
    return Event(
        kind=EventKind.NEW_MESSAGE,
        msg_id=str(n),
        chat_id=chat_id,
        sender_id="user1",
        text="/go",
    )


class _SlowDispatcher:
    """Records events and how many were in flight at once."""

    def __init__(self, delay: float = 0.02):
        self.delay = delay
        self.seen = []
        self.running = 0
        self.max_running = 0

    async def dispatch(self, event):
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        await asyncio.sleep(self.delay)
        self.running -= 1
        self.seen.append(event.msg_id)
        return DispatchResult(handled=True)


class TestWorkerPool:
    def test_zero_workers_rejected(self):
        with pytest.raises(ValueError):
            WorkerPool(0, _SlowDispatcher())

    @pytest.mark.asyncio
    async def test_every_submitted_event_is_handled_before_done(self):
        dispatcher = _SlowDispatcher()
        pool = WorkerPool(3, dispatcher)
        pool.start()

        for n in range(10):
            await pool.submit(_event(n))
        await pool.close()
        await asyncio.wait_for(pool.join(), timeout=5)

        assert pool.done.is_set()
        assert sorted(dispatcher.seen, key=int) == [str(n) for n in range(10)]

    @pytest.mark.asyncio
    async def test_concurrency_reaches_pool_size(self):
        dispatcher = _SlowDispatcher(delay=0.05)
        pool = WorkerPool(5, dispatcher)
        pool.start()

        for n in range(5):
            await pool.submit(_event(n, chat_id=f"c{n}"))
        await pool.close()
        await asyncio.wait_for(pool.join(), timeout=5)

        assert dispatcher.max_running == 5

    @pytest.mark.asyncio
    async def test_never_more_than_pool_size(self):
        dispatcher = _SlowDispatcher(delay=0.01)
        pool = WorkerPool(2, dispatcher)
        pool.start()

        for n in range(8):
            await pool.submit(_event(n))
        await pool.close()
        await asyncio.wait_for(pool.join(), timeout=5)

        assert dispatcher.max_running == 2
        assert len(dispatcher.seen) == 8

    @pytest.mark.asyncio
    async def test_submit_after_close_raises(self):
        pool = WorkerPool(1, _SlowDispatcher())
        pool.start()
        await pool.close()

        with pytest.raises(PoolClosedError):
            await pool.submit(_event(1))
        await asyncio.wait_for(pool.join(), timeout=5)
        assert pool.closed

    @pytest.mark.asyncio
    async def test_submit_before_start_raises(self):
        pool = WorkerPool(1, _SlowDispatcher())
        with pytest.raises(PoolClosedError):
            await pool.submit(_event(1))

    @pytest.mark.asyncio
    async def test_close_without_start_sets_done(self):
        pool = WorkerPool(2, _SlowDispatcher())
        await pool.close()
        await asyncio.wait_for(pool.join(), timeout=1)
        assert pool.done.is_set()

    @pytest.mark.asyncio
    async def test_failed_events_log_duration(self, caplog):
        dispatcher = AsyncMock()
        dispatcher.dispatch.side_effect = [
            RuntimeError("boom"),
            DispatchResult(handled=True, error=ValueError("bad")),
        ]
        pool = WorkerPool(1, dispatcher)
        pool.start()

        with caplog.at_level(logging.ERROR, logger="src.core.worker_pool"):
            for n in range(2):
                await pool.submit(_event(n))
            await pool.close()
            await asyncio.wait_for(pool.join(), timeout=5)

        errors = [
            r.getMessage() for r in caplog.records
            if r.name == "src.core.worker_pool" and r.levelno == logging.ERROR
        ]
        assert len(errors) == 2
        assert all("error handling event after" in msg for msg in errors)
        assert errors[1].endswith(": bad")

    @pytest.mark.asyncio
    async def test_dispatcher_exception_does_not_kill_worker(self):
        dispatcher = AsyncMock()
        dispatcher.dispatch.side_effect = [
            RuntimeError("boom"),
            DispatchResult(handled=True),
            DispatchResult(handled=False, error=ValueError("bad")),
        ]
        pool = WorkerPool(1, dispatcher)
        pool.start()

        for n in range(3):
            await pool.submit(_event(n))
        await pool.close()
        await asyncio.wait_for(pool.join(), timeout=5)

        assert dispatcher.dispatch.await_count == 3
