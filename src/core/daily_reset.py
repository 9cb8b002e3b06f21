"""
ShuffleBot — Daily skip reset.

"/skip" only lasts until local midnight. One background task sleeps until
00:00:01 of the next day in the configured time zone, then clears the skip
sets of all chats with a single bulk update. A failed clean is retried after
a minute, forever; users never see these failures.

States: IDLE (timer armed) → CLEANING → IDLE, and TERMINATED after stop().
force_clean() skips the rest of the current wait.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, time, timedelta, timezone
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

if TYPE_CHECKING:
    from src.ports.chat_store_port import ChatStore

logger = logging.getLogger(__name__)

RETRY_DELAY = timedelta(minutes=1)


class DaemonState(str, enum.Enum):
    IDLE = "idle"
    CLEANING = "cleaning"
    TERMINATED = "terminated"


class _Signal(enum.Enum):
    FORCE = "force"
    STOP = "stop"


def next_timeout(ts: datetime) -> timedelta:
    """Time from `ts` until 00:00:01 of the next local day.

    Computed on absolute time, so days with a DST switch last 23 or 25 hours.
    """
    next_day = datetime.combine(ts.date() + timedelta(days=1), time(0, 0, 1), tzinfo=ts.tzinfo)
    return next_day.astimezone(timezone.utc) - ts.astimezone(timezone.utc)


class DailyResetDaemon:
    """Background task clearing the per-day skip sets at local midnight."""

    def __init__(
        self,
        store: ChatStore,
        tz: ZoneInfo,
        retry_delay: timedelta = RETRY_DELAY,
    ) -> None:
        self._store = store
        self._tz = tz
        self._retry_delay = retry_delay
        self._signals: asyncio.Queue[_Signal] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self.state = DaemonState.IDLE
        self.delay = timedelta(0)
        self.stopped = asyncio.Event()

    def start(self) -> None:
        """Start the timer loop. Must be called from a running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="daily-reset")

    def force_clean(self) -> None:
        """Clean the skip sets now instead of waiting for midnight."""
        self._signals.put_nowait(_Signal.FORCE)

    def stop(self) -> None:
        self._signals.put_nowait(_Signal.STOP)

    async def wait_stopped(self) -> None:
        await self.stopped.wait()

    def _now(self) -> datetime:
        return datetime.now(self._tz)

    async def _run(self) -> None:
        self.delay = next_timeout(self._now())
        try:
            while True:
                self.state = DaemonState.IDLE
                try:
                    signal = await asyncio.wait_for(
                        self._signals.get(), timeout=self.delay.total_seconds(),
                    )
                except asyncio.TimeoutError:
                    logger.info("Skip reset tick after %s", self.delay)
                else:
                    if signal is _Signal.STOP:
                        logger.info("Stop skip reset daemon")
                        return
                    logger.info("Forced skip reset")

                self.state = DaemonState.CLEANING
                self.delay = await self._clean()
        finally:
            self.state = DaemonState.TERMINATED
            self.stopped.set()

    async def _clean(self) -> timedelta:
        """Run the bulk clean and return the delay until the next attempt."""
        try:
            await asyncio.to_thread(self._store.clean_skip)
        except Exception as exc:
            logger.error("Failed to clean skip lists, retry in %s: %s", self._retry_delay, exc)
            return self._retry_delay
        return next_timeout(self._now())
