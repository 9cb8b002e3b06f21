"""
ShuffleBot — Per-chat command locks.

Two workers handling the same mutating command for one chat would both load
the chat, change it and write it back, losing one of the updates. Commands
marked as exclusive therefore run under a lock per chat id. Different chats
never wait for each other, and non-exclusive commands never take a lock.

All exclusive commands of one chat share the same lock, so /exclude and
/vacation for one chat serialize against each other too.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Handler = Callable[..., Awaitable[T]]


class ChatLockRegistry:
    """Lazily created asyncio locks keyed by chat id, kept for the process lifetime."""

    def __init__(self, commands: Iterable[str]) -> None:
        self._commands = frozenset(commands)
        self._chats: dict[str, asyncio.Lock] = {}
        self._mutex = threading.Lock()

    @property
    def commands(self) -> frozenset[str]:
        return self._commands

    def is_exclusive(self, command: str) -> bool:
        return command in self._commands

    def chat_lock(self, chat_id: str) -> asyncio.Lock:
        """Return the lock of `chat_id`, creating it on first use."""
        lock = self._chats.get(chat_id)
        if lock is not None:
            return lock

        with self._mutex:
            # another worker may have created it before we got the mutex
            lock = self._chats.get(chat_id)
            if lock is None:
                lock = asyncio.Lock()
                self._chats[chat_id] = lock
                logger.debug("Lock created for chat %s", chat_id)
        return lock

    def guard(self, command: str, chat_id: str, handler: Handler[T]) -> Handler[T]:
        """Wrap `handler` with the chat lock if `command` is exclusive.

        Non-exclusive commands get the original handler back unchanged.
        """
        if not self.is_exclusive(command):
            return handler

        lock = self.chat_lock(chat_id)

        @wraps(handler)
        async def locked(*args: Any, **kwargs: Any) -> T:
            async with lock:
                return await handler(*args, **kwargs)

        return locked

    def __len__(self) -> int:
        return len(self._chats)
