"""Chat store port — abstract interface for persisted chat state.

Core modules depend on this protocol, never on a specific database.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Chat


class StoreError(Exception):
    """Raised when any chat store operation fails."""


class ChatNotFoundError(StoreError):
    """Raised by update() when the chat row doesn't exist yet."""


class ChatStore(Protocol):
    """Abstract chat storage used by the dispatcher, handlers and daemon."""

    def get_or_create(self, chat_id: str) -> Chat: ...

    def update(self, chat: Chat) -> None: ...

    def upsert(self, chat: Chat) -> None: ...

    def save(self, chat: Chat) -> None: ...

    def clean_skip(self) -> int: ...
