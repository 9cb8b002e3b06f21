"""Messaging port — abstract interface for talking to chats.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class MessagingPort(Protocol):
    """Abstract messaging interface used by core modules."""

    async def send_text(self, chat_id: str, text: str) -> None: ...

    async def send_text_with_link(
        self, chat_id: str, text: str, label: str, url: str
    ) -> None: ...

    async def list_members(self, chat_id: str) -> list[str]: ...
