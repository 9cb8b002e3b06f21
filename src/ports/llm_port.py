"""LLM port — abstract interface for text completion backends."""

from __future__ import annotations

from typing import Protocol


class LLMError(Exception):
    """Raised when a completion backend call fails."""


class CompletionProvider(Protocol):
    """A configured-or-not completion backend.

    An unconfigured provider is a valid state: commands report it
    to the user instead of failing.
    """

    name: str

    @property
    def configured(self) -> bool: ...

    async def complete(self, text: str) -> str: ...
