"""
ShuffleBot — Command Registry & Dispatcher.

The registry is built once at startup and never mutated; the dispatcher turns
one inbound Event into at most one handler invocation.

Outcomes of dispatch():
  - silent ignore: not a message, not a command, or the chat is stopped
  - chat-only rejection: a fixed reply, handled=False
  - handler failure: a generic reply to the user, handled=True with the error
  - success: handled=True
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Awaitable, Callable

from src.core import commands as cmd
from src.core.chat_lock import ChatLockRegistry
from src.core.commands import CommandContext
from src.core.events import DISPATCHABLE_KINDS, Event
from src.core.shuffle import new_random

if TYPE_CHECKING:
    from src.config import Settings
    from src.ports.chat_store_port import ChatStore
    from src.ports.llm_port import CompletionProvider
    from src.ports.messaging_port import MessagingPort

logger = logging.getLogger(__name__)

CHAT_ONLY_MESSAGE = "sorry, this command is available only for chats"
FAILURE_MESSAGE = "sorry, some error occurred"

HandlerFn = Callable[[CommandContext], Awaitable[None]]


@dataclass(frozen=True)
class Command:
    """Static description of one bot command."""

    name: str
    handler: HandlerFn
    usable_while_inactive: bool = False
    chat_only: bool = False
    exclusive: bool = False


class CommandRegistry:
    """Read-only mapping of command tokens to their descriptors."""

    def __init__(self, commands: Iterable[Command]) -> None:
        self._commands = MappingProxyType({c.name: c for c in commands})

    def get(self, token: str) -> Command | None:
        return self._commands.get(token)

    def exclusive_commands(self) -> list[str]:
        return sorted(name for name, c in self._commands.items() if c.exclusive)

    def __contains__(self, token: object) -> bool:
        return token in self._commands

    def __iter__(self) -> Iterator[Command]:
        return iter(self._commands.values())

    def __len__(self) -> int:
        return len(self._commands)


def build_registry() -> CommandRegistry:
    """Return the bot's command table."""
    return CommandRegistry([
        Command("/start", cmd.start, usable_while_inactive=True, exclusive=True),
        Command("/stop", cmd.stop, exclusive=True),
        Command("/version", cmd.version),
        Command("/go", cmd.go, chat_only=True),
        Command("/shuffle", cmd.go, chat_only=True),
        Command("/exclude", cmd.exclude, chat_only=True, exclusive=True),
        Command("/include", cmd.include, chat_only=True, exclusive=True),
        Command("/link", cmd.link, chat_only=True, exclusive=True),
        Command("/reset", cmd.reset_link, chat_only=True, exclusive=True),
        Command("/vacation", cmd.vacation, chat_only=True, exclusive=True),
        Command("/skip", cmd.skip, chat_only=True, exclusive=True),
        Command("/days", cmd.days, chat_only=True, exclusive=True),
        Command("/gpt", cmd.gpt, chat_only=True),
        Command("/ygpt", cmd.yandex_gpt),
    ])


def split_command(text: str) -> tuple[str, str]:
    """Split message text into (command token, arguments) on the first whitespace."""
    parts = text.split(maxsplit=1)
    if not parts:
        return "", ""
    token = parts[0].strip()
    arguments = parts[1] if len(parts) > 1 else ""
    return token, arguments


@dataclass(frozen=True)
class DispatchResult:
    handled: bool
    error: BaseException | None = None


class Dispatcher:
    """Routes events to command handlers."""

    def __init__(
        self,
        registry: CommandRegistry,
        store: ChatStore,
        messenger: MessagingPort,
        settings: Settings,
        locks: ChatLockRegistry | None = None,
        providers: dict[str, CompletionProvider] | None = None,
        rnd: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._messenger = messenger
        self._settings = settings
        if locks is None:
            locks = ChatLockRegistry(registry.exclusive_commands())
        self._locks = locks
        self._providers = providers or {}
        self._rnd = rnd if rnd is not None else new_random(settings.SECURE_RANDOM)

    @property
    def locks(self) -> ChatLockRegistry:
        return self._locks

    async def dispatch(self, event: Event) -> DispatchResult:
        """Handle one event. Never raises for handler failures."""
        if event.kind not in DISPATCHABLE_KINDS:
            return DispatchResult(handled=False)

        token, arguments = split_command(event.text)
        command = self._registry.get(token)
        if command is None:
            return DispatchResult(handled=False)

        run = self._locks.guard(command.name, event.chat_id, self._run)
        return await run(event, command, arguments)

    async def _run(self, event: Event, command: Command, arguments: str) -> DispatchResult:
        try:
            chat = await asyncio.to_thread(self._store.get_or_create, event.chat_id)
        except Exception as exc:
            logger.error("[%s] %r chat load failed: %s", event.msg_id, event.chat_id, exc)
            await self._send_failure(event)
            return DispatchResult(handled=False, error=exc)

        if not chat.active and not command.usable_while_inactive:
            return DispatchResult(handled=False)

        if command.chat_only and event.is_private:
            await self._messenger.send_text(chat.id, CHAT_ONLY_MESSAGE)
            return DispatchResult(handled=False)

        ctx = CommandContext(
            event=event,
            chat=chat,
            arguments=arguments,
            messenger=self._messenger,
            store=self._store,
            rnd=self._rnd,
            tz=self._settings.tz,
            providers=self._providers,
            project_url=self._settings.PROJECT_URL,
        )
        logger.info("[%s] %r handling command --> %s", event.msg_id, chat.id, command.name)

        try:
            await asyncio.wait_for(command.handler(ctx), timeout=self._settings.TIMEOUT)
        except Exception as exc:
            logger.error(
                "[%s] %r error handling command %s: %r",
                event.msg_id, chat.id, command.name, exc,
            )
            await self._send_failure(event)
            return DispatchResult(handled=True, error=exc)

        if ctx.replies != 1:
            logger.warning(
                "[%s] command %s sent %d replies, expected one",
                event.msg_id, command.name, ctx.replies,
            )
        return DispatchResult(handled=True)

    async def _send_failure(self, event: Event) -> None:
        try:
            await self._messenger.send_text(event.chat_id, FAILURE_MESSAGE)
        except Exception as exc:
            logger.error("[%s] failed to send error reply: %s", event.msg_id, exc)
