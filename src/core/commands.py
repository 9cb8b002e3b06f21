"""
ShuffleBot — Command Handlers.

Every handler receives a CommandContext holding the resolved chat and the
free-text arguments, may mutate and persist the chat, and must send exactly
one reply. Bad user input is answered with an ordinary reply; only platform,
store and LLM failures are raised to the dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo

from src.config import BOT_NAME, BOT_VERSION
from src.core.shuffle import shuffle_members
from src.data.models import DEFAULT_URL_TEXT, WEEKDAY_NAMES, weekday_number

if TYPE_CHECKING:
    from src.core.events import Event
    from src.data.models import Chat
    from src.ports.chat_store_port import ChatStore
    from src.ports.llm_port import CompletionProvider
    from src.ports.messaging_port import MessagingPort

logger = logging.getLogger(__name__)

# @[user@my.team] mentions inside arguments
USER_ID_RE = re.compile(r"@\[([0-9A-Za-z_@.]+)]")
AUTHOR_RE = re.compile(r"[0-9A-Za-z_@.]+")

MAX_URL_TEXT_LEN = 255


async def _finish_write(write: Callable[[Chat], None], chat: Chat) -> None:
    """Run a blocking store write; on cancellation wait for it, then re-raise.

    The thread can't be stopped once started, so the caller (and the chat lock
    it holds) stays until the row is written.
    """
    task = asyncio.ensure_future(asyncio.to_thread(write, chat))
    try:
        await asyncio.shield(task)
    except asyncio.CancelledError:
        logger.warning("Chat %s write cancelled, waiting for it to finish", chat.id)
        await asyncio.wait([task])
        if task.exception() is not None:
            logger.error("Chat %s write failed after cancel: %s", chat.id, task.exception())
        raise


@dataclass
class CommandContext:
    """Everything a handler may touch while serving one command."""

    event: Event
    chat: Chat
    arguments: str
    messenger: MessagingPort
    store: ChatStore
    rnd: random.Random
    tz: ZoneInfo
    providers: dict[str, CompletionProvider] = field(default_factory=dict)
    project_url: str = ""
    replies: int = 0

    async def reply(self, text: str) -> None:
        self.replies += 1
        await self.messenger.send_text(self.chat.id, text)

    async def reply_link(self, text: str, label: str, url: str) -> None:
        self.replies += 1
        await self.messenger.send_text_with_link(self.chat.id, text, label, url)

    async def save(self) -> None:
        await _finish_write(self.store.save, self.chat)

    async def upsert(self) -> None:
        await _finish_write(self.store.upsert, self.chat)

    def user_ids(self) -> set[str]:
        """All @[id] mentions found in the arguments."""
        return set(USER_ID_RE.findall(self.arguments))

    def author(self) -> str | None:
        """The sender id if it looks like a valid platform user id."""
        sender = self.event.sender_id
        if not AUTHOR_RE.fullmatch(sender):
            return None
        return sender

    def today(self) -> int:
        return weekday_number(datetime.now(self.tz))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def start(ctx: CommandContext) -> None:
    """Handle /start — activate the bot for this chat."""
    if ctx.chat.active:
        await ctx.reply("already started")
        return
    ctx.chat.active = True
    await ctx.upsert()
    await ctx.reply("started")


async def stop(ctx: CommandContext) -> None:
    """Handle /stop — deactivate the bot; the chat row is kept."""
    if not ctx.chat.active:
        await ctx.reply("already stopped")
        return
    ctx.chat.active = False
    await ctx.save()
    await ctx.reply("stopped")


async def version(ctx: CommandContext) -> None:
    msg = f"{BOT_NAME} {BOT_VERSION}\nPython version: {platform.python_version()}"
    if ctx.project_url:
        await ctx.reply_link(msg, ctx.project_url, ctx.project_url)
        return
    await ctx.reply(msg)


# ---------------------------------------------------------------------------
# Shuffle
# ---------------------------------------------------------------------------


async def go(ctx: CommandContext) -> None:
    """Handle /go and /shuffle — chat members in random order."""
    try:
        members = await ctx.messenger.list_members(ctx.chat.id)
    except Exception as exc:
        raise RuntimeError(f"can't get chat members: {exc}") from exc

    chat = ctx.chat
    skipped = chat.exclude_users | chat.skip_users | chat.skipped_on(ctx.today())
    names = [f"@[{m}]" for m in shuffle_members(members, skipped, ctx.rnd)]
    if not names:
        await ctx.reply("no users :(")
        return

    msg = "\n".join(names)
    if chat.url:
        await ctx.reply_link(msg, "📞 " + chat.url_text, chat.url)
        return
    await ctx.reply(msg)


# ---------------------------------------------------------------------------
# Exclude / include
# ---------------------------------------------------------------------------


def _format_excluded(chat: Chat) -> str:
    return "\n".join(sorted(f"@[{user_id}]" for user_id in chat.exclude_users))


async def exclude(ctx: CommandContext) -> None:
    """Handle /exclude — show the excluded users or add new ones."""
    if not ctx.arguments:
        excluded = _format_excluded(ctx.chat)
        await ctx.reply(excluded or "no excluded users")
        return

    users = ctx.user_ids()
    if not users:
        await ctx.reply("no user IDs in arguments")
        return

    ctx.chat.add_exclude(users)
    await ctx.save()
    await ctx.reply("success")


async def include(ctx: CommandContext) -> None:
    """Handle /include — return users to the list; without arguments acts as /go."""
    if not ctx.arguments:
        await go(ctx)
        return
    if not ctx.chat.exclude_users:
        await ctx.reply("success")
        return

    users = ctx.user_ids()
    if not users:
        await ctx.reply("no user IDs in arguments")
        return

    ctx.chat.del_exclude(users)
    await ctx.save()
    await ctx.reply("success")


# ---------------------------------------------------------------------------
# Call link
# ---------------------------------------------------------------------------


async def link(ctx: CommandContext) -> None:
    """Handle /link <url> [label] — set the call link, or show the current one."""
    if not ctx.arguments:
        await ctx.reply(ctx.chat.url or "no calling URL for this chat")
        return

    params = ctx.arguments.split(maxsplit=1)
    link_url = params[0]
    if not urlsplit(link_url).scheme:
        await ctx.reply("incorrect URL")
        return

    text = params[1] if len(params) > 1 else DEFAULT_URL_TEXT
    if len(text) > MAX_URL_TEXT_LEN:
        await ctx.reply(f"text is too long (max {MAX_URL_TEXT_LEN} characters)")
        return

    ctx.chat.url = link_url
    ctx.chat.url_text = text
    await ctx.save()
    await ctx.reply("success")


async def reset_link(ctx: CommandContext) -> None:
    """Handle /reset — remove the call link."""
    if not ctx.chat.url:
        await ctx.reply("no calling URL for this chat")
        return
    ctx.chat.url = ""
    ctx.chat.url_text = DEFAULT_URL_TEXT
    await ctx.save()
    await ctx.reply("success")


# ---------------------------------------------------------------------------
# Personal toggles
# ---------------------------------------------------------------------------


async def vacation(ctx: CommandContext) -> None:
    """Handle /vacation — toggle the sender in the exclude set."""
    author = ctx.author()
    if author is None:
        await ctx.reply("no valid author user")
        return

    if author in ctx.chat.exclude_users:
        ctx.chat.del_exclude({author})
        msg = "you are back from vacation, welcome"
    else:
        ctx.chat.add_exclude({author})
        msg = "you are on vacation, good luck"

    await ctx.save()
    await ctx.reply(f"@[{author}] {msg}")


async def skip(ctx: CommandContext) -> None:
    """Handle /skip — toggle the sender in today's skip set."""
    author = ctx.author()
    if author is None:
        await ctx.reply("no valid author user")
        return

    if author in ctx.chat.skip_users:
        ctx.chat.del_skip(author)
        msg = "ok, you are in the list again"
    else:
        ctx.chat.add_skip(author)
        msg = "ok, you will be skipped today"

    await ctx.save()
    await ctx.reply(f"@[{author}] {msg}")


def _parse_days(arguments: str) -> set[int] | None:
    days: set[int] = set()
    for token in arguments.replace(",", " ").split():
        if not token.isdigit() or not 0 <= int(token) <= 6:
            return None
        days.add(int(token))
    return days


async def days(ctx: CommandContext) -> None:
    """Handle /days [0-6 ...] — weekdays on which the sender is always skipped."""
    author = ctx.author()
    if author is None:
        await ctx.reply("no valid author user")
        return

    week_days = _parse_days(ctx.arguments)
    if week_days is None:
        await ctx.reply("invalid days, use numbers 0-6 (Sunday is 0)")
        return

    ctx.chat.set_days(author, week_days)
    await ctx.save()

    if not week_days:
        await ctx.reply(f"@[{author}] days are cleaned")
        return
    names = ", ".join(WEEKDAY_NAMES[d] for d in sorted(week_days))
    await ctx.reply(f"@[{author}] days are set: {names}")


# ---------------------------------------------------------------------------
# GPT passthrough
# ---------------------------------------------------------------------------


async def _complete(ctx: CommandContext, key: str) -> None:
    provider = ctx.providers.get(key)
    if provider is None or not provider.configured:
        name = provider.name if provider is not None else key
        await ctx.reply(f"{name} is not configured")
        return
    if not ctx.chat.gpt:
        await ctx.reply("gpt is not allowed for this chat")
        return

    content = ctx.arguments.strip()
    if not content:
        await ctx.reply("no arguments")
        return

    result = await provider.complete(content)
    await ctx.reply(result or "empty response")


async def gpt(ctx: CommandContext) -> None:
    await _complete(ctx, "gpt")


async def yandex_gpt(ctx: CommandContext) -> None:
    await _complete(ctx, "ygpt")
