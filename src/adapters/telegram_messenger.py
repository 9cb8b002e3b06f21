"""Telegram messaging adapter — implements MessagingPort.

Wraps a telegram.Bot instance to satisfy the MessagingPort protocol.

The Bot API can't enumerate every member of a group, so list_members()
returns the chat administrators. Bots are reported by their numeric id, which
the shuffle drops; people by their username (or "user<id>" when they have none).
"""

from __future__ import annotations

import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, User

logger = logging.getLogger(__name__)


def member_id(user: User) -> str:
    """Stable platform-independent id for a Telegram user."""
    if user.is_bot:
        return str(user.id)
    return user.username or f"user{user.id}"


class TelegramMessenger:
    """Telegram implementation of MessagingPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_text(self, chat_id: str, text: str) -> None:
        await self._bot.send_message(chat_id=int(chat_id), text=text)

    async def send_text_with_link(
        self, chat_id: str, text: str, label: str, url: str
    ) -> None:
        keyboard = InlineKeyboardMarkup([[InlineKeyboardButton(label, url=url)]])
        await self._bot.send_message(chat_id=int(chat_id), text=text, reply_markup=keyboard)

    async def list_members(self, chat_id: str) -> list[str]:
        admins = await self._bot.get_chat_administrators(chat_id=int(chat_id))
        members = [member_id(m.user) for m in admins]
        logger.debug("Chat %s has %d visible members", chat_id, len(members))
        return members
