"""
ShuffleBot — Telegram Bot.

Telegram is the event source: every update is converted into an Event and
handed to the worker pool, which runs the dispatcher. The pool and the daily
skip reset start with the application and are drained when it stops
(SIGINT/SIGTERM are handled by run_polling).
"""

from __future__ import annotations

import logging
import re

from telegram import Update
from telegram.ext import Application, ApplicationBuilder, ContextTypes, TypeHandler

from src.adapters.telegram_messenger import TelegramMessenger, member_id
from src.config import BOT_NAME, BOT_VERSION, settings
from src.core.daily_reset import DailyResetDaemon
from src.core.dispatcher import Dispatcher, build_registry
from src.core.events import Event, EventKind
from src.core.llm import build_providers
from src.core.worker_pool import PoolClosedError, WorkerPool
from src.ports.chat_store_port import ChatStore

logger = logging.getLogger(__name__)

# "/go@ShuffleBot rest" → "/go rest"
_COMMAND_MENTION_RE = re.compile(r"^(/\w+)@\w+")


# ---------------------------------------------------------------------------
# Update → Event
# ---------------------------------------------------------------------------


def event_from_update(update: Update) -> Event | None:
    """Convert a Telegram update, or return None when it has no chat."""
    if update.message is not None:
        kind, message = EventKind.NEW_MESSAGE, update.message
    elif update.edited_message is not None:
        kind, message = EventKind.EDITED_MESSAGE, update.edited_message
    else:
        chat = update.effective_chat
        if chat is None:
            return None
        return Event(
            kind=EventKind.OTHER,
            msg_id=str(update.update_id),
            chat_id=str(chat.id),
            sender_id="",
            text="",
        )

    user = message.from_user
    text = _COMMAND_MENTION_RE.sub(r"\1", message.text or "")
    return Event(
        kind=kind,
        msg_id=str(message.message_id),
        chat_id=str(message.chat.id),
        sender_id=member_id(user) if user is not None else "",
        text=text,
        is_private=user is not None and message.chat.id == user.id,
    )


async def handle_update(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Queue every update for the workers; blocks while all of them are busy."""
    event = event_from_update(update)
    if event is None:
        return

    logger.info("[%s] got event type=%s for chat=%s", event.msg_id, event.kind.value, event.chat_id)
    pool: WorkerPool = context.bot_data["pool"]
    try:
        await pool.submit(event)
    except PoolClosedError:
        logger.warning("[%s] dropped, worker pool is closed", event.msg_id)


# ---------------------------------------------------------------------------
# Lifecycle hooks
# ---------------------------------------------------------------------------


async def _post_init(app: Application) -> None:
    app.bot_data["pool"].start()
    app.bot_data["daily_reset"].start()


async def _post_stop(app: Application) -> None:
    pool: WorkerPool = app.bot_data["pool"]
    daily_reset: DailyResetDaemon = app.bot_data["daily_reset"]

    await pool.close()
    await pool.join()
    daily_reset.stop()
    await daily_reset.wait_stopped()
    logger.info("Event processing stopped")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(store: ChatStore | None = None) -> Application:
    """Build and configure the Telegram Application.

    Args:
        store: Chat store implementation. Defaults to ChatDB on DATABASE_PATH.
    """
    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        .post_stop(_post_stop)
        .build()
    )

    if store is None:
        from src.data.db import ChatDB
        store = ChatDB()

    messenger = TelegramMessenger(app.bot)
    dispatcher = Dispatcher(
        build_registry(),
        store,
        messenger,
        settings,
        providers=build_providers(settings),
    )

    app.bot_data["dispatcher"] = dispatcher
    app.bot_data["pool"] = WorkerPool(settings.WORKERS, dispatcher)
    app.bot_data["daily_reset"] = DailyResetDaemon(store, settings.tz)

    app.add_handler(TypeHandler(Update, handle_update))

    logger.info(
        "Telegram bot application built: %d workers, exclusive commands %s",
        settings.WORKERS, ", ".join(sorted(dispatcher.locks.commands)) or "-",
    )
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting %s %s...", BOT_NAME, BOT_VERSION)
    app = build_app()
    try:
        app.run_polling(allowed_updates=Update.ALL_TYPES)
    except Exception:
        logger.exception("Abnormal termination of %s", BOT_NAME)
        raise
    logger.info("Stopped %s", BOT_NAME)


if __name__ == "__main__":
    main()
