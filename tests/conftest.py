"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp DB and a recording messenger.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("WORKERS", "2")
os.environ.setdefault("GPT_API_KEY", "")
os.environ.setdefault("YANDEX_GPT_API_KEY", "")
os.environ.setdefault("PROJECT_URL", "")

import random

import pytest


class FakeMessenger:
    """In-memory MessagingPort that records every outbound message."""

    def __init__(self, members=None):
        self.members = members or {}
        self.sent = []
        self.links = []

    async def send_text(self, chat_id, text):
        self.sent.append((chat_id, text))

    async def send_text_with_link(self, chat_id, text, label, url):
        self.sent.append((chat_id, text))
        self.links.append((chat_id, text, label, url))

    async def list_members(self, chat_id):
        return list(self.members.get(chat_id, []))

    def texts(self):
        return [text for _, text in self.sent]


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_chats.db")


@pytest.fixture
def chat_db(tmp_db_path):
    """Return a ChatDB instance backed by a temp file."""
    from src.data.db import ChatDB
    return ChatDB(db_path=tmp_db_path, timeout=5)


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def dispatcher(chat_db, messenger):
    """A Dispatcher over the temp DB with a seeded shuffle."""
    from src.config import settings
    from src.core.dispatcher import Dispatcher, build_registry

    return Dispatcher(
        build_registry(), chat_db, messenger, settings, rnd=random.Random(1),
    )
