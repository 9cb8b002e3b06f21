"""
ShuffleBot — Chat Database.

Chat state persists in SQLite across restarts. Every mutation is a single-row
statement inside its own transaction; the daily skip reset is one bulk UPDATE.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from src.data.models import Chat
from src.ports.chat_store_port import ChatNotFoundError, StoreError

logger = logging.getLogger(__name__)


class ChatDB:
    """SQLite-backed storage for chats."""

    def __init__(self, db_path: str | None = None, timeout: float | None = None) -> None:
        if db_path is None or timeout is None:
            from src.config import settings
            db_path = db_path or settings.DATABASE_PATH
            timeout = timeout if timeout is not None else settings.TIMEOUT

        self._db_path = db_path
        self._timeout = timeout
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on error, always close."""
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"failed transaction begin: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"rollback transaction: {exc}") from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create the chat table if it doesn't exist, and migrate schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chat (
                    id        TEXT    PRIMARY KEY,
                    active    INTEGER NOT NULL DEFAULT 0,
                    exclude   TEXT    NOT NULL DEFAULT '',
                    skip      TEXT    NOT NULL DEFAULT '',
                    days      TEXT    NOT NULL DEFAULT '',
                    url       TEXT    NOT NULL DEFAULT '',
                    url_text  TEXT    NOT NULL DEFAULT 'call',
                    created   TEXT    NOT NULL,
                    updated   TEXT    NOT NULL
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(chat)").fetchall()
            }
            if "gpt" not in existing_cols:
                conn.execute("ALTER TABLE chat ADD COLUMN gpt INTEGER NOT NULL DEFAULT 0")
        logger.debug("Chat table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_chat(row: sqlite3.Row) -> Chat:
        chat = Chat(
            id=row["id"],
            active=bool(row["active"]),
            url=row["url"],
            url_text=row["url_text"],
            gpt=bool(row["gpt"]),
            created=datetime.fromisoformat(row["created"]),
            updated=datetime.fromisoformat(row["updated"]),
            saved=True,
        )
        chat.load_columns(row["exclude"], row["skip"], row["days"])
        return chat

    def get(self, chat_id: str) -> Chat | None:
        """Fetch a single chat by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM chat WHERE id = ? LIMIT 1", (chat_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_chat(row)

    def get_or_create(self, chat_id: str) -> Chat:
        """Load a chat or return a new inactive one without saving it."""
        chat = self.get(chat_id)
        if chat is None:
            return Chat(id=chat_id)
        return chat

    def update(self, chat: Chat) -> None:
        """Save all chat fields. The row must already exist."""
        columns = chat.columns()
        now = datetime.now(timezone.utc)
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE chat
                SET active = ?, exclude = ?, skip = ?, days = ?,
                    url = ?, url_text = ?, gpt = ?, created = ?, updated = ?
                WHERE id = ?
                """,
                (
                    int(chat.active), columns["exclude"], columns["skip"], columns["days"],
                    chat.url, chat.url_text, int(chat.gpt),
                    chat.created.isoformat(), now.isoformat(), chat.id,
                ),
            )
            if cursor.rowcount == 0:
                raise ChatNotFoundError(f"chat {chat.id!r} is not saved")
        chat.updated = now
        chat.saved = True
        logger.debug("Chat %s updated", chat.id)

    def upsert(self, chat: Chat) -> None:
        """Insert a chat, or only refresh its active flag if it already exists."""
        columns = chat.columns()
        now = datetime.now(timezone.utc)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO chat
                    (id, active, exclude, skip, days, url, url_text, gpt, created, updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    active = excluded.active, updated = excluded.updated
                """,
                (
                    chat.id, int(chat.active), columns["exclude"], columns["skip"],
                    columns["days"], chat.url, chat.url_text, int(chat.gpt),
                    chat.created.isoformat(), now.isoformat(),
                ),
            )
        chat.updated = now
        chat.saved = True
        logger.info("Chat %s upserted (active=%s)", chat.id, chat.active)

    def save(self, chat: Chat) -> None:
        """Update a persisted chat, insert a new one."""
        if chat.saved:
            self.update(chat)
        else:
            self.upsert(chat)

    def clean_skip(self) -> int:
        """Reset the skip-today set of every chat. Returns affected rows."""
        with self._transaction() as conn:
            cursor = conn.execute("UPDATE chat SET skip = '' WHERE skip != ''")
        logger.info("Skip lists cleaned for %d chats", cursor.rowcount)
        return cursor.rowcount

    def count(self) -> int:
        with self._transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM chat").fetchone()[0]
