"""Tests for src.data.db — ChatDB (SQLite storage)."""

import sqlite3
from datetime import datetime, timezone

import pytest

from src.data.db import ChatDB
from src.data.models import Chat, ChatDataError
from src.ports.chat_store_port import ChatNotFoundError


class TestGetOrCreate:
    def test_unknown_chat_is_inactive_and_unsaved(self, chat_db):
        chat = chat_db.get_or_create("new-chat")
        assert chat.id == "new-chat"
        assert chat.active is False
        assert chat.exclude_users == set()
        assert chat.skip_users == set()
        assert chat.week_days == {}
        assert chat.saved is False

    def test_unknown_chat_is_not_persisted(self, chat_db):
        chat_db.get_or_create("new-chat")
        assert chat_db.get("new-chat") is None
        assert chat_db.count() == 0

    def test_get_not_found(self, chat_db):
        assert chat_db.get("missing") is None


class TestUpsert:
    def test_insert_and_load(self, chat_db):
        chat = Chat(
            id="c1",
            active=True,
            exclude_users={"user1", "user2"},
            skip_users={"user3"},
            week_days={2: {"user1"}},
            url="https://github.com/",
            url_text="GitHub",
        )
        chat_db.upsert(chat)
        assert chat.saved is True

        loaded = chat_db.get("c1")
        assert loaded is not None
        assert loaded.saved is True
        assert loaded.active is True
        assert loaded.exclude_users == {"user1", "user2"}
        assert loaded.skip_users == {"user3"}
        assert loaded.week_days == {2: {"user1"}}
        assert loaded.url == "https://github.com/"
        assert loaded.url_text == "GitHub"
        assert loaded.created == chat.created

    def test_conflict_only_changes_active(self, chat_db):
        chat_db.upsert(Chat(id="c1", active=True, url="https://a.example/"))

        chat_db.upsert(Chat(id="c1", active=False))

        loaded = chat_db.get("c1")
        assert loaded.active is False
        assert loaded.url == "https://a.example/"
        assert chat_db.count() == 1


    def test_conflict_refreshes_updated(self, chat_db):
        old = datetime(2020, 1, 1, tzinfo=timezone.utc)
        chat_db.upsert(Chat(id="c1", active=False, created=old, updated=old))

        chat = Chat(id="c1", active=True, created=old, updated=old)
        chat_db.upsert(chat)

        assert chat.updated > old
        loaded = chat_db.get("c1")
        assert loaded.updated == chat.updated
        assert loaded.created == old


class TestUpdate:
    def test_update_missing_row_raises(self, chat_db):
        with pytest.raises(ChatNotFoundError):
            chat_db.update(Chat(id="ghost", active=True))
        assert chat_db.count() == 0

    def test_update_saves_all_fields(self, chat_db):
        chat = Chat(id="c1", active=True, exclude_users={"user1"})
        chat_db.upsert(chat)

        chat.active = False
        chat.add_exclude({"user5"})
        chat.add_skip("user4")
        chat.week_days[3] = {"user2"}
        chat.url = "https://gitlab.com/"
        chat.url_text = "GitLab"
        chat.gpt = True
        chat_db.update(chat)

        loaded = chat_db.get("c1")
        assert loaded.active is False
        assert loaded.exclude_users == {"user1", "user5"}
        assert loaded.skip_users == {"user4"}
        assert loaded.week_days == {3: {"user2"}}
        assert loaded.url == "https://gitlab.com/"
        assert loaded.url_text == "GitLab"
        assert loaded.gpt is True

    def test_update_refreshes_updated(self, chat_db):
        old = datetime(2020, 1, 1, tzinfo=timezone.utc)
        chat = Chat(id="c1", created=old, updated=old)
        chat_db.upsert(chat)
        chat_db.update(chat)
        assert chat.updated > old
        assert chat_db.get("c1").created == old


class TestSave:
    def test_save_inserts_new_chat(self, chat_db):
        chat = chat_db.get_or_create("c1")
        chat.add_exclude({"user1"})
        chat_db.save(chat)
        assert chat_db.get("c1").exclude_users == {"user1"}

    def test_save_updates_existing_chat(self, chat_db):
        chat_db.upsert(Chat(id="c1", active=True))
        chat = chat_db.get_or_create("c1")
        chat.url = "https://meet.example/room"
        chat_db.save(chat)
        assert chat_db.get("c1").url == "https://meet.example/room"


class TestCleanSkip:
    def test_clears_skip_sets_of_all_chats(self, chat_db):
        chat_db.upsert(Chat(id="c1", skip_users={"u1", "u2"}, exclude_users={"u3"}))
        chat_db.upsert(Chat(id="c2", skip_users={"u4"}))
        chat_db.upsert(Chat(id="c3"))

        assert chat_db.clean_skip() == 2

        assert chat_db.get("c1").skip_users == set()
        assert chat_db.get("c1").exclude_users == {"u3"}
        assert chat_db.get("c2").skip_users == set()

    def test_nothing_to_clean(self, chat_db):
        chat_db.upsert(Chat(id="c1"))
        assert chat_db.clean_skip() == 0


class TestCorruptData:
    def test_corrupt_exclude_column_raises(self, chat_db, tmp_db_path):
        chat_db.upsert(Chat(id="c1"))
        conn = sqlite3.connect(tmp_db_path)
        with conn:
            conn.execute("UPDATE chat SET exclude = 'not json' WHERE id = 'c1'")
        conn.close()

        with pytest.raises(ChatDataError):
            chat_db.get("c1")


def test_schema_is_reusable(tmp_db_path):
    ChatDB(db_path=tmp_db_path, timeout=5).upsert(Chat(id="c1", active=True))
    reopened = ChatDB(db_path=tmp_db_path, timeout=5)
    assert reopened.get("c1").active is True
