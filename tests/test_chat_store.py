"""
tests/test_chat_store.py — Ephemeral chat lifecycle
====================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.errors import MessageForbidden, MessageNotFound, NicknameTaken
from app.schemas import ChatJoinIn, ChatMessage
from app.services.chat_service import ChatStore, empty_chat
from app.storage.json_file import JsonFile

from helpers import run

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def store(settings, tmp_path, clock) -> ChatStore:
    return ChatStore(JsonFile(tmp_path / "chat.json", default=empty_chat), settings, clock=clock)


def _message(msg_id: str, nickname: str = "Ali", text: str = "مرحبا", **extra) -> ChatMessage:
    return ChatMessage.model_validate(
        {
            "id": msg_id,
            "type": "text",
            "user": {"nickname": nickname, "gender": "male", "avatar": nickname[:1]},
            "text": text,
            "timestamp": T0.isoformat(),
            **extra,
        }
    )


# ===========================================================================
# Presence
# ===========================================================================
class TestPresence:
    def test_nickname_collision_is_case_insensitive(self, store):
        run(store.join(ChatJoinIn(nickname="Ali", gender="male")))
        assert store.check_nickname("  ALI ") is False
        with pytest.raises(NicknameTaken):
            run(store.join(ChatJoinIn(nickname="ali", gender="male")))
        assert store.online == 1

    def test_join_defaults_avatar_and_mirrors_user(self, store):
        user = run(store.join(ChatJoinIn(nickname=" sara ", gender="female")))
        assert user.nickname == "sara"
        assert user.avatar == "S"
        users = run(store.file.read())["users"]
        assert [u["nickname"] for u in users] == ["sara"]

    def test_rejoin_replaces_stale_mirror_entry(self, store):
        run(store.join(ChatJoinIn(nickname="Omar", gender="male")))
        run(store.leave("omar"))
        run(store.join(ChatJoinIn(nickname="OMAR", gender="male")))
        users = run(store.file.read())["users"]
        assert [u["nickname"] for u in users] == ["OMAR"]

    def test_idle_sweep_evicts_silent_users(self, store, clock):
        run(store.join(ChatJoinIn(nickname="quiet", gender="male")))
        run(store.join(ChatJoinIn(nickname="active", gender="female")))
        clock.now = T0 + timedelta(minutes=4)
        run(store.ping("active"))
        clock.now = T0 + timedelta(minutes=6)

        assert run(store.sweep_idle()) == 1
        assert store.check_nickname("quiet") is True
        assert store.check_nickname("active") is False

    def test_posting_refreshes_last_seen(self, store, clock):
        run(store.join(ChatJoinIn(nickname="Ali", gender="male")))
        clock.now = T0 + timedelta(minutes=4)
        run(store.post_message(_message("m1")))
        clock.now = T0 + timedelta(minutes=8)
        assert run(store.sweep_idle()) == 0


# ===========================================================================
# Message log
# ===========================================================================
class TestMessages:
    def test_user_messages_expire_after_ttl(self, store, clock):
        run(store.post_message(_message("m1")))
        expires_at = T0 + timedelta(days=3)

        clock.now = expires_at
        assert [m["id"] for m in run(store.list_recent())] == ["m1"]

        clock.now = expires_at + timedelta(seconds=1)
        assert run(store.list_recent()) == []
        # filtered list was written back
        assert run(store.file.read())["messages"] == []

    def test_system_messages_never_expire(self, store, clock):
        system = ChatMessage.model_validate(
            {"id": "s1", "type": "system", "text": "انضم علي", "timestamp": T0.isoformat()}
        )
        run(store.post_message(system))
        clock.now = T0 + timedelta(days=30)
        assert [m["id"] for m in run(store.list_recent())] == ["s1"]

    def test_system_message_ignores_client_expiry(self, store, clock):
        system = ChatMessage.model_validate(
            {
                "id": "s1",
                "type": "system",
                "text": "غادر علي",
                "timestamp": T0.isoformat(),
                "expiresAt": (T0 + timedelta(minutes=1)).isoformat(),
            }
        )
        run(store.post_message(system))
        assert "expiresAt" not in run(store.file.read())["messages"][0]

        clock.now = T0 + timedelta(hours=1)
        assert [m["id"] for m in run(store.list_recent())] == ["s1"]
        assert run(store.purge_expired()) == 0

    def test_stored_system_message_with_expiry_survives(self, store, clock):
        # سجلات قديمة قد تحمل expiresAt على رسالة نظام
        data = run(store.file.read())
        data["messages"].append(
            {"id": "s0", "type": "system", "text": "x", "timestamp": T0.isoformat(),
             "expiresAt": T0.isoformat()}
        )
        run(store.file.write(data))
        clock.now = T0 + timedelta(days=1)
        assert [m["id"] for m in run(store.list_recent())] == ["s0"]

    def test_client_supplied_expiry_is_overwritten(self, store):
        run(store.post_message(_message("m1", expiresAt="2000-01-01T00:00:00Z")))
        stored = run(store.file.read())["messages"][0]
        assert stored["expiresAt"].startswith("2025-03-04")

    def test_legacy_user_type_is_treated_as_text(self, store, clock):
        run(store.post_message(_message("m1", type="user")))
        clock.now = T0 + timedelta(days=4)
        assert run(store.list_recent()) == []

    def test_log_is_capped(self, store):
        store.log_cap = 5
        for i in range(8):
            run(store.post_message(_message(f"m{i}")))
        ids = [m["id"] for m in run(store.file.read())["messages"]]
        assert ids == ["m3", "m4", "m5", "m6", "m7"]

    def test_recent_returns_last_n(self, store):
        store.recent_limit = 3
        for i in range(6):
            run(store.post_message(_message(f"m{i}")))
        assert [m["id"] for m in run(store.list_recent())] == ["m3", "m4", "m5"]

    def test_purge_expired(self, store, clock):
        run(store.post_message(_message("old")))
        clock.now = T0 + timedelta(days=2)
        run(store.post_message(_message("new")))
        clock.now = T0 + timedelta(days=3, hours=1)
        assert run(store.purge_expired()) == 1
        assert [m["id"] for m in run(store.file.read())["messages"]] == ["new"]

    def test_user_message_requires_user(self):
        with pytest.raises(ValueError):
            ChatMessage.model_validate({"id": "x", "type": "text", "text": "hi", "timestamp": T0.isoformat()})


# ===========================================================================
# Deletion
# ===========================================================================
class TestDeleteMessage:
    def test_author_can_delete(self, store):
        run(store.post_message(_message("m1", nickname="Ali")))
        run(store.delete_message("m1", "Ali"))
        assert run(store.list_recent()) == []

    def test_other_user_is_forbidden(self, store):
        run(store.post_message(_message("m1", nickname="Ali")))
        with pytest.raises(MessageForbidden):
            run(store.delete_message("m1", "ali"))

    def test_repeat_delete_is_not_found(self, store):
        run(store.post_message(_message("m1", nickname="Ali")))
        run(store.delete_message("m1", "Ali"))
        with pytest.raises(MessageNotFound):
            run(store.delete_message("m1", "Ali"))

    def test_system_message_cannot_be_deleted(self, store):
        system = ChatMessage.model_validate(
            {"id": "s1", "type": "system", "text": "x", "timestamp": T0.isoformat()}
        )
        run(store.post_message(system))
        with pytest.raises(MessageForbidden):
            run(store.delete_message("s1", "Ali"))
