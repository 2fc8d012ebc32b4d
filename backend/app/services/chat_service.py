"""Ephemeral chat: in-memory presence table plus a persisted, expiring message log."""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pydantic import TypeAdapter

from app.config import Settings
from app.constants import ChatMessageType
from app.errors import MessageForbidden, MessageNotFound, NicknameTaken
from app.schemas import ChatJoinIn, ChatMessage, ChatUser
from app.storage.json_file import JsonFile
from app.utils.logger import get_logger

logger = get_logger("chat_service")

_datetime = TypeAdapter(datetime)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_nickname(nickname: str) -> str:
    return (nickname or "").strip().lower()


def empty_chat() -> dict:
    return {"messages": [], "users": [], "created": utcnow().isoformat()}


def _as_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    parsed = _datetime.validate_python(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def is_expired(message: dict, now: datetime) -> bool:
    """رسائل النظام لا تنتهي؛ رسائل المستخدم تبقى حتى expiresAt (شاملة)."""
    if message.get("type") == ChatMessageType.SYSTEM.value:
        return False
    expires_at = _as_datetime(message.get("expiresAt"))
    return expires_at is not None and now > expires_at


class ChatStore:
    def __init__(
        self,
        file: JsonFile,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.file = file
        self.message_ttl = timedelta(days=settings.CHAT_MESSAGE_TTL_DAYS)
        self.idle_timeout = timedelta(minutes=settings.CHAT_IDLE_MINUTES)
        self.log_cap = settings.CHAT_LOG_CAP
        self.recent_limit = settings.CHAT_RECENT_LIMIT
        self.clock = clock
        self.presence: Dict[str, ChatUser] = {}
        self._lock = asyncio.Lock()

    @property
    def online(self) -> int:
        return len(self.presence)

    async def _load(self) -> dict:
        data = await self.file.read()
        if not isinstance(data, dict):
            data = empty_chat()
        data.setdefault("messages", [])
        data.setdefault("users", [])
        return data

    async def ensure_file(self) -> None:
        if not self.file.exists():
            await self.file.write(empty_chat())

    def _touch(self, nickname: str) -> None:
        user = self.presence.get(normalize_nickname(nickname))
        if user is not None:
            user.lastSeen = self.clock()

    # ------------------------ presence ------------------------

    def check_nickname(self, nickname: str) -> bool:
        return normalize_nickname(nickname) not in self.presence

    async def join(self, payload: ChatJoinIn) -> ChatUser:
        key = normalize_nickname(payload.nickname)
        display = payload.nickname.strip()
        async with self._lock:
            if key in self.presence:
                raise NicknameTaken(display)
            now = self.clock()
            user = ChatUser(
                nickname=display,
                gender=payload.gender,
                joinTime=payload.joinTime or now,
                avatar=payload.avatar or display[:1].upper(),
                lastSeen=now,
            )
            self.presence[key] = user

            # نسخة للاطلاع فقط؛ الحضور الفعلي في الذاكرة
            data = await self._load()
            data["users"] = [
                u for u in data["users"] if normalize_nickname(u.get("nickname", "")) != key
            ]
            data["users"].append(user.model_dump(mode="json"))
            await self.file.write(data)
        logger.info(f"👋 {display} joined the chat ({self.online} online)")
        return user

    async def leave(self, nickname: str) -> int:
        async with self._lock:
            self.presence.pop(normalize_nickname(nickname), None)
        return self.online

    async def ping(self, nickname: Optional[str]) -> int:
        if nickname:
            self._touch(nickname)
        return self.online

    async def sweep_idle(self) -> int:
        """Evict presence records idle for longer than the idle timeout."""
        cutoff = self.clock() - self.idle_timeout
        async with self._lock:
            stale = [key for key, user in self.presence.items() if user.lastSeen < cutoff]
            for key in stale:
                del self.presence[key]
        if stale:
            logger.info(f"🧹 Removed {len(stale)} inactive chat users")
        return len(stale)

    # ------------------------ messages ------------------------

    async def post_message(self, message: ChatMessage) -> str:
        now = self.clock()
        if message.type == ChatMessageType.TEXT.value:
            message = message.model_copy(update={"expiresAt": now + self.message_ttl})
        else:
            message = message.model_copy(update={"expiresAt": None})
        if message.user is not None:
            self._touch(message.user.nickname)

        data = await self._load()
        data["messages"].append(message.model_dump(mode="json", exclude_none=True))
        data["messages"] = data["messages"][-self.log_cap:]
        await self.file.write(data)
        return message.id

    async def list_recent(self) -> List[dict]:
        """Surviving messages (last N); rewrites the file when anything expired."""
        data = await self._load()
        now = self.clock()
        messages = [m for m in data["messages"] if not is_expired(m, now)]
        if len(messages) != len(data["messages"]):
            data["messages"] = messages
            await self.file.write(data)
        return messages[-self.recent_limit:]

    async def delete_message(self, message_id: str, nickname: str) -> None:
        data = await self._load()
        for index, message in enumerate(data["messages"]):
            if message.get("id") == message_id:
                break
        else:
            raise MessageNotFound(message_id)

        author = (message.get("user") or {}).get("nickname")
        if author is None or author != nickname:
            raise MessageForbidden(message_id)

        del data["messages"][index]
        await self.file.write(data)

    async def purge_expired(self) -> int:
        data = await self._load()
        now = self.clock()
        before = len(data["messages"])
        data["messages"] = [m for m in data["messages"] if not is_expired(m, now)]
        removed = before - len(data["messages"])
        if removed:
            await self.file.write(data)
            logger.info(f"🧹 Cleaned up {removed} expired messages")
        return removed
