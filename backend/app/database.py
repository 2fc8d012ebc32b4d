import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import monitoring

from app.config import Settings
from app.storage.flag import UsabilityFlag
from app.utils.logger import get_logger, mask_uri

logger = get_logger("database")


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def database_name(uri: str, default: str = "survey_db") -> str:
    """Extract database name from URI, default if not specified."""
    rest = uri.split("//", 1)[-1]
    if "/" not in rest:
        return default
    name = rest.split("/", 1)[1].split("?")[0]
    return name or default


async def _init_documents(client: Any, db_name: str) -> None:
    from app.models import DOCUMENT_MODELS

    await init_beanie(database=client[db_name], document_models=DOCUMENT_MODELS)


class _HeartbeatListener(monitoring.ServerHeartbeatListener):
    """Bridges pymongo monitor-thread heartbeats onto the event loop."""

    def __init__(self, supervisor: "ConnectionSupervisor") -> None:
        self.supervisor = supervisor

    def started(self, event: monitoring.ServerHeartbeatStartedEvent) -> None:
        pass

    def succeeded(self, event: monitoring.ServerHeartbeatSucceededEvent) -> None:
        self.supervisor.notify_threadsafe(self.supervisor.on_reconnected)

    def failed(self, event: monitoring.ServerHeartbeatFailedEvent) -> None:
        self.supervisor.notify_threadsafe(self.supervisor.on_disconnected, str(event.reply))


class ConnectionSupervisor:
    """MongoDB connection lifecycle: Disconnected -> Connecting -> Connected.

    - initial connect: first attempt + MONGO_CONNECT_RETRIES retries with a
      fixed delay, then stays disconnected until a later disconnect event;
    - driver disconnect (or a failed adapter write) after a successful
      connection schedules exactly one reconnect after the same delay;
    - every transition sets the usability flag before returning control.
    """

    def __init__(
        self,
        settings: Settings,
        flag: UsabilityFlag,
        *,
        client_factory: Callable[..., Any] = AsyncIOMotorClient,
        initializer: Callable[[Any, str], Awaitable[None]] = _init_documents,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.flag = flag
        self.client_factory = client_factory
        self.initializer = initializer
        self.sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self.client: Any = None
        self.last_error: Optional[str] = None
        self.ever_connected = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._connecting = False

        flag.on_lost(self.on_backend_error)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.MONGODB_URI)

    @property
    def db_name(self) -> str:
        return database_name(self.settings.MONGODB_URI)

    def _set_state(self, state: ConnectionState, reason: str | None = None) -> None:
        self.state = state
        self.flag.set(state == ConnectionState.CONNECTED, reason)

    # ------------------------ connect ------------------------

    async def _open(self) -> None:
        if self.client is None:
            client = self.client_factory(
                self.settings.MONGODB_URI,
                serverSelectionTimeoutMS=self.settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
                maxPoolSize=10,
                connectTimeoutMS=30000,
                socketTimeoutMS=45000,
                event_listeners=[_HeartbeatListener(self)],
            )
            try:
                await client.admin.command("ping")
                await self.initializer(client, self.db_name)
            except Exception:
                client.close()
                raise
            self.client = client
        else:
            await self.client.admin.command("ping")

    async def connect(self) -> bool:
        """Bounded-retry connect. Returns True once the database is live."""
        if not self.enabled:
            logger.info("ℹ️ MONGODB_URI فارغ، سيتم استخدام تخزين JSON فقط")
            return False
        if self._connecting:
            return False
        self._connecting = True
        self._loop = asyncio.get_running_loop()
        try:
            return await self._connect_with_retries()
        finally:
            self._connecting = False

    async def _connect_with_retries(self) -> bool:
        max_retries = self.settings.MONGO_CONNECT_RETRIES
        delay = self.settings.MONGO_RETRY_DELAY_SECONDS

        for attempt in range(max_retries + 1):
            self._set_state(ConnectionState.CONNECTING)
            logger.info(f"🔄 محاولة الاتصال بـ MongoDB... (المحاولة {attempt + 1}/{max_retries + 1})")
            try:
                await self._open()
            except Exception as exc:
                self.last_error = str(exc)
                self._set_state(ConnectionState.DISCONNECTED, self.last_error)
                logger.warning(f"❌ فشل الاتصال بـ MongoDB (المحاولة {attempt + 1}): {exc}")
                if attempt < max_retries:
                    logger.info(f"⏳ إعادة المحاولة خلال {delay:g} ثواني...")
                    await self.sleep(delay)
                continue
            self.ever_connected = True
            self.last_error = None
            self._set_state(ConnectionState.CONNECTED)
            logger.info(f"✅ تم الاتصال بقاعدة البيانات MongoDB بنجاح: {mask_uri(self.settings.MONGODB_URI)}")
            return True

        logger.warning("⚠️ فشل الاتصال بـ MongoDB نهائياً، سيتم استخدام تخزين JSON مؤقت")
        return False

    def start(self) -> None:
        """Kick off the initial connect in the background."""
        if self.enabled and self._connect_task is None:
            self._connect_task = asyncio.create_task(self.connect())

    # ------------------------ events ------------------------

    def notify_threadsafe(self, callback: Callable[..., None], *args: Any) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, *args)

    def on_disconnected(self, reason: str = "disconnected") -> None:
        if self.state != ConnectionState.CONNECTED:
            return
        self.last_error = reason
        self._set_state(ConnectionState.DISCONNECTED, reason)
        logger.warning("⚠️ MongoDB: تم قطع الاتصال")
        self.schedule_reconnect()

    def on_reconnected(self) -> None:
        if self.state != ConnectionState.DISCONNECTED or self.client is None:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._set_state(ConnectionState.CONNECTED)
        logger.info("✅ MongoDB: تم إعادة الاتصال بنجاح")

    def on_backend_error(self, reason: str) -> None:
        """Called through the flag when an adapter write failed."""
        if not self.ever_connected:
            return
        self.last_error = reason
        self.state = ConnectionState.DISCONNECTED
        self.schedule_reconnect()

    def schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        logger.info("🔄 محاولة إعادة الاتصال بـ MongoDB...")
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_later())

    async def _reconnect_later(self) -> None:
        await self.sleep(self.settings.MONGO_RETRY_DELAY_SECONDS)
        await self.connect()

    # ------------------------ shutdown / status ------------------------

    async def close(self) -> None:
        for task in (self._connect_task, self._reconnect_task):
            if task is not None and not task.done():
                task.cancel()
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("🔒 تم إغلاق اتصال MongoDB بأمان")
        self._set_state(ConnectionState.DISCONNECTED)

    async def ping(self) -> bool:
        """Check MongoDB connectivity."""
        if not self.client:
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except Exception:
            return False

    def status(self) -> dict:
        return {
            "enabled": self.enabled,
            "connected": self.flag.usable,
            "state": self.state.value,
            "host": mask_uri(self.settings.MONGODB_URI) if self.enabled else None,
            "name": self.db_name if self.enabled else None,
            "lastError": self.last_error,
        }
