"""Fallback store: one logical collection over MongoDB + a JSON file.

Policy:
- flag usable -> try MongoDB first;
- a failed write flips the flag off (the supervisor then schedules a
  reconnect) and the same operation is replayed on the JSON file;
- a failed read falls back to the file without touching the flag;
- flag not usable -> JSON file directly;
- only a failure of the backend of last resort raises ``BothBackendsFailed``.
"""
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from app.constants import StorageKind
from app.errors import BothBackendsFailed
from app.storage.base import CollectionBackend, RecordT, Served
from app.storage.flag import UsabilityFlag
from app.utils.logger import get_logger

logger = get_logger("storage.adapter")

V = TypeVar("V")
MutationHook = Callable[[CollectionBackend], Awaitable[None]]


class FallbackCollection(Generic[RecordT]):
    def __init__(
        self,
        name: str,
        *,
        primary: Optional[CollectionBackend[RecordT]],
        fallback: CollectionBackend[RecordT],
        flag: UsabilityFlag,
    ) -> None:
        self.name = name
        self.primary = primary
        self.fallback = fallback
        self.flag = flag
        self._mutation_hooks: list[MutationHook] = []

    def on_mutation(self, hook: MutationHook) -> None:
        """Register a coroutine run after every successful write, with the backend that served it."""
        self._mutation_hooks.append(hook)

    @property
    def active_storage(self) -> StorageKind:
        if self.primary is not None and self.flag.usable:
            return StorageKind.MONGODB
        return StorageKind.JSON

    def backend_for(self, kind: StorageKind) -> CollectionBackend[RecordT]:
        if kind == StorageKind.MONGODB and self.primary is not None:
            return self.primary
        return self.fallback

    async def _run(
        self,
        operation: str,
        call: Callable[[CollectionBackend[RecordT]], Awaitable[V]],
        *,
        write: bool,
    ) -> Served[V]:
        primary_error: Exception | None = None
        if self.primary is not None and self.flag.usable:
            try:
                return Served(await call(self.primary), StorageKind.MONGODB)
            except Exception as exc:
                primary_error = exc
                if write:
                    logger.warning(f"❌ فشل {operation} على {self.name} في MongoDB، التبديل إلى JSON: {exc}")
                    self.flag.mark_lost(f"{self.name}.{operation}: {exc}")
                else:
                    logger.warning(f"⚠️ فشل {operation} على {self.name} في MongoDB، القراءة من JSON: {exc}")
        try:
            return Served(await call(self.fallback), StorageKind.JSON)
        except Exception as exc:
            logger.error(f"❌ فشل {operation} على {self.name} في كلا التخزينين: {exc}")
            raise BothBackendsFailed(f"{self.name}.{operation}", primary_error, exc) from exc

    async def _after_write(self, served: Served) -> None:
        backend = self.backend_for(served.storage)
        for hook in self._mutation_hooks:
            try:
                await hook(backend)
            except Exception as exc:
                # الطلب نفسه نجح؛ لا نفشله بسبب خطاف لاحق
                logger.warning(f"⚠️ mutation hook failed for {self.name}: {exc}")

    async def create(self, record: RecordT) -> Served[RecordT]:
        served = await self._run("create", lambda b: b.create(record), write=True)
        await self._after_write(served)
        return served

    async def read_all(self) -> Served[list[RecordT]]:
        return await self._run("read_all", lambda b: b.read_all(), write=False)

    async def read_by_id(self, record_id: str) -> Served[Optional[RecordT]]:
        return await self._run("read_by_id", lambda b: b.read_by_id(record_id), write=False)

    async def update(self, record_id: str, changes: dict[str, Any]) -> Served[Optional[RecordT]]:
        served = await self._run("update", lambda b: b.update(record_id, changes), write=True)
        if served.value is not None:
            await self._after_write(served)
        return served

    async def delete(self, record_id: str) -> Served[bool]:
        served = await self._run("delete", lambda b: b.delete(record_id), write=True)
        if served.value:
            await self._after_write(served)
        return served

    async def count(self, since: Optional[datetime] = None) -> Served[int]:
        return await self._run("count", lambda b: b.count(since), write=False)

    async def clear_everywhere(self) -> tuple[int, list[str]]:
        """Empty the collection on every reachable backend.

        Returns the number of records removed and the backends that failed.
        Does not run mutation hooks; callers reset derived state themselves.
        """
        cleared = 0
        errors: list[str] = []
        if self.primary is not None and self.flag.usable:
            try:
                removed = await self.primary.clear()
                cleared += removed
                logger.info(f"✅ تم حذف {removed} سجل من MongoDB ({self.name})")
            except Exception as exc:
                logger.error(f"Error clearing MongoDB ({self.name}): {exc}")
                errors.append(StorageKind.MONGODB.value)
        try:
            removed = await self.fallback.clear()
            cleared += removed
            logger.info(f"✅ تم حذف {removed} سجل من ملف JSON ({self.name})")
        except Exception as exc:
            logger.error(f"Error clearing JSON file ({self.name}): {exc}")
            errors.append(StorageKind.JSON.value)
        return cleared, errors
