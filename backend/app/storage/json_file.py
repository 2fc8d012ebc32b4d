"""JSON-file fallback backend.

Every mutation rewrites the whole document: read, mutate, serialize to a
temp file in the same directory, then ``os.replace`` it over the original.
Readers therefore only ever see a complete JSON document. There is no file
lock; two interleaved writers can lose an update (single-process,
low-traffic deployment).
"""
import asyncio
import json
import os
import secrets
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generic, Optional, Type

from app.constants import StorageKind
from app.errors import StorageError
from app.storage.base import RecordT
from app.utils.logger import get_logger

logger = get_logger("storage.json")


def new_record_id() -> str:
    """Millisecond timestamp plus a short random suffix."""
    return f"{int(time.time() * 1000)}{secrets.token_hex(3)}"


class JsonFile:
    """One JSON document on disk, read and written wholesale off the event loop."""

    def __init__(self, path: Path, default: Callable[[], Any]) -> None:
        self.path = Path(path)
        self.default = default

    def _read_sync(self) -> Any:
        if not self.path.exists():
            return self.default()
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as exc:
            logger.error(f"خطأ في قراءة ملف JSON {self.path.name}: {exc}")
            raise StorageError(f"cannot read {self.path.name}") from exc

    def _write_sync(self, data: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error(f"خطأ في كتابة ملف JSON {self.path.name}: {exc}")
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"cannot write {self.path.name}") from exc

    async def read(self) -> Any:
        return await asyncio.to_thread(self._read_sync)

    async def write(self, data: Any) -> None:
        await asyncio.to_thread(self._write_sync, data)

    def exists(self) -> bool:
        return self.path.exists()


class JsonCollectionBackend(Generic[RecordT]):
    """Array-of-records collection stored in a single JSON file."""

    kind = StorageKind.JSON

    def __init__(self, file: JsonFile, record_cls: Type[RecordT], *, date_field: str) -> None:
        self.file = file
        self.record_cls = record_cls
        self.date_field = date_field

    async def _load(self) -> list[dict]:
        data = await self.file.read()
        if not isinstance(data, list):
            raise StorageError(f"{self.file.path.name} is not a JSON array")
        return data

    def _parse(self, item: dict) -> RecordT:
        return self.record_cls.model_validate(item)

    def _dump(self, record: RecordT) -> dict:
        return record.model_dump(mode="json")

    async def create(self, record: RecordT) -> RecordT:
        items = await self._load()
        if not record.id:
            record = record.model_copy(update={"id": new_record_id()})
        items.append(self._dump(record))
        await self.file.write(items)
        return record

    async def read_all(self) -> list[RecordT]:
        return [self._parse(item) for item in await self._load()]

    async def read_by_id(self, record_id: str) -> Optional[RecordT]:
        for item in await self._load():
            if str(item.get("id")) == str(record_id):
                return self._parse(item)
        return None

    async def update(self, record_id: str, changes: dict[str, Any]) -> Optional[RecordT]:
        items = await self._load()
        for index, item in enumerate(items):
            if str(item.get("id")) == str(record_id):
                merged = self._parse({**item, **changes})
                items[index] = self._dump(merged)
                await self.file.write(items)
                return merged
        return None

    async def delete(self, record_id: str) -> bool:
        items = await self._load()
        remaining = [item for item in items if str(item.get("id")) != str(record_id)]
        if len(remaining) == len(items):
            return False
        await self.file.write(remaining)
        return True

    async def count(self, since: Optional[datetime] = None) -> int:
        items = await self._load()
        if since is None:
            return len(items)
        return sum(1 for record in map(self._parse, items) if _aware(getattr(record, self.date_field)) >= _aware(since))

    async def clear(self) -> int:
        if not self.file.exists():
            return 0
        items = await self._load()
        await self.file.write([])
        return len(items)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
