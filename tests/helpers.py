"""
tests/helpers.py — Shared test doubles
=======================================
In-memory stand-in for the MongoDB collection backend and a tiny driver for
running coroutines from synchronous tests.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

from app.constants import StorageKind

SUBMISSION_PASSWORD = "post-secret"
ADMIN_PANEL_PASSWORD = "panel-secret"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-secret"


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class MemoryBackend:
    """Dict-backed ``CollectionBackend`` that can be told to fail every call."""

    kind = StorageKind.MONGODB

    def __init__(self, record_cls, date_field: str) -> None:
        self.record_cls = record_cls
        self.date_field = date_field
        self.items: dict[str, Any] = {}
        self.fail = False
        self.calls: list[str] = []
        self._seq = 0

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail:
            raise ConnectionError(f"primary unavailable during {operation}")

    async def create(self, record):
        self._check("create")
        self._seq += 1
        record = record.model_copy(update={"id": f"mem{self._seq}"})
        self.items[record.id] = record
        return record

    async def read_all(self):
        self._check("read_all")
        return list(self.items.values())

    async def read_by_id(self, record_id: str):
        self._check("read_by_id")
        return self.items.get(record_id)

    async def update(self, record_id: str, changes: dict[str, Any]):
        self._check("update")
        current = self.items.get(record_id)
        if current is None:
            return None
        updated = self.record_cls.model_validate({**current.model_dump(), **changes})
        self.items[record_id] = updated
        return updated

    async def delete(self, record_id: str) -> bool:
        self._check("delete")
        return self.items.pop(record_id, None) is not None

    async def count(self, since: Optional[datetime] = None) -> int:
        self._check("count")
        if since is None:
            return len(self.items)
        return sum(
            1 for r in self.items.values() if _aware(getattr(r, self.date_field)) >= _aware(since)
        )

    async def clear(self) -> int:
        self._check("clear")
        removed = len(self.items)
        self.items.clear()
        return removed
