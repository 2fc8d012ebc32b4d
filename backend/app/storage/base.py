from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Optional, Protocol, TypeVar

from pydantic import BaseModel

from app.constants import StorageKind

RecordT = TypeVar("RecordT", bound=BaseModel)
T = TypeVar("T")


class CollectionBackend(Protocol[RecordT]):
    """Capability interface implemented by the MongoDB and JSON-file backends."""

    kind: StorageKind

    async def create(self, record: RecordT) -> RecordT: ...

    async def read_all(self) -> list[RecordT]: ...

    async def read_by_id(self, record_id: str) -> Optional[RecordT]: ...

    async def update(self, record_id: str, changes: dict[str, Any]) -> Optional[RecordT]: ...

    async def delete(self, record_id: str) -> bool: ...

    async def count(self, since: Optional[datetime] = None) -> int: ...

    async def clear(self) -> int: ...


@dataclass
class Served(Generic[T]):
    """Result of an adapter call plus the backend that actually served it."""

    value: T
    storage: StorageKind
