from datetime import datetime, timezone
from typing import Any, Generic, Optional, Type

from beanie import Document
from beanie import PydanticObjectId as OID

from app.constants import StorageKind
from app.models import Post, SurveyResponse
from app.schemas import PostRecord, SurveyRecord
from app.storage.base import RecordT


def _parse_oid(record_id: str) -> Optional[OID]:
    try:
        return OID(record_id)
    except Exception:
        return None


class MongoCollectionBackend(Generic[RecordT]):
    """Beanie-backed collection. Raises whatever the driver raises; the
    adapter decides what a failure means."""

    kind = StorageKind.MONGODB

    def __init__(self, document_cls: Type[Document], record_cls: Type[RecordT], *, date_field: str) -> None:
        self.document_cls = document_cls
        self.record_cls = record_cls
        self.date_field = date_field

    def _to_record(self, doc: Document) -> RecordT:
        data = doc.model_dump(exclude={"id", "revision_id"})
        data["id"] = str(doc.id)
        return self.record_cls.model_validate(data)

    def _to_document(self, record: RecordT) -> Document:
        data = record.model_dump(exclude={"id", "date"})
        return self.document_cls(**data)

    async def create(self, record: RecordT) -> RecordT:
        doc = self._to_document(record)
        await doc.insert()
        return self._to_record(doc)

    async def read_all(self) -> list[RecordT]:
        date_attr = getattr(self.document_cls, self.date_field)
        docs = await self.document_cls.find_all().sort(-date_attr).to_list()
        return [self._to_record(doc) for doc in docs]

    async def read_by_id(self, record_id: str) -> Optional[RecordT]:
        oid = _parse_oid(record_id)
        if oid is None:
            return None
        doc = await self.document_cls.get(oid)
        return self._to_record(doc) if doc else None

    async def update(self, record_id: str, changes: dict[str, Any]) -> Optional[RecordT]:
        oid = _parse_oid(record_id)
        if oid is None:
            return None
        doc = await self.document_cls.get(oid)
        if not doc:
            return None
        # نمرّر التغييرات عبر نموذج السجل حتى تبقى الحقول المشتقة (approved) متطابقة
        current = self._to_record(doc)
        merged = self.record_cls.model_validate({**current.model_dump(), **changes})
        before = current.model_dump(exclude={"id", "date"})
        for key, value in merged.model_dump(exclude={"id", "date"}).items():
            if before.get(key) != value:
                setattr(doc, key, value)
        await doc.save()
        return self._to_record(doc)

    async def delete(self, record_id: str) -> bool:
        oid = _parse_oid(record_id)
        if oid is None:
            return False
        doc = await self.document_cls.get(oid)
        if not doc:
            return False
        await doc.delete()
        return True

    async def count(self, since: Optional[datetime] = None) -> int:
        if since is None:
            return await self.document_cls.find_all().count()
        date_attr = getattr(self.document_cls, self.date_field)
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return await self.document_cls.find(date_attr >= since).count()

    async def clear(self) -> int:
        result = await self.document_cls.find_all().delete()
        return result.deleted_count if result else 0


def mongo_survey_backend() -> MongoCollectionBackend[SurveyRecord]:
    return MongoCollectionBackend(SurveyResponse, SurveyRecord, date_field="submittedAt")


def mongo_post_backend() -> MongoCollectionBackend[PostRecord]:
    return MongoCollectionBackend(Post, PostRecord, date_field="createdAt")
