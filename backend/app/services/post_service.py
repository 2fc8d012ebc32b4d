import hmac
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import HTTPException

from app.constants import (
    PostCategory,
    PostStatus,
    MAX_AUTHOR_LENGTH,
    MAX_CONTENT_LENGTH,
    MAX_EXCERPT_LENGTH,
    MAX_TITLE_LENGTH,
)
from app.errors import InvalidTransition
from app.schemas import PostCreateIn, PostRecord, PostSubmitIn
from app.storage.adapter import FallbackCollection
from app.storage.base import Served
from app.storage.json_file import JsonFile
from app.utils.logger import get_logger

logger = get_logger("post_service")

# pending -> {approved, rejected}; approved و rejected نهائيتان
TRANSITIONS: dict[str, set[str]] = {
    PostStatus.PENDING.value: {PostStatus.APPROVED.value, PostStatus.REJECTED.value},
    PostStatus.APPROVED.value: set(),
    PostStatus.REJECTED.value: set(),
}

SAMPLE_POSTS = [
    {
        "title": "مقدمة في الفلسفة الحديثة",
        "category": PostCategory.ARTICLES.value,
        "excerpt": "كيف غيّرت الفلسفة الحديثة طريقة تفكيرنا في العقل والمعرفة.",
        "content": "الفلسفة الحديثة تمثل نقطة تحول مهمة في تاريخ الفكر الإنساني. بدأت مع ديكارت وامتدت لتشمل كانط وهيوم، وتميزت بالتركيز على العقل والتجربة كمصادر للمعرفة.",
        "author": "فيلسوف الحكمة",
    },
    {
        "title": "العلم والمنهج النقدي",
        "category": PostCategory.CULTURE.value,
        "excerpt": "لماذا نحتاج المنهج العلمي في فهم العالم من حولنا.",
        "content": "العلم الحديث قدم لنا أدوات جديدة لفهم الكون والطبيعة البشرية، والمنهج النقدي هو ما يجعل هذه الأدوات قابلة للمراجعة والتصحيح.",
        "author": "باحث",
    },
    {
        "title": "الأخلاق والتعاطف",
        "category": PostCategory.ARTICLES.value,
        "excerpt": "الأخلاق الإنسانية تنبع من التعاطف والعقل والتجربة الاجتماعية.",
        "content": "الأخلاق الإنسانية تنبع من التعاطف والعقل والتجربة الاجتماعية، والعديد من المجتمعات تُظهر مستويات عالية من التضامن.",
        "author": "مفكر حر",
    },
]


def _check_length(value: str, limit: int, message: str) -> None:
    if len(value) > limit:
        raise HTTPException(status_code=400, detail=message)


def _newest_first(posts: List[PostRecord]) -> List[PostRecord]:
    return sorted(posts, key=lambda p: p.createdAt, reverse=True)


def is_public(post: PostRecord) -> bool:
    return post.approved and post.status == PostStatus.APPROVED.value


class PostService:
    """WisdomHub: نشر المقالات مع مراجعة الإدارة."""

    def __init__(self, store: FallbackCollection[PostRecord], submission_password: Optional[str]) -> None:
        self.store = store
        self.submission_password = submission_password

    # ------------------------ reads ------------------------

    async def list_approved(self, category: Optional[str] = None) -> List[PostRecord]:
        posts = [p for p in (await self.store.read_all()).value if is_public(p)]
        if category and category != "all":
            posts = [p for p in posts if p.category == category]
        return _newest_first(posts)

    async def list_all(self) -> List[PostRecord]:
        return _newest_first((await self.store.read_all()).value)

    async def list_pending(self) -> List[PostRecord]:
        posts = (await self.store.read_all()).value
        return _newest_first([p for p in posts if p.status == PostStatus.PENDING.value])

    async def get_public(self, post_id: str) -> PostRecord:
        post = (await self.store.read_by_id(post_id)).value
        if not post or not is_public(post):
            raise HTTPException(status_code=404, detail="المقال غير موجود")
        return post

    async def search(self, query: str) -> List[PostRecord]:
        term = (query or "").strip().lower()
        if not term:
            raise HTTPException(status_code=400, detail="يرجى إدخال كلمة البحث")
        posts = [p for p in (await self.store.read_all()).value if is_public(p)]
        matches = [
            p for p in posts
            if term in p.title.lower() or term in p.content.lower() or term in p.author.lower()
        ]
        # العنوان أولاً ثم الأحدث
        matches.sort(key=lambda p: p.createdAt, reverse=True)
        matches.sort(key=lambda p: term not in p.title.lower())
        return matches

    # ------------------------ writes ------------------------

    async def submit(self, payload: PostSubmitIn) -> Served[PostRecord]:
        """إرسال مقال من الواجهة العامة؛ يبقى pending حتى تراجعه الإدارة."""
        if not self.submission_password:
            logger.error("❌ SUBMISSION_PASSWORD not configured")
            raise HTTPException(status_code=500, detail="خطأ في إعدادات الخادم")
        if not payload.password or not hmac.compare_digest(payload.password, self.submission_password):
            raise HTTPException(status_code=401, detail="كلمة السر غير صحيحة")

        title, excerpt = payload.title.strip(), payload.excerpt.strip()
        content, author = payload.content.strip(), payload.author.strip()
        if not all([title, payload.category, excerpt, content, author]):
            raise HTTPException(status_code=400, detail="جميع الحقول مطلوبة")
        if payload.category not in {c.value for c in PostCategory}:
            raise HTTPException(status_code=400, detail="فئة غير صحيحة")
        _check_length(title, MAX_TITLE_LENGTH, "العنوان طويل جداً (الحد الأقصى 200 حرف)")
        _check_length(excerpt, MAX_EXCERPT_LENGTH, "المقتطف طويل جداً (الحد الأقصى 500 حرف)")
        _check_length(content, MAX_CONTENT_LENGTH, "المحتوى طويل جداً (الحد الأقصى 10000 حرف)")
        _check_length(author, MAX_AUTHOR_LENGTH, "اسم الكاتب طويل جداً (الحد الأقصى 100 حرف)")

        return await self._create(
            title=title, category=payload.category, excerpt=excerpt, content=content, author=author
        )

    async def create_legacy(self, payload: PostCreateIn) -> Served[PostRecord]:
        title, content, author = payload.title.strip(), payload.content.strip(), payload.author.strip()
        if not title or not content or not author:
            raise HTTPException(status_code=400, detail="Title, content, and author are required")
        _check_length(title, MAX_TITLE_LENGTH, "Title is too long (max 200 characters)")
        _check_length(content, MAX_CONTENT_LENGTH, "Content is too long (max 10000 characters)")
        _check_length(author, MAX_AUTHOR_LENGTH, "Author name is too long (max 100 characters)")
        return await self._create(
            title=title, category=PostCategory.ARTICLES.value, excerpt="", content=content, author=author
        )

    async def _create(self, **fields) -> Served[PostRecord]:
        now = datetime.now(timezone.utc)
        record = PostRecord(
            id="",
            status=PostStatus.PENDING.value,
            approved=False,
            createdAt=now,
            updatedAt=now,
            **fields,
        )
        served = await self.store.create(record)
        logger.info(f"📝 New post pending review: {served.value.id} ({served.storage.value})")
        return served

    async def transition(self, post_id: str, target: str) -> Optional[PostRecord]:
        """Apply a moderation decision.

        approved -> persisted with approved=True; rejected -> deleted;
        deleted -> removed whatever the current status.
        Returns the approved post, or None when the post was removed.
        """
        if target == "deleted":
            await self.delete(post_id)
            return None

        post = (await self.store.read_by_id(post_id)).value
        if not post:
            raise HTTPException(status_code=404, detail="Post not found")
        if target not in TRANSITIONS.get(post.status, set()):
            raise InvalidTransition(post.status, target)

        if target == PostStatus.REJECTED.value:
            await self.delete(post_id)
            logger.info(f"🗑️ Post rejected and removed: {post_id}")
            return None

        updated = (
            await self.store.update(
                post_id,
                {
                    "status": PostStatus.APPROVED.value,
                    "approved": True,
                    "updatedAt": datetime.now(timezone.utc),
                },
            )
        ).value
        if not updated:
            raise HTTPException(status_code=404, detail="Post not found")
        logger.info(f"✅ Post approved: {post_id}")
        return updated

    async def delete(self, post_id: str) -> None:
        if not (await self.store.delete(post_id)).value:
            raise HTTPException(status_code=404, detail="Post not found")

    async def seed_samples(self, posts_file: JsonFile) -> int:
        """Write approved sample posts when the posts file does not exist yet."""
        if posts_file.exists():
            return 0
        base = datetime.now(timezone.utc)
        records = [
            PostRecord(
                id=str(index + 1),
                status=PostStatus.APPROVED.value,
                createdAt=base - timedelta(days=index),
                **sample,
            ).model_dump(mode="json")
            for index, sample in enumerate(SAMPLE_POSTS)
        ]
        await posts_file.write(records)
        logger.info("Posts file initialized with sample data")
        return len(records)
