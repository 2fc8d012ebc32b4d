from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime, timezone

from app.constants import PostCategory, PostStatus


class Post(Document):
    """مقال WisdomHub في MongoDB."""

    title: str = Field(..., max_length=200)
    category: PostCategory = PostCategory.ARTICLES
    excerpt: str = Field("", max_length=500)
    content: str = Field(..., max_length=10000)
    author: str = Field(..., max_length=100)
    status: Indexed(str) = PostStatus.PENDING.value
    # يبقى مطابقاً لـ status (حقل قديم للتوافق)
    approved: bool = False
    createdAt: Indexed(datetime) = Field(default_factory=lambda: datetime.now(timezone.utc))
    updatedAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "posts"
