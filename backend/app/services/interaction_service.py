from datetime import datetime, timezone
from typing import Dict, List

from fastapi import HTTPException

from app.constants import MAX_COMMENT_LENGTH
from app.storage.json_file import JsonFile, new_record_id
from app.utils.logger import get_logger

logger = get_logger("interaction_service")

REACTIONS = ("like", "dislike")


def _empty() -> Dict[str, List[str]]:
    return {"likes": [], "dislikes": []}


def _counts(entry: Dict[str, List[str]]) -> Dict[str, int]:
    return {"likes": len(entry["likes"]), "dislikes": len(entry["dislikes"])}


class InteractionService:
    """Likes/dislikes and comments per post, kept in two keyed JSON maps."""

    def __init__(self, interactions: JsonFile, comments: JsonFile) -> None:
        self.interactions = interactions
        self.comments = comments

    async def _load_map(self, file: JsonFile) -> dict:
        data = await file.read()
        return data if isinstance(data, dict) else {}

    async def get_interactions(self, post_id: str) -> Dict[str, int]:
        entry = (await self._load_map(self.interactions)).get(post_id) or _empty()
        return _counts(entry)

    async def interact(self, post_id: str, reaction: str, user_id: str) -> tuple[bool, Dict[str, int]]:
        """Toggle `reaction` for `user_id`, dropping the opposite reaction.

        Returns (now_active, counts).
        """
        if reaction not in REACTIONS or not user_id:
            raise HTTPException(status_code=400, detail="بيانات غير صحيحة")

        data = await self._load_map(self.interactions)
        entry = data.setdefault(post_id, _empty())
        entry.setdefault("likes", [])
        entry.setdefault("dislikes", [])

        key = f"{reaction}s"
        opposite = "dislikes" if reaction == "like" else "likes"
        if user_id in entry[opposite]:
            entry[opposite].remove(user_id)

        if user_id in entry[key]:
            entry[key].remove(user_id)
            active = False
        else:
            entry[key].append(user_id)
            active = True

        await self.interactions.write(data)
        return active, _counts(entry)

    async def list_comments(self, post_id: str) -> List[dict]:
        comments = (await self._load_map(self.comments)).get(post_id) or []
        return sorted(comments, key=lambda c: c.get("timestamp", 0), reverse=True)

    async def add_comment(self, post_id: str, author: str, text: str) -> tuple[dict, int]:
        author, text = (author or "").strip(), (text or "").strip()
        if not author or not text:
            raise HTTPException(status_code=400, detail="يرجى ملء جميع الحقول")
        if len(text) > MAX_COMMENT_LENGTH:
            raise HTTPException(status_code=400, detail="التعليق طويل جداً (الحد الأقصى 500 حرف)")

        now = datetime.now(timezone.utc)
        comment = {
            "id": new_record_id(),
            "author": author,
            "text": text,
            "timestamp": int(now.timestamp() * 1000),
            "createdAt": now.isoformat(),
        }
        data = await self._load_map(self.comments)
        data.setdefault(post_id, []).append(comment)
        await self.comments.write(data)
        logger.info(f"💬 New comment on post {post_id}")
        return comment, len(data[post_id])

    async def stats(self, post_id: str) -> Dict[str, int]:
        counts = await self.get_interactions(post_id)
        comments = len((await self._load_map(self.comments)).get(post_id) or [])
        return {
            **counts,
            "comments": comments,
            "engagement": counts["likes"] + counts["dislikes"] + comments,
        }
