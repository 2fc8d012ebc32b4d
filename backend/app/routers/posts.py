from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.context import AppContext
from app.deps import get_context
from app.errors import InvalidTransition
from app.schemas import CommentIn, InteractIn, PostCreateIn, PostStatusIn, PostSubmitIn
from app.security import require_admin

router = APIRouter(prefix="/api/posts", tags=["posts"])


def _dump(post) -> dict:
    return post.model_dump(mode="json")


# ------------------------ public reads ------------------------


@router.get("")
async def list_posts(category: Optional[str] = None, ctx: AppContext = Depends(get_context)):
    """المقالات المعتمدة فقط، الأحدث أولاً."""
    return [_dump(p) for p in await ctx.post_service.list_approved(category)]


@router.get("/all", dependencies=[Depends(require_admin)])
async def list_all_posts(ctx: AppContext = Depends(get_context)):
    return [_dump(p) for p in await ctx.post_service.list_all()]


@router.get("/pending", dependencies=[Depends(require_admin)])
async def list_pending_posts(ctx: AppContext = Depends(get_context)):
    return [_dump(p) for p in await ctx.post_service.list_pending()]


@router.get("/search")
async def search_posts(q: str = "", ctx: AppContext = Depends(get_context)):
    return [_dump(p) for p in await ctx.post_service.search(q)]


@router.get("/{post_id}")
async def get_post(post_id: str, ctx: AppContext = Depends(get_context)):
    return _dump(await ctx.post_service.get_public(post_id))


# ------------------------ submission & moderation ------------------------


@router.post("/submit", status_code=status.HTTP_201_CREATED)
async def submit_post(payload: PostSubmitIn, ctx: AppContext = Depends(get_context)):
    served = await ctx.post_service.submit(payload)
    return {
        "success": True,
        "message": "تم إرسال المقال بنجاح! سيتم مراجعته من قبل الإدارة قبل النشر.",
        "post": _dump(served.value),
        "storage": served.storage.value,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_post(payload: PostCreateIn, ctx: AppContext = Depends(get_context)):
    """Legacy create endpoint; the post still waits for review."""
    served = await ctx.post_service.create_legacy(payload)
    return {
        "message": "Post created successfully and is pending approval",
        "post": _dump(served.value),
    }


@router.patch("/{post_id}", dependencies=[Depends(require_admin)])
async def update_post_status(post_id: str, payload: PostStatusIn, ctx: AppContext = Depends(get_context)):
    try:
        post = await ctx.post_service.transition(post_id, payload.status)
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=f"لا يمكن نقل المقال من {exc.current} إلى {exc.target}")
    if post is None:
        return {"message": f"Post {payload.status} successfully", "postId": post_id}
    return {"message": "Post approved successfully", "postId": post_id, "post": _dump(post)}


@router.delete("/{post_id}", dependencies=[Depends(require_admin)])
async def delete_post(post_id: str, ctx: AppContext = Depends(get_context)):
    await ctx.post_service.delete(post_id)
    return {"message": "Post deleted successfully", "postId": post_id}


# ------------------------ interactions & comments ------------------------


@router.get("/{post_id}/interactions")
async def get_interactions(post_id: str, ctx: AppContext = Depends(get_context)):
    return {"success": True, "interactions": await ctx.interactions.get_interactions(post_id)}


@router.post("/{post_id}/interact")
async def interact(post_id: str, payload: InteractIn, ctx: AppContext = Depends(get_context)):
    _, counts = await ctx.interactions.interact(post_id, payload.type, payload.userId)
    return {"success": True, "interactions": counts}


@router.post("/{post_id}/like")
async def like_post(post_id: str, request: Request, ctx: AppContext = Depends(get_context)):
    user_id = request.client.host if request.client else "anonymous"
    liked, counts = await ctx.interactions.interact(post_id, "like", user_id)
    return {"success": True, "liked": liked, "interactions": counts}


@router.post("/{post_id}/dislike")
async def dislike_post(post_id: str, request: Request, ctx: AppContext = Depends(get_context)):
    user_id = request.client.host if request.client else "anonymous"
    disliked, counts = await ctx.interactions.interact(post_id, "dislike", user_id)
    return {"success": True, "disliked": disliked, "interactions": counts}


@router.get("/{post_id}/comments")
async def list_comments(post_id: str, ctx: AppContext = Depends(get_context)):
    return {"success": True, "comments": await ctx.interactions.list_comments(post_id)}


@router.post("/{post_id}/comments")
async def add_comment(post_id: str, payload: CommentIn, ctx: AppContext = Depends(get_context)):
    comment, total = await ctx.interactions.add_comment(post_id, payload.author, payload.text)
    return {"success": True, "comment": comment, "totalComments": total}


@router.get("/{post_id}/stats")
async def post_stats(post_id: str, ctx: AppContext = Depends(get_context)):
    return {"success": True, "stats": await ctx.interactions.stats(post_id)}
