from fastapi import APIRouter, Depends, HTTPException

from app.context import AppContext
from app.deps import get_context
from app.errors import MessageForbidden, MessageNotFound, NicknameTaken
from app.schemas import ChatDeleteIn, ChatJoinIn, ChatMessage, NicknameIn, PingIn

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _required_nickname(nickname: str) -> str:
    if not nickname or not nickname.strip():
        raise HTTPException(status_code=400, detail="الاسم المستعار مطلوب")
    return nickname


@router.post("/check-nickname")
async def check_nickname(payload: NicknameIn, ctx: AppContext = Depends(get_context)):
    nickname = _required_nickname(payload.nickname)
    return {"available": ctx.chat.check_nickname(nickname)}


@router.post("/join")
async def join_chat(payload: ChatJoinIn, ctx: AppContext = Depends(get_context)):
    _required_nickname(payload.nickname)
    if not payload.gender.strip():
        raise HTTPException(status_code=400, detail="الاسم المستعار والجنس مطلوبان")
    try:
        user = await ctx.chat.join(payload)
    except NicknameTaken:
        raise HTTPException(status_code=409, detail="الاسم المستعار مستخدم حالياً")
    return {"success": True, "onlineUsers": ctx.chat.online, "user": user.model_dump(mode="json")}


@router.post("/leave")
async def leave_chat(payload: NicknameIn, ctx: AppContext = Depends(get_context)):
    online = await ctx.chat.leave(_required_nickname(payload.nickname))
    return {"success": True, "onlineUsers": online}


@router.post("/message")
async def post_message(message: ChatMessage, ctx: AppContext = Depends(get_context)):
    message_id = await ctx.chat.post_message(message)
    return {"success": True, "messageId": message_id, "onlineUsers": ctx.chat.online}


@router.get("/messages")
async def list_messages(ctx: AppContext = Depends(get_context)):
    messages = await ctx.chat.list_recent()
    return {"messages": messages, "onlineUsers": ctx.chat.online, "totalMessages": len(messages)}


@router.post("/ping")
async def ping(payload: PingIn, ctx: AppContext = Depends(get_context)):
    return {"success": True, "onlineUsers": await ctx.chat.ping(payload.nickname)}


@router.delete("/delete-message")
async def delete_message(payload: ChatDeleteIn, ctx: AppContext = Depends(get_context)):
    if not payload.messageId or not payload.userNickname:
        raise HTTPException(status_code=400, detail="معرف الرسالة واسم المستخدم مطلوبان")
    try:
        await ctx.chat.delete_message(payload.messageId, payload.userNickname)
    except MessageNotFound:
        raise HTTPException(status_code=404, detail="الرسالة غير موجودة")
    except MessageForbidden:
        raise HTTPException(status_code=403, detail="لا يمكنك حذف رسائل المستخدمين الآخرين")
    return {"success": True, "message": "تم حذف الرسالة بنجاح", "messageId": payload.messageId}
