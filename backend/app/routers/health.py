import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from app.context import AppContext
from app.deps import get_context

router = APIRouter(tags=["health"])

STARTED_AT = time.monotonic()


@router.get("/health")
async def health(ctx: AppContext = Depends(get_context)):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "environment": ctx.settings.APP_ENV,
    }


@router.get("/ping", response_class=PlainTextResponse)
async def ping():
    return "pong"


@router.get("/api/mongodb/status")
async def mongodb_status(ctx: AppContext = Depends(get_context)):
    status = ctx.supervisor.status()
    status["fallback"] = (
        None if status["connected"] else "البيانات تُحفظ مؤقتاً في ملفات JSON"
    )
    return status
