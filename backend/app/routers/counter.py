from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.context import AppContext
from app.deps import caller_id, get_context
from app.services.counter_service import CounterRateLimited, CounterUnavailable
from app.utils.logger import get_logger

logger = get_logger("counter")

router = APIRouter(prefix="/api/counter", tags=["counter"])


def _rate_limited(exc: CounterRateLimited, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": str(exc.retry_after)},
        content={
            "success": False,
            "message": message,
            "counter": exc.counter,
            "cached": True,
            "retryAfter": exc.retry_after,
        },
    )


@router.get("")
async def get_counter(request: Request, ctx: AppContext = Depends(get_context)):
    """إجمالي المشاركات من الكاش (TTL قصير) مع حد طلبات لكل جلسة."""
    try:
        return await ctx.counter.get(caller_id(request))
    except CounterRateLimited as exc:
        return _rate_limited(exc, "Too many requests. Please try again later.")
    except CounterUnavailable as exc:
        logger.error(f"❌ Counter unavailable on both backends: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Server error occurred", "counter": exc.counter},
        )


@router.get("/analytics")
async def counter_analytics(request: Request, ctx: AppContext = Depends(get_context)):
    try:
        analytics = await ctx.counter.analytics(caller_id(request))
    except CounterRateLimited as exc:
        return _rate_limited(exc, "Analytics rate limit exceeded")
    return {"success": True, "analytics": analytics}
