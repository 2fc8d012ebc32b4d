import time
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.context import AppContext, build_context
from app.errors import BothBackendsFailed
from app.rate_limit import limiter
from app.routers import admin as admin_router
from app.routers import chat as chat_router
from app.routers import counter as counter_router
from app.routers import health as health_router
from app.routers import posts as posts_router
from app.routers import survey as survey_router
from app.utils.logger import get_logger

logger = get_logger("main")


def _start_scheduler(ctx: AppContext) -> AsyncIOScheduler:
    settings = ctx.settings
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        ctx.chat.purge_expired,
        trigger="interval",
        minutes=settings.CHAT_EXPIRY_SWEEP_MINUTES,
        id="chat_expired_messages",
        replace_existing=True,
    )
    scheduler.add_job(
        ctx.chat.sweep_idle,
        trigger="interval",
        minutes=settings.CHAT_IDLE_SWEEP_MINUTES,
        id="chat_idle_users",
        replace_existing=True,
    )
    scheduler.add_job(
        ctx.counter.prune_limiters,
        trigger="interval",
        minutes=settings.COUNTER_PRUNE_MINUTES,
        id="counter_idle_callers",
        replace_existing=True,
    )
    scheduler.start()
    return scheduler


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    settings = context.settings if context else get_settings()
    app = FastAPI(title="Hikma API", debug=settings.APP_DEBUG)
    app.state.ctx = context
    app.state.limiter = limiter

    # CORS for the static site
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SlowAPIMiddleware)

    app.include_router(survey_router.router)
    app.include_router(counter_router.router)
    app.include_router(posts_router.router)
    app.include_router(chat_router.router)
    app.include_router(admin_router.auth_router)
    app.include_router(admin_router.router)
    app.include_router(health_router.router)

    # Error handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP {exc.status_code}: {exc.detail} - Path: {request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
            content={
                "success": False,
                "message": exc.detail,
                "detail": exc.detail,
                "status_code": exc.status_code,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error: {exc.errors()} - Path: {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "message": "البيانات المرسلة غير صحيحة",
                "detail": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                    for e in exc.errors()
                ],
                "status_code": 422,
            },
        )

    # sync: SlowAPIMiddleware calls this handler without awaiting it
    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning(f"Rate limit exceeded: {exc.detail} - Path: {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "success": False,
                "message": "تم تجاوز الحد المسموح من الطلبات. يرجى المحاولة لاحقاً.",
                "status_code": 429,
            },
        )

    @app.exception_handler(BothBackendsFailed)
    async def storage_exception_handler(request: Request, exc: BothBackendsFailed):
        logger.error(f"❌ {exc} - Path: {request.url.path}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "حدث خطأ في الخادم", "status_code": 500},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        content = {"success": False, "message": "حدث خطأ في الخادم", "status_code": 500}
        if not settings.is_production:
            content["detail"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    # Middleware Logging
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.3f}s"
        )
        return response

    @app.on_event("startup")
    async def on_startup():
        logger.info("🚀 Starting application...")
        if app.state.ctx is None:
            app.state.ctx = build_context(settings)
        ctx: AppContext = app.state.ctx

        ctx.supervisor.start()
        if settings.SEED_SAMPLE_POSTS:
            await ctx.post_service.seed_samples(ctx.posts_file)
        await ctx.chat.ensure_file()

        try:
            ctx.scheduler = _start_scheduler(ctx)
            logger.info("✅ Chat cleanup scheduler started")
        except Exception as e:
            logger.error(f"Failed to start chat cleanup scheduler: {e}")
        logger.info("✅ Application ready")

    @app.on_event("shutdown")
    async def on_shutdown():
        ctx: Optional[AppContext] = app.state.ctx
        if ctx is None:
            return
        if ctx.scheduler:
            try:
                ctx.scheduler.shutdown()
                logger.info("Chat cleanup scheduler stopped")
            except Exception as e:
                logger.error(f"Error stopping scheduler: {e}")
        await ctx.supervisor.close()
        logger.info("Shutting down application...")

    return app


app = create_app()
