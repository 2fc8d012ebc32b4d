from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from app.config import get_settings
from app.constants import StorageKind
from app.context import AppContext
from app.deps import get_context
from app.rate_limit import limiter
from app.schemas import AdminLoginIn, AdminTokenOut, AdminVerifyIn, ExportIn
from app.security import check_secret, create_admin_token, require_admin, require_configured
from app.utils.logger import get_logger

logger = get_logger("admin")
settings = get_settings()

# تسجيل الدخول بدون توكن؛ باقي المسارات تتطلب توكن الإدارة
auth_router = APIRouter(prefix="/api", tags=["admin-auth"])
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

CLEAR_ERRORS = {
    StorageKind.MONGODB.value: "فشل في حذف بيانات MongoDB",
    StorageKind.JSON.value: "فشل في حذف بيانات ملف JSON",
}


@auth_router.post("/admin/verify", response_model=AdminTokenOut)
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def verify_admin(request: Request, payload: AdminVerifyIn, ctx: AppContext = Depends(get_context)):
    """كلمة مرور لوحة الإدارة الموحدة -> توكن إدارة."""
    if not payload.password:
        raise HTTPException(status_code=400, detail="كلمة المرور مطلوبة")
    if not ctx.settings.ADMIN_PANEL_PASSWORD:
        logger.error("❌ ADMIN_PANEL_PASSWORD not configured")
    require_configured(ctx.settings.ADMIN_PANEL_PASSWORD)
    if not check_secret(payload.password, ctx.settings.ADMIN_PANEL_PASSWORD):
        logger.warning("❌ Invalid admin password attempt")
        raise HTTPException(status_code=401, detail="كلمة المرور غير صحيحة")
    logger.info("✅ Admin access granted")
    return AdminTokenOut(message="تم التحقق بنجاح", token=create_admin_token(ctx.settings))


@auth_router.post("/auth/statistics", response_model=AdminTokenOut)
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def statistics_login(request: Request, payload: AdminLoginIn, ctx: AppContext = Depends(get_context)):
    if not payload.username or not payload.password:
        raise HTTPException(status_code=400, detail="اسم المستخدم وكلمة المرور مطلوبان")
    require_configured(ctx.settings.ADMIN_USERNAME, ctx.settings.ADMIN_PASSWORD)
    valid_user = check_secret(payload.username, ctx.settings.ADMIN_USERNAME)
    valid_password = check_secret(payload.password, ctx.settings.ADMIN_PASSWORD)
    if not (valid_user and valid_password):
        raise HTTPException(status_code=401, detail="اسم المستخدم أو كلمة المرور غير صحيحة")
    return AdminTokenOut(
        message="تم تسجيل الدخول بنجاح",
        token=create_admin_token(ctx.settings, subject=payload.username),
    )


@router.post("/statistics")
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def statistics(request: Request, ctx: AppContext = Depends(get_context)):
    return {"success": True, "statistics": await ctx.survey_service.statistics()}


@router.post("/export")
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def export_data(request: Request, payload: ExportIn, ctx: AppContext = Depends(get_context)):
    body, media_type, filename = await ctx.survey_service.export(payload.format)
    logger.info(f"📦 Exported survey data as {payload.format}")
    return Response(
        content=body.encode("utf-8"),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/clear-submissions")
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def clear_submissions(request: Request, ctx: AppContext = Depends(get_context)):
    logger.info("🗑️ Clear submissions request received")
    cleared, errors = await ctx.survey_service.clear()
    if errors:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "تم حذف بعض البيانات مع وجود أخطاء",
                "clearedCount": cleared,
                "errors": [CLEAR_ERRORS.get(e, e) for e in errors],
            },
        )
    return {
        "success": True,
        "message": f"تم حذف جميع الاستجابات بنجاح ({cleared} استجابة)",
        "clearedCount": cleared,
    }
