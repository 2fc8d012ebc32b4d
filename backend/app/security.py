import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError

from app.config import Settings
from app.context import AppContext
from app.deps import get_context

# auto_error=False حتى نعيد رسالة 401 بالعربية بدلاً من 403 الافتراضية
bearer_scheme = HTTPBearer(auto_error=False)


# ------------------------ Secret comparison ------------------------


def check_secret(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; False when either side is empty."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_configured(*secrets: Optional[str]) -> None:
    if not all(secrets):
        raise HTTPException(status_code=500, detail="خطأ في إعدادات الخادم")


# ------------------------ JWT helpers ------------------------


def create_admin_token(settings: Settings, subject: str = "admin", expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed admin JWT (2 hours by default)."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ADMIN_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": subject, "exp": expire, "type": "admin"}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_admin_token(settings: Settings, token: str) -> dict:
    """Decode an admin JWT and verify its type."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="جلسة الإدارة غير صالحة أو منتهية",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("type") != "admin":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="نوع الرمز غير صحيح",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ctx: AppContext = Depends(get_context),
) -> dict:
    """Dependency for admin-only routes: a valid Bearer admin token is required."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="غير مصرح بالوصول",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_admin_token(ctx.settings, credentials.credentials)
