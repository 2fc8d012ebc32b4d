from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.config import get_settings

settings = get_settings()


def session_or_remote_address(request: Request) -> str:
    """Rate-limit key: the client's X-Session-Id header, else its IP."""
    session_id = request.headers.get("x-session-id")
    if session_id:
        return f"session:{session_id.strip()[:100]}"
    return get_remote_address(request)


# Global limiter instance reused across the app
limiter = Limiter(key_func=session_or_remote_address, default_limits=[settings.GLOBAL_RATE_LIMIT])
