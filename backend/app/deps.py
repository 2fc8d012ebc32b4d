from fastapi import Request

from app.context import AppContext


def get_context(request: Request) -> AppContext:
    """The AppContext owned by the running application."""
    return request.app.state.ctx


def caller_id(request: Request) -> str:
    """Per-caller key: X-Session-Id header, else the client address."""
    session_id = request.headers.get("x-session-id")
    if session_id:
        return session_id.strip()[:100]
    return request.client.host if request.client else "anonymous"
