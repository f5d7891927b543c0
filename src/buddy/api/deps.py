"""FastAPI dependency injection for services and the authenticated session.

Services live on app.state (built by the lifespan, or by tests); a missing
service yields 503 rather than an attribute error. The session token is
read from the session cookie first, then from an Authorization: Bearer
header.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from src.buddy.auth.service import AuthService
from src.buddy.config import get_settings
from src.buddy.core.context import RequestContext
from src.buddy.core.monitoring import tag_sentry_user
from src.buddy.rpc.procedures import Router


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not available",
        )
    return service


def get_auth_service(request: Request) -> AuthService:
    """Retrieve AuthService from app.state, 503 if not available."""
    return _service(request, "auth_service")


def get_app_router(request: Request) -> Router:
    """Retrieve the procedure tree from app.state, 503 if not available."""
    return _service(request, "app_router")


def session_token_from_request(request: Request) -> str | None:
    """Session token from the session cookie or a Bearer header."""
    token = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:] or None
    return None


async def get_optional_context(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> RequestContext | None:
    """Resolve the RequestContext for the current session, or None.

    The user id is stored on request.state for the logging middleware.
    """
    ctx = await auth.resolve_context(session_token_from_request(request))
    if ctx is not None:
        request.state.user_id = ctx.user_id
        tag_sentry_user(ctx.user_id)
    return ctx
