"""Authentication API endpoints.

Email/password sign-up and sign-in, sign-out, session lookup and email
verification. Sign-up and sign-in set the session cookie and also return
the token for clients that send it as a Bearer header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from src.buddy.api.deps import get_auth_service, session_token_from_request
from src.buddy.auth.service import (
    AuthService,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidVerificationTokenError,
)
from src.buddy.config import Environment, get_settings
from src.buddy.schemas.auth import (
    AuthResponse,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    UserRead,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.ENVIRONMENT == Environment.production,
        path="/",
    )


def _client_info(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("User-Agent"),
    }


@router.post("/sign-up/email", response_model=AuthResponse, response_model_by_alias=True)
async def sign_up(
    body: SignUpRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Register with email and password and start a session."""
    try:
        token, user = await auth.sign_up(body, **_client_info(request))
    except EmailAlreadyRegisteredError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        )
    _set_session_cookie(response, token)
    return AuthResponse(token=token, user=user)


@router.post("/sign-in/email", response_model=AuthResponse, response_model_by_alias=True)
async def sign_in(
    body: SignInRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Authenticate with email and password and start a session."""
    try:
        token, user = await auth.sign_in(body, **_client_info(request))
    except InvalidCredentialsError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    _set_session_cookie(response, token)
    return AuthResponse(token=token, user=user)


@router.post("/sign-out")
async def sign_out(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """End the current session. Succeeds even without one."""
    await auth.sign_out(session_token_from_request(request))
    response.delete_cookie(get_settings().SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/get-session", response_model=SessionResponse | None, response_model_by_alias=True)
async def get_session(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    """Current session and user, or null."""
    found = await auth.get_session(session_token_from_request(request))
    if found is None:
        return None
    session, user = found
    return SessionResponse(session=session, user=user)


@router.get("/verify-email", response_model=UserRead, response_model_by_alias=True)
async def verify_email(
    token: str = Query(..., min_length=1),
    auth: AuthService = Depends(get_auth_service),
):
    """Consume an email verification token."""
    try:
        return await auth.verify_email(token)
    except InvalidVerificationTokenError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification token",
        )
