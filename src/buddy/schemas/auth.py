"""Pydantic schemas for authentication endpoints and the request context."""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, Field

from src.buddy.schemas.common import RpcModel


class SignUpRequest(RpcModel):
    """Request schema for email/password sign-up."""

    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=8, max_length=128, description="User password")


class SignInRequest(RpcModel):
    """Request schema for email/password sign-in."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class UserRead(RpcModel):
    """Public view of a user."""

    id: str
    name: str
    email: str
    email_verified: bool = False
    image: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SessionRead(RpcModel):
    """Public view of a session (the token itself is omitted)."""

    id: str
    user_id: str
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None


class SessionResponse(RpcModel):
    """Response for get-session."""

    session: SessionRead
    user: UserRead


class AuthResponse(RpcModel):
    """Response for sign-up and sign-in.

    The token is also set as the session cookie.
    """

    token: str
    user: UserRead
