"""Password hashing, session tokens, and call-platform JWTs.

Provides the security primitives used by the auth routes, the session
dependency, the video/chat token procedures, and the webhook endpoint.

Uses bcrypt directly (not passlib) for Python 3.13 compatibility.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timezone

import bcrypt
from jose import jwt

STREAM_JWT_ALGORITHM = "HS256"

# ── Password Hashing ──────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ── Session Tokens ────────────────────────────────────────────────────────────


def generate_session_token() -> str:
    """Return an opaque, URL-safe session token (32 random bytes)."""
    return secrets.token_urlsafe(32)


def generate_verification_token() -> str:
    return secrets.token_urlsafe(24)


# ── Call Platform JWTs ────────────────────────────────────────────────────────


def create_stream_user_token(
    user_id: str,
    secret: str,
    expires_in: int | None = None,
    issued_at_skew: int = 60,
) -> str:
    """Create a user token for the video/chat platform.

    The token is an HS256 JWT signed with the platform API secret. iat is
    backdated by issued_at_skew seconds to tolerate client clock drift.

    Args:
        user_id: Platform user id (same as the Buddy user id).
        secret: Platform API secret.
        expires_in: Lifetime in seconds; None for a non-expiring token.
        issued_at_skew: Seconds to backdate iat.
    """
    now = int(datetime.now(timezone.utc).timestamp())
    claims: dict = {"user_id": user_id, "iat": now - issued_at_skew}
    if expires_in is not None:
        claims["exp"] = now + expires_in
    return jwt.encode(claims, secret, algorithm=STREAM_JWT_ALGORITHM)


def create_stream_server_token(secret: str) -> str:
    """Create the server-side token used to authenticate REST calls."""
    return jwt.encode({"server": True}, secret, algorithm=STREAM_JWT_ALGORITHM)


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check an HMAC-SHA256 hex signature of the raw webhook body."""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)
