"""Authentication tests.

Tests email/password sign-up and sign-in, session cookies and bearer
tokens, sign-out, session expiry, email verification, and the security
primitives (password hashing, webhook signatures).
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone

import pytest

from src.buddy.auth.service import (
    AuthService,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidVerificationTokenError,
)
from src.buddy.config import get_settings
from src.buddy.core.security import hash_password, verify_password, verify_webhook_signature
from src.buddy.schemas.auth import SignInRequest, SignUpRequest

COOKIE = "buddy.session_token"
PASSWORD = "correct-horse-battery"


@pytest.fixture
def auth_service(backend):
    return AuthService(repository=backend.auth, settings=get_settings())


async def _sign_up(client, email="dana@example.com", password=PASSWORD, name="Dana"):
    return await client.post(
        "/api/auth/sign-up/email",
        json={"name": name, "email": email, "password": password},
    )


# ── Security primitives ──────────────────────────────────────────────────────


def test_password_hash_roundtrip():
    hashed = hash_password(PASSWORD)
    assert hashed != PASSWORD
    assert verify_password(PASSWORD, hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_with_garbage_hash():
    assert verify_password(PASSWORD, "not-a-bcrypt-hash") is False


def test_webhook_signature():
    body = b'{"type": "call.session_started"}'
    good = hmac.new(b"secret", body, hashlib.sha256).hexdigest()
    assert verify_webhook_signature(body, good, "secret")
    assert not verify_webhook_signature(body, good, "other-secret")
    assert not verify_webhook_signature(body, None, "secret")
    assert not verify_webhook_signature(body, good, "")


# ── AuthService ──────────────────────────────────────────────────────────────


async def test_sign_up_normalizes_email_and_opens_session(auth_service, backend):
    token, user = await auth_service.sign_up(
        SignUpRequest(name="Dana", email="Dana@Example.com", password=PASSWORD)
    )

    assert user.email == "dana@example.com"
    assert user.email_verified is False
    ctx = await auth_service.resolve_context(token)
    assert ctx.user_id == user.id
    assert "dana@example.com" in [v[0] for v in backend.auth.verifications.values()]


async def test_sign_up_duplicate_email(auth_service):
    data = SignUpRequest(name="Dana", email="dana@example.com", password=PASSWORD)
    await auth_service.sign_up(data)

    with pytest.raises(EmailAlreadyRegisteredError):
        await auth_service.sign_up(data.model_copy(update={"email": "DANA@example.com"}))


async def test_sign_in(auth_service):
    await auth_service.sign_up(SignUpRequest(name="Dana", email="dana@example.com", password=PASSWORD))

    token, user = await auth_service.sign_in(SignInRequest(email="dana@example.com", password=PASSWORD))

    assert user.name == "Dana"
    assert (await auth_service.get_session(token)) is not None


@pytest.mark.parametrize("email,password", [
    ("dana@example.com", "wrong-password"),
    ("nobody@example.com", PASSWORD),
])
async def test_sign_in_failures(auth_service, email, password):
    await auth_service.sign_up(SignUpRequest(name="Dana", email="dana@example.com", password=PASSWORD))

    with pytest.raises(InvalidCredentialsError):
        await auth_service.sign_in(SignInRequest(email=email, password=password))


async def test_expired_session_does_not_resolve(auth_service, backend, alice):
    await backend.auth.create_session(
        user_id=alice.id,
        token="stale",
        expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
    )
    assert await auth_service.resolve_context("stale") is None
    assert await auth_service.resolve_context(None) is None


async def test_verify_email_consumes_token(auth_service, backend):
    await auth_service.sign_up(SignUpRequest(name="Dana", email="dana@example.com", password=PASSWORD))
    (token,) = backend.auth.verifications

    user = await auth_service.verify_email(token)

    assert user.email_verified is True
    with pytest.raises(InvalidVerificationTokenError):
        await auth_service.verify_email(token)


# ── HTTP routes ──────────────────────────────────────────────────────────────


async def test_sign_up_sets_cookie_and_session_resolves(client):
    response = await _sign_up(client)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["user"]["email"] == "dana@example.com"
    assert body["user"]["emailVerified"] is False
    assert response.cookies.get(COOKIE) == body["token"]
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie

    session = await client.get("/api/auth/get-session")
    assert session.status_code == 200
    assert session.json()["user"]["id"] == body["user"]["id"]
    assert "token" not in session.json()["session"]


async def test_sign_up_duplicate_is_conflict(client):
    await _sign_up(client)
    response = await _sign_up(client, email="DANA@example.com")
    assert response.status_code == 409


async def test_sign_up_validation(client):
    response = await _sign_up(client, email="not-an-email")
    assert response.status_code == 422
    response = await _sign_up(client, password="short")
    assert response.status_code == 422


async def test_sign_in_wrong_password_is_unauthorized(client):
    await _sign_up(client)
    client.cookies.clear()

    response = await client.post(
        "/api/auth/sign-in/email", json={"email": "dana@example.com", "password": "nope-nope"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


async def test_bearer_token_session(client):
    token = (await _sign_up(client)).json()["token"]
    client.cookies.clear()

    response = await client.get("/api/auth/get-session", headers={"Authorization": f"Bearer {token}"})

    assert response.json()["user"]["email"] == "dana@example.com"


async def test_get_session_without_session_is_null(client):
    response = await client.get("/api/auth/get-session")
    assert response.status_code == 200
    assert response.json() is None


async def test_sign_out_ends_session(client, backend):
    await _sign_up(client)

    response = await client.post("/api/auth/sign-out")

    assert response.json() == {"success": True}
    assert backend.auth.sessions == {}
    assert (await client.get("/api/auth/get-session")).json() is None


async def test_verify_email_route(client, backend):
    await _sign_up(client)
    (token,) = backend.auth.verifications

    response = await client.get("/api/auth/verify-email", params={"token": token})
    assert response.status_code == 200
    assert response.json()["emailVerified"] is True

    again = await client.get("/api/auth/verify-email", params={"token": token})
    assert again.status_code == 400
