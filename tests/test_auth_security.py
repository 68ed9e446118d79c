"""
Security tests for the authentication module.

Tests cover:
- Password strength validation on signup
- JWT security (missing secret key)
- Token expiration handling
- Admin-only routes
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from auth_utils import create_jwt
from config.settings import settings
from tests.helpers import create_test_user


@pytest.mark.asyncio
async def test_strong_password_success(async_client):
    """
    Signup succeeds with a 12+ character password meeting every complexity rule
    and sets the auth cookie.
    """
    response = await async_client.post(
        "/api/auth/signup",
        json={"email": "test_strong@example.com", "password": "StrongPass123!"},
    )

    assert response.status_code == 200
    response_data = response.json()
    assert response_data["ok"] is True
    assert "user_id" in response_data
    assert "auth_token" in response.cookies


@pytest.mark.asyncio
async def test_weak_password_rejection_min_length(async_client):
    response = await async_client.post(
        "/api/auth/signup",
        json={"email": "test_short@example.com", "password": "ShortPass1!"},
    )

    assert response.status_code == 400
    assert "12 characters" in response.json()["detail"].lower()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "password,missing_type",
    [
        ("lowercasepass123!", "uppercase"),
        ("NOLOWERCASE123!", "lowercase"),
        ("NoDigitsSpecial!", "digit"),
        ("NoSpecialChars123", "special"),
    ],
)
async def test_weak_password_rejection_missing_complexity(async_client, password, missing_type):
    response = await async_client.post(
        "/api/auth/signup",
        json={"email": f"test_{missing_type}@example.com", "password": password},
    )

    assert response.status_code == 400, f"Password '{password}' should be rejected for missing {missing_type}"
    assert missing_type in response.json()["detail"].lower()


@pytest.mark.asyncio
async def test_duplicate_email_rejected(async_client):
    payload = {"email": "dupe@example.com", "password": "StrongPass123!"}
    first = await async_client.post("/api/auth/signup", json=payload)
    second = await async_client.post("/api/auth/signup", json=payload)

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["detail"] == "Email already registered"


def test_jwt_security_missing_key():
    """
    create_jwt() raises a ValueError when the signing key is None or empty.
    """
    with patch('auth_utils.settings.jwt_secret_key', None):
        with pytest.raises(ValueError, match="JWT_SECRET_KEY is not set"):
            create_jwt("test_user_id")

    with patch('auth_utils.settings.jwt_secret_key', ""):
        with pytest.raises(ValueError, match="JWT_SECRET_KEY is not set"):
            create_jwt("test_user_id")


@pytest.mark.asyncio
async def test_authentication_failure_expired_token(async_client):
    """
    A route protected by get_current_user answers 401 for an expired token,
    whether it arrives as a cookie or as a Bearer header.
    """
    if not settings.jwt_secret_key:
        pytest.skip("JWT_SECRET_KEY not set - cannot test expired token")

    signup_response = await async_client.post(
        "/api/auth/signup",
        json={"email": "test_expired@example.com", "password": "TestPassword123!"},
    )
    assert signup_response.status_code == 200
    user_id = signup_response.json()["user_id"]

    expired_token = create_jwt(user_id, expires_in=timedelta(seconds=-1))

    async_client.cookies.set("auth_token", expired_token)
    response = await async_client.get("/api/auth/me")
    assert response.status_code == 401
    assert "expired" in response.json()["detail"].lower() or "invalid" in response.json()["detail"].lower()

    async_client.cookies.clear()
    response = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired_token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_bearer_token_resolves_current_user(async_client, test_db):
    user = await create_test_user(test_db, email="bearer@example.com", display_name="Bea")

    response = await async_client.get(
        "/api/auth/me",
        headers={"Authorization": f"Bearer {create_jwt(user.id)}"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == user.id
    assert body["user_type"] == "user"
    assert body["has_access"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/admin/subscriptions", "/api/admin/coupons"])
async def test_admin_routes_reject_regular_users(async_client, test_db, path):
    user = await create_test_user(test_db, email="plain@example.com")

    response = await async_client.get(path, headers={"Authorization": f"Bearer {create_jwt(user.id)}"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_billing_routes_require_authentication(async_client):
    response = await async_client.post("/api/billing/start-trial")

    assert response.status_code == 401
