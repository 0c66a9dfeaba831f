"""Unit tests for authentication dependencies

Tests cover:
- Missing and malformed authorization headers
- Bearer token and __session cookie
- Optional auth treats failures as anonymous
- Session cache and forget_user
- Cached sessions end at the token expiry
- Super admin requirement
- Unconfigured identity provider
"""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from pslang.api.app import api_error_handler
from pslang.api.middleware import auth
from pslang.api.middleware.auth import (
    forget_user,
    get_current_user,
    get_identity_provider,
    get_optional_user,
    require_super_admin,
)
from pslang.errors import ApiError, Unauthorized
from pslang.identity.provider import IdentityUser


class CountingProvider:
    def __init__(self):
        self.calls = 0
        self.users = {"good": IdentityUser(id="user_1", email="ada@example.com")}

    async def get_current_user(self, token):
        self.calls += 1
        if token not in self.users:
            raise Unauthorized("Invalid session token")
        return self.users[token]


def create_test_app(provider):
    test_app = FastAPI()
    test_app.add_exception_handler(ApiError, api_error_handler)
    test_app.dependency_overrides[get_identity_provider] = lambda: provider

    @test_app.get("/me")
    async def me(user: IdentityUser = Depends(get_current_user)):
        return {"id": user.id}

    @test_app.get("/maybe")
    async def maybe(user: IdentityUser | None = Depends(get_optional_user)):
        return {"id": user.id if user else None}

    @test_app.get("/admin")
    async def admin(user: IdentityUser = Depends(require_super_admin)):
        return {"id": user.id}

    return test_app


@pytest.fixture
def provider():
    return CountingProvider()


@pytest.fixture
def client(provider):
    return TestClient(create_test_app(provider))


def test_missing_token(client):
    response = client.get("/me")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


@pytest.mark.parametrize("header", ["Basic abc", "Bearer", "Bearer a b"])
def test_malformed_authorization_header(client, header):
    response = client.get("/me", headers={"Authorization": header})

    assert response.status_code == 401
    assert "Expected: Bearer <token>" in response.json()["error"]


def test_bearer_token(client):
    response = client.get("/me", headers={"Authorization": "Bearer good"})

    assert response.json() == {"id": "user_1"}


def test_session_cookie(client):
    client.cookies.set("__session", "good")

    assert client.get("/me").json() == {"id": "user_1"}


def test_invalid_token(client):
    response = client.get("/me", headers={"Authorization": "Bearer bad"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid session token"}


def test_optional_user_anonymous_on_failure(client):
    assert client.get("/maybe").json() == {"id": None}
    assert client.get("/maybe", headers={"Authorization": "Bearer bad"}).json() == {"id": None}
    assert client.get("/maybe", headers={"Authorization": "Bearer good"}).json() == {"id": "user_1"}


def test_resolved_sessions_are_cached(client, provider):
    """Test that a token is verified once while cached"""
    for _ in range(3):
        client.get("/me", headers={"Authorization": "Bearer good"})

    assert provider.calls == 1


class ExpiringProvider:
    """Resolves once with a token expiring at t=1000, then reports the session expired."""

    def __init__(self):
        self.calls = 0

    async def get_current_user(self, token):
        self.calls += 1
        if self.calls > 1:
            raise Unauthorized("Session expired")
        return IdentityUser(id="user_1", session_expires_at=1000)


def test_cached_session_ends_at_token_expiry(monkeypatch):
    provider = ExpiringProvider()
    client = TestClient(create_test_app(provider))
    headers = {"Authorization": "Bearer short-lived"}

    monkeypatch.setattr(auth, "_now", lambda: 999.0)
    before = client.get("/me", headers=headers)
    cached = client.get("/me", headers=headers)
    monkeypatch.setattr(auth, "_now", lambda: 1000.0)
    after = client.get("/me", headers=headers)

    assert before.json() == cached.json() == {"id": "user_1"}
    assert after.status_code == 401
    assert after.json() == {"error": "Session expired"}
    assert provider.calls == 2


def test_already_expired_session_is_not_cached(monkeypatch):
    provider = ExpiringProvider()
    client = TestClient(create_test_app(provider))
    monkeypatch.setattr(auth, "_now", lambda: 1000.0)

    first = client.get("/me", headers={"Authorization": "Bearer stale"})
    second = client.get("/me", headers={"Authorization": "Bearer stale"})

    assert first.status_code == 200
    assert second.status_code == 401


def test_forget_user_drops_cached_sessions(client, provider):
    client.get("/me", headers={"Authorization": "Bearer good"})

    forget_user("user_1")
    client.get("/me", headers={"Authorization": "Bearer good"})

    assert provider.calls == 2


def test_super_admin_required(client, monkeypatch):
    denied = client.get("/admin", headers={"Authorization": "Bearer good"})
    monkeypatch.setenv("SUPER_ADMIN_EMAILS", "ada@example.com")
    allowed = client.get("/admin", headers={"Authorization": "Bearer good"})

    assert denied.status_code == 403
    assert allowed.json() == {"id": "user_1"}


def test_unconfigured_provider():
    client = TestClient(create_test_app(None))

    required = client.get("/me", headers={"Authorization": "Bearer good"})
    optional = client.get("/maybe", headers={"Authorization": "Bearer good"})

    assert required.status_code == 500
    assert required.json() == {"error": "Authentication not configured"}
    assert optional.json() == {"id": None}


def test_identity_provider_needs_clerk_settings(monkeypatch):
    assert get_identity_provider() is None

    monkeypatch.setenv("CLERK_SECRET_KEY", "sk_test")
    monkeypatch.setenv("CLERK_JWKS_URL", "https://clerk.example.test/.well-known/jwks.json")

    assert get_identity_provider() is not None
