"""Integration tests for user, admin and health endpoints

Tests cover:
- Current user with resolved role
- Super admin role sync from SUPER_ADMIN_EMAILS
- Admin endpoints restricted to super admins
- Listing users, updating roles, diagnosing and verification lookups
- Health, pool health and service index
"""

from __future__ import annotations

import pytest

from pslang.identity.provider import IdentityUser
from pslang.storage.models import SignupKind
from pslang.storage.signup_repository import SignupRepository


@pytest.fixture
def super_admin(monkeypatch):
    monkeypatch.setenv("SUPER_ADMIN_EMAILS", "ADA@example.com, root@example.com")


def test_me_default_role(client, ada):
    response = client.get("/api/user/me", headers=ada)

    assert response.status_code == 200
    assert response.json() == {
        "id": "user_1",
        "email": "ada@example.com",
        "firstName": "Ada",
        "lastName": None,
        "role": "user",
        "roleDisplayName": "User",
        "canAccessThemeSettings": False,
    }


def test_me_role_from_metadata(client, bob):
    data = client.get("/api/user/me", headers=bob).json()

    assert data["role"] == "reviewer"
    assert data["canAccessThemeSettings"] is False


def test_me_from_session_cookie(client):
    client.cookies.set("__session", "token-ada")

    assert client.get("/api/user/me").json()["id"] == "user_1"


def test_me_requires_token(client):
    response = client.get("/api/user/me", headers={"Authorization": "Token abc"})

    assert response.status_code == 401
    assert response.json() == {
        "error": "Invalid authorization header format. Expected: Bearer <token>"
    }


def test_sync_role_promotes_listed_email(client, ada, identity, super_admin):
    response = client.post("/api/user/sync-role", headers=ada)

    assert response.json()["synced"] is True
    assert response.json()["role"] == "super_admin"
    assert identity.metadata_updates == [("user_1", {"role": "super_admin"})]


def test_sync_role_noop(client, bob, identity, super_admin):
    response = client.post("/api/user/sync-role", headers=bob)

    assert response.json() == {"synced": False, "role": "reviewer", "message": "No sync needed"}
    assert identity.metadata_updates == []


@pytest.mark.parametrize(
    ("method", "path"),
    [
        ("get", "/api/admin/users"),
        ("post", "/api/admin/update-role"),
        ("get", "/api/admin/diagnose-user"),
        ("post", "/api/admin/verification-status"),
    ],
)
def test_admin_requires_super_admin(client, bob, method, path):
    response = client.request(method.upper(), path, headers=bob, json={})

    assert response.status_code == 403
    assert response.json() == {"error": "Super admin access required"}


def test_admin_lists_users_with_roles(client, ada, super_admin):
    data = client.get("/api/admin/users", headers=ada).json()

    roles = {u["id"]: u["role"] for u in data["users"]}
    assert roles == {"user_1": "super_admin", "user_2": "reviewer"}


def test_admin_updates_role(client, ada, identity, super_admin):
    response = client.post(
        "/api/admin/update-role", json={"userId": "user_2", "role": "designer"}, headers=ada
    )

    assert response.json() == {"success": True, "role": "designer"}
    assert identity.users["user_2"].public_metadata["role"] == "designer"


@pytest.mark.parametrize(
    ("body", "error"),
    [
        ({"userId": "user_2"}, "Missing userId or role"),
        ({"userId": "user_2", "role": "wizard"}, "Invalid role: wizard"),
        ({"userId": "user_1", "role": "user"}, "Cannot change your own role"),
    ],
)
def test_admin_update_role_rejected(client, ada, super_admin, body, error):
    response = client.post("/api/admin/update-role", json=body, headers=ada)

    assert response.status_code == 400
    assert response.json() == {"error": error}


def test_diagnose_user_needing_link(client, ada, super_admin):
    SignupRepository().upsert("bob@example.com", SignupKind.ALPHA, "consumer", "alpha_tester")

    data = client.get(
        "/api/admin/diagnose-user", params={"email": "bob@example.com"}, headers=ada
    ).json()

    assert data["identity"]["found"] is True
    assert data["identity"]["userId"] == "user_2"
    assert data["signup"]["found"] is True
    assert data["needsLink"] is True


def test_diagnose_user_requires_email(client, ada, super_admin):
    response = client.get("/api/admin/diagnose-user", headers=ada)

    assert response.status_code == 400
    assert response.json() == {"error": "Email parameter required"}


def test_verification_status(client, ada, identity, super_admin):
    identity.add_user(IdentityUser(id="user_3", email="new@example.com"))

    verified = client.post(
        "/api/admin/verification-status", json={"email": "ada@example.com"}, headers=ada
    ).json()
    pending = client.post(
        "/api/admin/verification-status", json={"email": "new@example.com"}, headers=ada
    ).json()
    missing = client.post(
        "/api/admin/verification-status", json={"email": "ghost@example.com"}, headers=ada
    )

    assert verified == {"message": "Email already verified", "userId": "user_1", "verified": True}
    assert pending["verified"] is False
    assert missing.status_code == 404


def test_health(client):
    data = client.get("/health").json()

    assert data["status"] == "healthy"
    assert data["configured"]["credential_encryption"] is True
    assert data["configured"]["chatgpt_oauth"] is False
    assert data["configured"]["email"] is False


def test_database_health(client):
    data = client.get("/health/db").json()

    assert data["status"] == "healthy"
    assert data["pool"]["closed"] is False


def test_root_lists_endpoints(client):
    data = client.get("/").json()

    assert data["status"] == "running"
    assert data["endpoints"]["permissions"] == "/api/privacy/permissions"


def test_responses_carry_security_headers(client):
    response = client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_route_not_found(client):
    response = client.get("/api/nowhere")

    assert response.status_code == 404
