"""Unit tests for the Clerk identity provider

Tests cover:
- Session JWT verified against JWKS, user loaded from the backend API
- Expired, foreign-key and unsigned tokens rejected
- Deleted user treated as unauthenticated
- Metadata update and user listing requests
"""

from __future__ import annotations

import asyncio
import json
import time

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from pslang.errors import ConfigurationError, Unauthorized
from pslang.identity.provider import ClerkIdentityProvider, IdentityUser

JWKS_URL = "https://clerk.example.test/.well-known/jwks.json"
API_BASE = "https://api.clerk.example.test/v1"

CLERK_USER = {
    "id": "user_1",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "primary_email_address_id": "em_2",
    "email_addresses": [
        {"id": "em_1", "email_address": "old@example.com", "verification": {"status": "unverified"}},
        {"id": "em_2", "email_address": "ada@example.com", "verification": {"status": "verified"}},
    ],
    "public_metadata": {"role": "designer"},
    "created_at": 1_700_000_000_000,
}


def _rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def signing_key():
    return _rsa_key()


class FakeClerk:
    def __init__(self, signing_key, users: dict[str, dict] | None = None):
        jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(signing_key.public_key()))
        jwk["kid"] = "kid_1"
        self.jwks = {"keys": [jwk]}
        self.users = users if users is not None else {"user_1": CLERK_USER}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == JWKS_URL:
            return httpx.Response(200, json=self.jwks)
        path = request.url.path.removeprefix("/v1")
        if request.method == "GET" and path == "/users":
            return httpx.Response(200, json=list(self.users.values()))
        user_id = path.split("/")[2]
        if user_id not in self.users:
            return httpx.Response(404, json={"errors": [{"code": "resource_not_found"}]})
        if request.method == "PATCH":
            updated = {**self.users[user_id], **json.loads(request.content)}
            return httpx.Response(200, json=updated)
        if request.method == "DELETE":
            return httpx.Response(200, json={"deleted": True})
        return httpx.Response(200, json=self.users[user_id])

    def provider(self) -> ClerkIdentityProvider:
        return ClerkIdentityProvider(
            secret_key="sk_test_clerk",
            jwks_url=JWKS_URL,
            issuer="https://clerk.example.test",
            api_base=API_BASE,
            transport=httpx.MockTransport(self.handler),
        )


def session_token(key, sub="user_1", expires_in=60, kid="kid_1", issuer="https://clerk.example.test"):
    now = int(time.time())
    claims = {"sub": sub, "iss": issuer, "iat": now, "nbf": now, "exp": now + expires_in}
    return jwt.encode(claims, key, algorithm="RS256", headers={"kid": kid})


def test_current_user_resolved(signing_key):
    """Test a valid session resolves to the Clerk user with primary email"""
    fake = FakeClerk(signing_key)

    user = asyncio.run(fake.provider().get_current_user(session_token(signing_key)))

    assert isinstance(user, IdentityUser)
    assert user.id == "user_1"
    assert user.email == "ada@example.com"
    assert user.email_verified is True
    assert 0 < user.session_expires_at - time.time() <= 60
    assert user.public_metadata == {"role": "designer"}
    assert fake.requests[-1].headers["Authorization"] == "Bearer sk_test_clerk"


def test_expired_session_rejected(signing_key):
    fake = FakeClerk(signing_key)
    token = session_token(signing_key, expires_in=-60)

    with pytest.raises(Unauthorized, match="Session expired"):
        asyncio.run(fake.provider().get_current_user(token))


def test_token_from_other_key_rejected(signing_key):
    fake = FakeClerk(signing_key)
    token = session_token(_rsa_key())

    with pytest.raises(Unauthorized):
        asyncio.run(fake.provider().get_current_user(token))


def test_wrong_issuer_rejected(signing_key):
    fake = FakeClerk(signing_key)
    token = session_token(signing_key, issuer="https://evil.example.test")

    with pytest.raises(Unauthorized):
        asyncio.run(fake.provider().get_current_user(token))


def test_hmac_token_rejected(signing_key):
    """Test that symmetric algorithms are never accepted"""
    fake = FakeClerk(signing_key)
    token = jwt.encode({"sub": "user_1"}, "shared-secret", algorithm="HS256")

    with pytest.raises(Unauthorized):
        asyncio.run(fake.provider().get_current_user(token))


def test_garbage_token_rejected(signing_key):
    with pytest.raises(Unauthorized):
        asyncio.run(FakeClerk(signing_key).provider().get_current_user("not-a-jwt"))


def test_deleted_user_is_unauthorized(signing_key):
    fake = FakeClerk(signing_key, users={})

    with pytest.raises(Unauthorized, match="no longer exists"):
        asyncio.run(fake.provider().get_current_user(session_token(signing_key)))


def test_update_metadata(signing_key):
    fake = FakeClerk(signing_key)

    user = asyncio.run(fake.provider().update_metadata("user_1", {"role": "admin"}))

    request = fake.requests[-1]
    assert request.method == "PATCH"
    assert request.url.path == "/v1/users/user_1/metadata"
    assert json.loads(request.content) == {"public_metadata": {"role": "admin"}}
    assert user.public_metadata == {"role": "admin"}


def test_list_users_by_email(signing_key):
    fake = FakeClerk(signing_key)

    users = asyncio.run(fake.provider().list_users(limit=1, email_address=["ada@example.com"]))

    assert [u.id for u in users] == ["user_1"]
    params = fake.requests[-1].url.params
    assert params["limit"] == "1"
    assert params.get_list("email_address") == ["ada@example.com"]


def test_requires_configuration():
    with pytest.raises(ConfigurationError):
        ClerkIdentityProvider(secret_key="", jwks_url=JWKS_URL)
