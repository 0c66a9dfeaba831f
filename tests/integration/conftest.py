"""
Fixtures for route tests

The real app is exercised through TestClient. The identity provider is
replaced by an in-memory fake through app.dependency_overrides; upstream
HTTP clients are built on httpx.MockTransport.
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from pslang.api.app import app
from pslang.api.middleware.auth import get_identity_provider
from pslang.errors import NotFound, Unauthorized
from pslang.identity.provider import IdentityUser


class FakeIdentityProvider:
    """Session token -> user, with the admin operations recorded."""

    def __init__(self) -> None:
        self.sessions: dict[str, IdentityUser] = {}
        self.users: dict[str, IdentityUser] = {}
        self.metadata_updates: list[tuple[str, dict[str, Any]]] = []
        self.deleted: list[str] = []

    def add_user(self, user: IdentityUser, token: str | None = None) -> IdentityUser:
        self.users[user.id] = user
        if token:
            self.sessions[token] = user
        return user

    async def get_current_user(self, token: str) -> IdentityUser:
        user = self.sessions.get(token)
        if user is None:
            raise Unauthorized("Invalid session token")
        return user

    async def list_users(
        self,
        limit: int = 100,
        order_by: str = "-created_at",
        email_address: list[str] | None = None,
    ) -> list[IdentityUser]:
        users = list(self.users.values())
        if email_address:
            users = [u for u in users if u.email in email_address]
        return users[:limit]

    async def update_metadata(self, user_id: str, public_metadata: dict[str, Any]) -> IdentityUser:
        if user_id not in self.users:
            raise NotFound("User not found")
        self.metadata_updates.append((user_id, public_metadata))
        user = self.users[user_id]
        user.public_metadata = {**user.public_metadata, **public_metadata}
        return user

    async def delete_user(self, user_id: str) -> None:
        self.deleted.append(user_id)
        self.users.pop(user_id, None)


@pytest.fixture
def identity():
    provider = FakeIdentityProvider()
    provider.add_user(
        IdentityUser(id="user_1", email="ada@example.com", first_name="Ada", email_verified=True),
        token="token-ada",
    )
    provider.add_user(
        IdentityUser(id="user_2", email="bob@example.com", public_metadata={"role": "reviewer"}),
        token="token-bob",
    )
    return provider


@pytest.fixture
def client(identity):
    app.dependency_overrides[get_identity_provider] = lambda: identity
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client():
    """App with no identity provider configured."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def ada():
    return {"Authorization": "Bearer token-ada"}


@pytest.fixture
def bob():
    return {"Authorization": "Bearer token-bob"}
