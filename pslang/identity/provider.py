"""
Identity provider access.

The app depends on four identity operations only: resolve the current user
from a session token, list users, patch a user's metadata and delete a user.
ClerkIdentityProvider implements them against Clerk: session JWTs are
verified locally with PyJWT against Clerk's JWKS, and user records come from
the Clerk backend API.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import jwt
from cachetools import TTLCache

from pslang.config import CLERK_API_BASE, HTTP_CONNECT_TIMEOUT_SECONDS, HTTP_TIMEOUT_SECONDS
from pslang.errors import ConfigurationError, NotFound, Unauthorized, UpstreamError
from pslang.observability.logging import get_logger

logger = get_logger(__name__)

_ALLOWED_ALGS = {"RS256", "RS384", "RS512"}
_JWKS_CACHE_TTL_SECONDS = 3600
_CLOCK_SKEW_SECONDS = 5


@dataclass
class IdentityUser:
    """A user as the identity provider reports it."""

    id: str
    email: str = ""
    first_name: str | None = None
    last_name: str | None = None
    public_metadata: dict[str, Any] = field(default_factory=dict)
    email_verified: bool = False
    created_at: int | None = None  # epoch milliseconds
    last_sign_in_at: int | None = None
    session_expires_at: int | None = None  # exp of the token it was resolved from, epoch seconds

    def __str__(self) -> str:
        return f"User({self.id})"

    @classmethod
    def from_clerk(cls, data: dict[str, Any]) -> IdentityUser:
        addresses = data.get("email_addresses") or []
        primary_id = data.get("primary_email_address_id")
        primary = next((a for a in addresses if a.get("id") == primary_id), None)
        if primary is None and addresses:
            primary = addresses[0]
        verification = (primary or {}).get("verification") or {}
        return cls(
            id=data["id"],
            email=(primary or {}).get("email_address", ""),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            public_metadata=data.get("public_metadata") or {},
            email_verified=verification.get("status") == "verified",
            created_at=data.get("created_at"),
            last_sign_in_at=data.get("last_sign_in_at"),
        )


class IdentityProvider(Protocol):
    async def get_current_user(self, token: str) -> IdentityUser: ...

    async def list_users(
        self,
        limit: int = 100,
        order_by: str = "-created_at",
        email_address: list[str] | None = None,
    ) -> list[IdentityUser]: ...

    async def update_metadata(self, user_id: str, public_metadata: dict[str, Any]) -> IdentityUser: ...

    async def delete_user(self, user_id: str) -> None: ...


class ClerkIdentityProvider:
    def __init__(
        self,
        secret_key: str,
        jwks_url: str,
        issuer: str | None = None,
        api_base: str = CLERK_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not secret_key or not jwks_url:
            raise ConfigurationError("Identity provider not configured")
        self.secret_key = secret_key
        self.jwks_url = jwks_url
        self.issuer = issuer
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self._timeout = httpx.Timeout(HTTP_TIMEOUT_SECONDS, connect=HTTP_CONNECT_TIMEOUT_SECONDS)
        self._jwks_cache: TTLCache[str, dict[str, Any]] = TTLCache(
            maxsize=4, ttl=_JWKS_CACHE_TTL_SECONDS
        )

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, **kwargs)

    async def _fetch_jwks(self, refresh: bool = False) -> dict[str, Any]:
        if not refresh and self.jwks_url in self._jwks_cache:
            return self._jwks_cache[self.jwks_url]
        async with self._client() as client:
            try:
                response = await client.get(self.jwks_url)
            except httpx.RequestError as e:
                logger.error("JWKS fetch failed: %s", type(e).__name__)
                raise UpstreamError("Authentication service unavailable") from e
        if not response.is_success:
            raise UpstreamError("Authentication service unavailable")
        jwks = response.json()
        self._jwks_cache[self.jwks_url] = jwks
        return jwks

    @staticmethod
    def _select_jwk(jwks: dict[str, Any], kid: str | None) -> dict[str, Any] | None:
        keys = jwks.get("keys") or []
        if kid:
            for key in keys:
                if key.get("kid") == kid:
                    return key
        if len(keys) == 1:
            return keys[0]
        return None

    async def verify_session(self, token: str) -> dict[str, Any]:
        """
        Verify a session JWT and return its claims.

        Raises:
            Unauthorized: If the token is malformed, unsigned by Clerk or expired
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError:
            raise Unauthorized("Invalid session token") from None

        alg = header.get("alg")
        if alg not in _ALLOWED_ALGS:
            raise Unauthorized("Invalid session token")

        jwk = self._select_jwk(await self._fetch_jwks(), header.get("kid"))
        if jwk is None:
            # Keys may have rotated since the cache was filled
            jwk = self._select_jwk(await self._fetch_jwks(refresh=True), header.get("kid"))
        if jwk is None:
            raise Unauthorized("Invalid session token")

        try:
            key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
            claims = jwt.decode(
                token,
                key,
                algorithms=[alg],
                issuer=self.issuer,
                leeway=_CLOCK_SKEW_SECONDS,
                options={"verify_aud": False, "verify_iss": self.issuer is not None},
            )
        except jwt.ExpiredSignatureError:
            raise Unauthorized("Session expired") from None
        except jwt.PyJWTError as e:
            logger.warning("Session token rejected: %s", type(e).__name__)
            raise Unauthorized("Invalid session token") from None

        if not claims.get("sub"):
            raise Unauthorized("Invalid session token")
        return claims

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        async with self._client(headers=headers) as client:
            try:
                response = await client.request(method, f"{self.api_base}{path}", **kwargs)
            except httpx.RequestError as e:
                logger.error("Identity provider request failed: %s %s %s", method, path, type(e).__name__)
                raise UpstreamError("Identity provider unavailable") from e

        if response.status_code == 404:
            raise NotFound("User not found")
        if not response.is_success:
            logger.warning("Identity provider %s %s returned %d", method, path, response.status_code)
            raise UpstreamError(f"Identity provider returned HTTP {response.status_code}")
        if not response.content:
            return None
        return response.json()

    async def get_user(self, user_id: str) -> IdentityUser:
        return IdentityUser.from_clerk(await self._request("GET", f"/users/{user_id}"))

    async def get_current_user(self, token: str) -> IdentityUser:
        claims = await self.verify_session(token)
        try:
            user = await self.get_user(claims["sub"])
        except NotFound:
            raise Unauthorized("User no longer exists") from None
        user.session_expires_at = claims.get("exp")
        return user

    async def list_users(
        self,
        limit: int = 100,
        order_by: str = "-created_at",
        email_address: list[str] | None = None,
    ) -> list[IdentityUser]:
        params: list[tuple[str, str | int]] = [("limit", limit), ("order_by", order_by)]
        params.extend(("email_address", email) for email in email_address or [])
        body = await self._request("GET", "/users", params=params)
        items = body.get("data", []) if isinstance(body, dict) else body or []
        return [IdentityUser.from_clerk(item) for item in items]

    async def update_metadata(self, user_id: str, public_metadata: dict[str, Any]) -> IdentityUser:
        body = await self._request(
            "PATCH",
            f"/users/{user_id}/metadata",
            json={"public_metadata": public_metadata},
        )
        return IdentityUser.from_clerk(body)

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/users/{user_id}")
