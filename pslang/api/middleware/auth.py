"""
User authentication for PS-LANG API.

Resolves the signed-in user from a Clerk session token. Browser requests
carry the token in the __session cookie; API clients send it as a Bearer
token. Resolved users are cached per token, never past the token's own
expiry.
"""

from __future__ import annotations

import time
from functools import lru_cache

from cachetools import TTLCache
from fastapi import Depends, Request

from pslang.config import (
    CLERK_SESSION_CACHE_MAX,
    CLERK_SESSION_CACHE_TTL,
    CLERK_SESSION_COOKIE,
    clerk_issuer,
    clerk_jwks_url,
    clerk_secret_key,
)
from pslang.errors import ApiError, ConfigurationError, Forbidden, Unauthorized
from pslang.identity.provider import ClerkIdentityProvider, IdentityProvider, IdentityUser
from pslang.identity.roles import UserRole, get_user_role
from pslang.observability.logging import get_logger

logger = get_logger(__name__)

_session_cache: TTLCache[str, IdentityUser] = TTLCache(
    maxsize=CLERK_SESSION_CACHE_MAX, ttl=CLERK_SESSION_CACHE_TTL
)


@lru_cache
def _clerk_provider(secret_key: str, jwks_url: str, issuer: str | None) -> ClerkIdentityProvider:
    return ClerkIdentityProvider(secret_key=secret_key, jwks_url=jwks_url, issuer=issuer)


def get_identity_provider() -> IdentityProvider | None:
    """
    FastAPI dependency returning the configured identity provider.

    None when Clerk is not configured; routes that require a user then fail
    with a configuration error, optional-auth routes treat everyone as
    anonymous.
    """
    secret_key = clerk_secret_key()
    jwks_url = clerk_jwks_url()
    if not secret_key or not jwks_url:
        return None
    return _clerk_provider(secret_key, jwks_url, clerk_issuer())


def _extract_bearer_token(authorization: str | None) -> str:
    """Extract token from Authorization header."""
    if not authorization:
        raise Unauthorized("Missing authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Invalid authorization header format. Expected: Bearer <token>")

    return parts[1]


def _session_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if authorization:
        return _extract_bearer_token(authorization)
    return request.cookies.get(CLERK_SESSION_COOKIE) or None


def _now() -> float:
    return time.time()


def _session_expired(user: IdentityUser) -> bool:
    return user.session_expires_at is not None and _now() >= user.session_expires_at


async def _resolve(provider: IdentityProvider, token: str) -> IdentityUser:
    cached = _session_cache.get(token)
    if cached is not None:
        if not _session_expired(cached):
            return cached
        _session_cache.pop(token, None)

    user = await provider.get_current_user(token)
    if not _session_expired(user):
        _session_cache[token] = user
    logger.info("Authenticated user: %s (cache size: %d)", user, len(_session_cache))
    return user


async def get_current_user(
    request: Request,
    provider: IdentityProvider | None = Depends(get_identity_provider),
) -> IdentityUser:
    """
    FastAPI dependency to get the current authenticated user.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: IdentityUser = Depends(get_current_user)):
            ...

    Raises:
        Unauthorized: If no session token is present or it does not verify
        ConfigurationError: If no identity provider is configured
    """
    token = _session_token(request)
    if not token:
        raise Unauthorized()
    if provider is None:
        raise ConfigurationError("Authentication not configured")
    return await _resolve(provider, token)


async def get_optional_user(
    request: Request,
    provider: IdentityProvider | None = Depends(get_identity_provider),
) -> IdentityUser | None:
    """
    FastAPI dependency for optional authentication.

    Returns None for anonymous visitors and for tokens that fail to verify.
    """
    if provider is None:
        return None
    try:
        token = _session_token(request)
        if not token:
            return None
        return await _resolve(provider, token)
    except ApiError as e:
        logger.info("Treating request as anonymous: %s", e.message)
        return None


async def require_super_admin(user: IdentityUser = Depends(get_current_user)) -> IdentityUser:
    """
    Raises:
        Forbidden: If the current user is not a super admin
    """
    if get_user_role(user) is not UserRole.SUPER_ADMIN:
        logger.warning("Non-admin %s denied admin endpoint", user)
        raise Forbidden("Super admin access required")
    return user


def clear_session_cache() -> None:
    """Clear the session cache. Useful for testing."""
    _session_cache.clear()


def forget_user(user_id: str) -> None:
    """Drop cached sessions of a deleted user."""
    for token, user in list(_session_cache.items()):
        if user.id == user_id:
            _session_cache.pop(token, None)
