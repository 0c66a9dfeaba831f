"""
Signed, time-bounded OAuth state tokens.

The OAuth callback arrives without a session, so the state parameter has to
carry the user's identity. It is a Fernet token (AES + HMAC, timestamped)
wrapping {user_id, provider, nonce}; a forged, altered, replayed-for-another
provider or stale state fails verification.
"""

from __future__ import annotations

import json
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken

from pslang.config import OAUTH_STATE_TTL_SECONDS, state_secret
from pslang.errors import ConfigurationError, InvalidStateError
from pslang.storage.models import Provider


@dataclass(frozen=True)
class OAuthState:
    user_id: str
    provider: Provider
    nonce: str


class StateSigner:
    def __init__(
        self,
        secret: str | bytes,
        ttl_seconds: int = OAUTH_STATE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        key = secret.encode() if isinstance(secret, str) else secret
        try:
            self._fernet = Fernet(key)
        except ValueError as e:
            raise ConfigurationError("OAuth state secret is not a valid Fernet key") from e
        self._ttl = ttl_seconds
        self._clock = clock

    @classmethod
    def from_env(cls) -> StateSigner:
        """
        Raises:
            ConfigurationError: If PSLANG_STATE_SECRET is not set
        """
        secret = state_secret()
        if not secret:
            raise ConfigurationError("OAuth state signing is not configured")
        return cls(secret)

    def issue(self, user_id: str, provider: Provider) -> str:
        payload = json.dumps(
            {"uid": user_id, "p": provider.value, "n": secrets.token_urlsafe(12)},
            separators=(",", ":"),
        )
        return self._fernet.encrypt_at_time(payload.encode(), int(self._clock())).decode()

    def verify(self, token: str, provider: Provider) -> OAuthState:
        """
        Raises:
            InvalidStateError: If the token is forged, expired, malformed or
                was issued for a different provider
        """
        try:
            raw = self._fernet.decrypt_at_time(token.encode(), self._ttl, int(self._clock()))
            data = json.loads(raw)
            state = OAuthState(user_id=data["uid"], provider=Provider(data["p"]), nonce=data["n"])
        except (InvalidToken, ValueError, KeyError, TypeError) as e:
            raise InvalidStateError() from e

        if state.provider != provider or not state.user_id:
            raise InvalidStateError()
        return state
