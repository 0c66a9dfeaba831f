"""
HTTP client for the ChatGPT OAuth and conversations endpoints.

Every call opens a short-lived httpx.AsyncClient with explicit timeouts.
Calls are never retried: a failed request surfaces as a typed error and the
caller decides what to do with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from pslang.config import (
    CHATGPT_API_BASE,
    CHATGPT_TOKEN_URL,
    HTTP_CONNECT_TIMEOUT_SECONDS,
    HTTP_TIMEOUT_SECONDS,
)
from pslang.errors import TokenExchangeError, UpstreamError
from pslang.observability.logging import get_logger
from pslang.utils.error_sanitizer import redact

logger = get_logger(__name__)


class ProviderUnauthorized(UpstreamError):
    """Provider rejected the access token (HTTP 401)."""

    status_code = 401
    default_message = "Token expired"


class ProviderRequestError(UpstreamError):
    """A provider request failed at the transport level or with a non-2xx status."""


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


class ChatGPTClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str | None,
        *,
        token_url: str = CHATGPT_TOKEN_URL,
        api_base: str = CHATGPT_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self._timeout = httpx.Timeout(HTTP_TIMEOUT_SECONDS, connect=HTTP_CONNECT_TIMEOUT_SECONDS)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """
        Exchange an authorization code for tokens (form-encoded POST).

        Raises:
            TokenExchangeError: On transport failure, non-2xx status or a body
                without an access token
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret or "",
        }
        async with self._client() as client:
            try:
                response = await client.post(
                    self.token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                )
            except httpx.RequestError as e:
                logger.error("Token exchange request failed: %s", type(e).__name__)
                raise TokenExchangeError() from e

        if not response.is_success:
            logger.warning(
                "Token exchange rejected: status=%d body=%s",
                response.status_code,
                redact(response.text[:200]),
            )
            raise TokenExchangeError()

        try:
            body = response.json()
            access_token = body["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise TokenExchangeError("Token response missing access_token") from e

        return TokenSet(
            access_token=access_token,
            refresh_token=body.get("refresh_token"),
            expires_in=body.get("expires_in"),
        )

    async def _get(self, path: str, access_token: str) -> Any:
        async with self._client() as client:
            try:
                response = await client.get(
                    f"{self.api_base}{path}",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.RequestError as e:
                raise ProviderRequestError(f"Request to {path} failed: {type(e).__name__}") from e

        if response.status_code == 401:
            raise ProviderUnauthorized()
        if not response.is_success:
            raise ProviderRequestError(f"{path} returned HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ProviderRequestError(f"{path} returned invalid JSON") from e

    async def list_conversations(self, access_token: str) -> list[dict[str, Any]]:
        """
        Fetch the remote conversation index.

        Raises:
            ProviderUnauthorized: On HTTP 401
            ProviderRequestError: On any other failure
        """
        body = await self._get("/conversations", access_token)
        items = body.get("items", []) if isinstance(body, dict) else []
        return [item for item in items if isinstance(item, dict)]

    async def get_conversation(self, access_token: str, conversation_id: str) -> dict[str, Any]:
        body = await self._get(f"/conversations/{conversation_id}", access_token)
        if not isinstance(body, dict):
            raise ProviderRequestError(f"Conversation {conversation_id} is not an object")
        return body
