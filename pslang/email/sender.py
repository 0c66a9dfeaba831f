"""
Resend client for transactional email and audience contacts.

Talks to the Resend REST API with httpx. Nothing is retried: a failed send
is reported to the caller as an UpstreamError.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx

from pslang.config import (
    HTTP_CONNECT_TIMEOUT_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    RESEND_API_BASE,
    email_sender,
    resend_api_key,
    resend_audience_id,
)
from pslang.errors import ConfigurationError, Conflict, UpstreamError
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter
from pslang.utils.error_sanitizer import redact

logger = get_logger(__name__)


class ContactExistsError(UpstreamError):
    status_code = 409
    default_message = "Contact already exists"


class ContactOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


def mask_email(email: str) -> str:
    """Keep the first two characters of the local part for logs."""
    local, _, domain = email.partition("@")
    return f"{local[:2]}{'*' * max(len(local) - 2, 0)}@{domain}"


class ResendClient:
    def __init__(
        self,
        api_key: str,
        audience_id: str | None = None,
        sender: str | None = None,
        api_base: str = RESEND_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.audience_id = audience_id
        self.sender = sender or email_sender()
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self._timeout = httpx.Timeout(HTTP_TIMEOUT_SECONDS, connect=HTTP_CONNECT_TIMEOUT_SECONDS)

    @classmethod
    def from_env(cls) -> ResendClient:
        """
        Raises:
            ConfigurationError: If RESEND_API_KEY is not set
        """
        api_key = resend_api_key()
        if not api_key:
            raise ConfigurationError("Email service not configured")
        return cls(api_key=api_key, audience_id=resend_audience_id())

    async def _request(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport, headers=headers
        ) as client:
            try:
                response = await client.request(method, f"{self.api_base}{path}", json=payload)
            except httpx.RequestError as e:
                logger.error("Resend request failed: %s %s %s", method, path, type(e).__name__)
                raise UpstreamError("Email service unavailable") from e

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        if not response.is_success:
            message = str(body.get("message", "")) if isinstance(body, dict) else ""
            if response.status_code == 409 or "already exists" in message.lower():
                raise ContactExistsError()
            logger.warning(
                "Resend %s %s returned %d: %s",
                method,
                path,
                response.status_code,
                redact(message),
            )
            raise UpstreamError(f"Email service returned HTTP {response.status_code}")
        return body if isinstance(body, dict) else {}

    def _audience(self) -> str:
        if not self.audience_id:
            raise ConfigurationError("Email audience not configured")
        return self.audience_id

    async def send_email(self, to: str, subject: str, html: str, sender: str | None = None) -> str | None:
        """
        Send one email.

        Returns:
            The provider's message id

        Side Effects:
            - Sends an email through Resend
        """
        body = await self._request(
            "POST",
            "/emails",
            {"from": sender or self.sender, "to": [to], "subject": subject, "html": html},
        )
        counter("email.sent")
        return body.get("id")

    async def create_contact(
        self, email: str, first_name: str | None = None, last_name: str | None = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/audiences/{self._audience()}/contacts",
            {
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                "unsubscribed": False,
            },
        )

    async def update_contact(
        self, email: str, first_name: str | None = None, last_name: str | None = None
    ) -> dict[str, Any]:
        payload = {
            key: value
            for key, value in {"first_name": first_name, "last_name": last_name}.items()
            if value is not None
        }
        return await self._request(
            "PATCH",
            f"/audiences/{self._audience()}/contacts/{quote(email, safe='@')}",
            payload,
        )

    async def add_or_update_contact(
        self,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
        conflict_message: str = "This email is already subscribed!",
        update_first_name: str | None = None,
        update_last_name: str | None = None,
    ) -> ContactOutcome:
        """
        Create an audience contact; an existing contact is updated instead.

        Raises:
            Conflict: If the contact exists and the update fails
            UpstreamError: If creation fails for any other reason

        Side Effects:
            - Creates or updates one Resend contact
        """
        try:
            await self.create_contact(email, first_name, last_name)
            logger.info("Created audience contact %s", mask_email(email))
            return ContactOutcome.CREATED
        except ContactExistsError:
            pass

        try:
            await self.update_contact(email, update_first_name, update_last_name)
        except UpstreamError as e:
            logger.warning("Failed to update existing contact %s: %s", mask_email(email), e.message)
            raise Conflict(conflict_message) from e

        logger.info("Updated existing audience contact %s", mask_email(email))
        return ContactOutcome.UPDATED
