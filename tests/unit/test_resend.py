"""Unit tests for the Resend email client

Tests cover:
- Sending an email
- Contact create, existing contact update, conflict
- Upstream failures and missing configuration
- Email masking for logs
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from pslang.email.sender import ContactOutcome, ResendClient, mask_email
from pslang.errors import ConfigurationError, Conflict, UpstreamError


class FakeResend:
    def __init__(self, create_status: int = 200, update_status: int = 200, send_status: int = 200):
        self.create_status = create_status
        self.update_status = update_status
        self.send_status = send_status
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/emails":
            return httpx.Response(self.send_status, json={"id": "email_1"})
        if request.method == "POST":
            if self.create_status == 409:
                return httpx.Response(409, json={"message": "Contact already exists"})
            return httpx.Response(self.create_status, json={"id": "contact_1"})
        return httpx.Response(self.update_status, json={"id": "contact_1"})

    def client(self, audience_id: str | None = "aud_1") -> ResendClient:
        return ResendClient(
            "re_test_key",
            audience_id=audience_id,
            sender="PS-LANG <noreply@ps-lang.dev>",
            transport=httpx.MockTransport(self.handler),
        )


def test_send_email():
    fake = FakeResend()

    message_id = asyncio.run(fake.client().send_email("team@example.com", "Hi", "<p>x</p>"))

    assert message_id == "email_1"
    request = fake.requests[0]
    assert request.headers["Authorization"] == "Bearer re_test_key"
    assert json.loads(request.content) == {
        "from": "PS-LANG <noreply@ps-lang.dev>",
        "to": ["team@example.com"],
        "subject": "Hi",
        "html": "<p>x</p>",
    }


def test_send_email_failure():
    with pytest.raises(UpstreamError):
        asyncio.run(FakeResend(send_status=500).client().send_email("a@b.co", "s", "h"))


def test_new_contact_created():
    fake = FakeResend()

    outcome = asyncio.run(fake.client().add_or_update_contact("new@example.com", "Ada", "Lovelace"))

    assert outcome is ContactOutcome.CREATED
    assert fake.requests[0].url.path == "/audiences/aud_1/contacts"


def test_existing_contact_updated():
    """Test that a duplicate contact is updated with the supplied names only"""
    fake = FakeResend(create_status=409)

    outcome = asyncio.run(
        fake.client().add_or_update_contact(
            "old@example.com", "PS-LANG", "Subscriber", update_first_name="Ada"
        )
    )

    assert outcome is ContactOutcome.UPDATED
    update = fake.requests[1]
    assert update.method == "PATCH"
    assert update.url.path == "/audiences/aud_1/contacts/old@example.com"
    assert json.loads(update.content) == {"first_name": "Ada"}


def test_existing_contact_update_fails():
    """Test that a failed update of an existing contact is a conflict"""
    fake = FakeResend(create_status=409, update_status=500)

    with pytest.raises(Conflict) as exc_info:
        asyncio.run(
            fake.client().add_or_update_contact(
                "old@example.com", conflict_message="This email is already on the waitlist!"
            )
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "This email is already on the waitlist!"


def test_create_failure_is_upstream_error():
    with pytest.raises(UpstreamError):
        asyncio.run(FakeResend(create_status=422).client().add_or_update_contact("x@example.com"))


def test_missing_audience():
    with pytest.raises(ConfigurationError):
        asyncio.run(FakeResend().client(audience_id=None).add_or_update_contact("x@example.com"))


def test_from_env_requires_key():
    with pytest.raises(ConfigurationError):
        ResendClient.from_env()


def test_mask_email():
    assert mask_email("jane.doe@example.com") == "ja******@example.com"
    assert mask_email("a@example.com") == "a@example.com"
