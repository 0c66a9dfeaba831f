"""Signup segmentation metadata for newsletter and alpha-waitlist contacts."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from pslang.storage.models import SignupKind, utc_now

PROJECT = "ps-lang"
PROJECT_VERSION = "v0.1.0-alpha.1"

CONSUMER_DOMAINS = ("gmail.com", "yahoo.com")

NEWSLETTER_SOURCE = "newsletter_modal"
ALPHA_SOURCE = "alpha_waitlist"


def is_valid_email(email: str | None) -> bool:
    return bool(email) and "@" in email


def email_domain(email: str) -> str:
    return email.split("@")[1] if "@" in email else ""


def user_segment(domain: str) -> str:
    domain = domain.lower()
    return "consumer" if any(consumer in domain for consumer in CONSUMER_DOMAINS) else "business"


@dataclass(frozen=True)
class SignupMetadata:
    signup_source: str
    email_domain: str
    user_segment: str
    intent: str
    interests: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())
    project: str = PROJECT
    version: str = PROJECT_VERSION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def signup_metadata(
    email: str,
    kind: SignupKind,
    interests: list[str] | None = None,
    source: str | None = None,
) -> SignupMetadata:
    domain = email_domain(email)
    if kind is SignupKind.ALPHA:
        return SignupMetadata(
            signup_source=ALPHA_SOURCE,
            email_domain=domain,
            user_segment=user_segment(domain),
            intent="alpha_tester",
        )
    return SignupMetadata(
        signup_source=source or NEWSLETTER_SOURCE,
        email_domain=domain,
        user_segment=user_segment(domain),
        intent="high_intent" if interests else "general_interest",
        interests=list(interests or []),
    )
