"""Newsletter and alpha-waitlist signup endpoints"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import Field

from pslang.api.dependencies import get_signup_repository, require_email_client
from pslang.api.middleware.auth import get_optional_user
from pslang.api.models import ApiModel
from pslang.email.audience import is_valid_email, signup_metadata
from pslang.email.sender import ContactOutcome, ResendClient, mask_email
from pslang.errors import BadRequest
from pslang.identity.provider import IdentityUser
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter, log_event
from pslang.storage.models import SignupKind
from pslang.storage.signup_repository import SignupRepository

router = APIRouter(tags=["signups"])
logger = get_logger(__name__)


class NewsletterRequest(ApiModel):
    email: str | None = Field(None, max_length=320)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    interests: list[str] = Field(default_factory=list, max_length=20)
    source: str | None = Field(None, max_length=100)


class AlphaSignupRequest(ApiModel):
    email: str | None = Field(None, max_length=320)
    name: str | None = Field(None, max_length=100)


class SignupMetadataView(ApiModel):
    signup_source: str
    email_domain: str
    user_segment: str
    intent: str
    interests: list[str]
    timestamp: str
    project: str
    version: str


class SignupResponse(ApiModel):
    success: bool = True
    message: str
    metadata: SignupMetadataView


@router.post("/api/newsletter", response_model=SignupResponse)
async def subscribe_newsletter(
    request: NewsletterRequest,
    user: IdentityUser | None = Depends(get_optional_user),
    email_client: ResendClient = Depends(require_email_client),
    signups: SignupRepository = Depends(get_signup_repository),
) -> SignupResponse:
    """
    Side Effects:
        - Creates or updates a Resend audience contact
        - Inserts or updates one row in signups
    """
    if not is_valid_email(request.email):
        raise BadRequest("Valid email is required")
    email = request.email.strip()

    metadata = signup_metadata(email, SignupKind.NEWSLETTER, request.interests, request.source)
    outcome = await email_client.add_or_update_contact(
        email,
        first_name=request.first_name or "PS-LANG",
        last_name=request.last_name or "Subscriber",
        conflict_message="This email is already subscribed!",
        update_first_name=request.first_name,
        update_last_name=request.last_name,
    )
    signups.upsert(
        email,
        SignupKind.NEWSLETTER,
        user_segment=metadata.user_segment,
        intent=metadata.intent,
        name=" ".join(part for part in (request.first_name, request.last_name) if part) or None,
        user_id=user.id if user else None,
    )

    counter(f"signups.newsletter.{outcome.value}")
    log_event(
        "signups.newsletter",
        email=mask_email(email),
        outcome=outcome.value,
        user_segment=metadata.user_segment,
        intent=metadata.intent,
    )
    message = (
        "Successfully subscribed to PS-LANG updates!"
        if outcome is ContactOutcome.CREATED
        else "Successfully updated your subscription!"
    )
    return SignupResponse(message=message, metadata=SignupMetadataView.model_validate(metadata.to_dict()))


@router.post("/api/alpha-signup", response_model=SignupResponse)
async def join_alpha_waitlist(
    request: AlphaSignupRequest,
    user: IdentityUser | None = Depends(get_optional_user),
    email_client: ResendClient = Depends(require_email_client),
    signups: SignupRepository = Depends(get_signup_repository),
) -> SignupResponse:
    """
    Side Effects:
        - Creates or updates a Resend audience contact
        - Inserts or updates one row in signups
    """
    if not is_valid_email(request.email):
        raise BadRequest("Valid email is required")
    email = request.email.strip()

    metadata = signup_metadata(email, SignupKind.ALPHA)
    outcome = await email_client.add_or_update_contact(
        email,
        first_name=request.name or "Alpha",
        last_name="Tester",
        conflict_message="This email is already on the waitlist!",
        update_first_name=request.name,
    )
    signups.upsert(
        email,
        SignupKind.ALPHA,
        user_segment=metadata.user_segment,
        intent=metadata.intent,
        name=request.name,
        user_id=user.id if user else None,
    )

    counter(f"signups.alpha.{outcome.value}")
    log_event("signups.alpha", email=mask_email(email), outcome=outcome.value)
    message = (
        "Successfully joined alpha waitlist!"
        if outcome is ContactOutcome.CREATED
        else "You're already on the waitlist!"
    )
    return SignupResponse(message=message, metadata=SignupMetadataView.model_validate(metadata.to_dict()))
