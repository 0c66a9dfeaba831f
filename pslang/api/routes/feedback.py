"""Product feedback and feature-request endpoints"""

from __future__ import annotations

from html import escape

from fastapi import APIRouter, Depends
from pydantic import Field

from pslang.api.dependencies import get_email_client, get_feedback_repository, require_email_client
from pslang.api.middleware.auth import get_optional_user
from pslang.api.models import ApiModel, SuccessResponse
from pslang.config import feedback_recipient
from pslang.email.audience import is_valid_email
from pslang.email.sender import ResendClient, mask_email
from pslang.errors import BadRequest, UpstreamError
from pslang.identity.provider import IdentityUser
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter, log_event
from pslang.storage.models import FeedbackEntry, utc_now
from pslang.storage.signup_repository import FeedbackRepository

router = APIRouter(tags=["feedback"])
logger = get_logger(__name__)

FEEDBACK_SENDER = "PS-LANG Feedback <noreply@ps-lang.dev>"
MAX_FEEDBACK_LENGTH = 10_000
MAX_TITLE_LENGTH = 200


class FeedbackRequest(ApiModel):
    feedback: str | None = Field(None, max_length=MAX_FEEDBACK_LENGTH)
    feedback_type: str = Field("general", max_length=50)
    rating: int | None = Field(None, ge=1, le=5)
    version: str | None = Field(None, max_length=50)
    role: str | None = Field(None, max_length=100)
    email_updates: bool = False


def feedback_email(entry: FeedbackEntry, role: str | None, email_updates: bool) -> tuple[str, str]:
    """Subject and HTML body of the notification email. User text is escaped."""
    version = entry.version or "unknown"
    subject = f"PS-LANG {version} Feedback: {entry.feedback_type}"
    rating = f"{entry.rating}/5" if entry.rating is not None else "n/a"
    html = (
        "<h2>New Feedback Received</h2>"
        f"<p><strong>Version:</strong> {escape(version)}</p>"
        f"<p><strong>Role:</strong> {escape(role or 'n/a')}</p>"
        f"<p><strong>Type:</strong> {escape(entry.feedback_type or 'general')}</p>"
        f"<p><strong>Rating:</strong> {rating}</p>"
        f"<p><strong>Wants Email Updates:</strong> {'Yes' if email_updates else 'No'}</p>"
        "<h3>Feedback:</h3>"
        f"<p>{escape(entry.text).replace(chr(10), '<br>')}</p>"
        "<hr>"
        f'<p style="color: #666; font-size: 12px;">Submitted: {entry.created_at.isoformat()}</p>'
    )
    return subject, html


@router.post("/api/feedback", response_model=SuccessResponse)
async def submit_feedback(
    request: FeedbackRequest,
    user: IdentityUser | None = Depends(get_optional_user),
    feedback: FeedbackRepository = Depends(get_feedback_repository),
    email_client: ResendClient | None = Depends(get_email_client),
) -> SuccessResponse:
    """
    Store feedback and notify the team.

    Side Effects:
        - Inserts one row into feedback
        - Sends a notification email when Resend is configured
    """
    if not request.feedback or not request.feedback.strip():
        raise BadRequest("Feedback text is required")

    entry = feedback.add(
        request.feedback,
        user_id=user.id if user else None,
        email=user.email if user else None,
        feedback_type=request.feedback_type,
        rating=request.rating,
        version=request.version,
    )
    counter("feedback.submitted")

    if email_client is None:
        logger.warning("Email not configured; feedback %s stored without notification", entry.id)
    else:
        subject, html = feedback_email(entry, request.role, request.email_updates)
        await email_client.send_email(feedback_recipient(), subject, html, sender=FEEDBACK_SENDER)
        logger.info(
            "Feedback %s emailed (from %s)",
            entry.id,
            mask_email(entry.email) if entry.email else "anonymous",
        )

    return SuccessResponse(message="Feedback submitted successfully!")


class FeatureRequest(ApiModel):
    email: str | None = Field(None, max_length=320)
    name: str | None = Field(None, max_length=100)
    feature_type: str | None = Field(None, max_length=50)
    title: str | None = Field(None, max_length=MAX_TITLE_LENGTH)
    description: str | None = Field(None, max_length=MAX_FEEDBACK_LENGTH)


def feature_request_email(request: FeatureRequest, submitted_at: str) -> tuple[str, str]:
    title = request.title or ""
    html = (
        "<h2>Feature Request</h2>"
        f"<h1>{escape(title)}</h1>"
        f"<p><strong>From:</strong> {escape(request.name or 'n/a')} ({escape(request.email or '')})"
        "</p>"
        f"<p><strong>Request Type:</strong> {escape(request.feature_type or 'n/a')}</p>"
        f"<p><strong>Submitted:</strong> {submitted_at}</p>"
        "<h3>Description:</h3>"
        f"<p>{escape(request.description or '').replace(chr(10), '<br>')}</p>"
    )
    return f"Feature Request: {title}", html


@router.post("/api/feature-request", response_model=SuccessResponse)
async def submit_feature_request(
    request: FeatureRequest,
    email_client: ResendClient = Depends(require_email_client),
) -> SuccessResponse:
    """
    Email a feature request to the team. Nothing is stored.

    Raises:
        BadRequest: On a missing email, title or description
        UpstreamError: If the notification cannot be sent
    """
    if not is_valid_email(request.email):
        raise BadRequest("Valid email is required")
    if not (request.title or "").strip() or not (request.description or "").strip():
        raise BadRequest("Title and description are required")

    submitted_at = utc_now().isoformat()
    subject, html = feature_request_email(request, submitted_at)
    try:
        await email_client.send_email(feedback_recipient(), subject, html, sender=FEEDBACK_SENDER)
    except UpstreamError as e:
        logger.error("Feature request email failed: %s", e.message)
        raise UpstreamError("Failed to submit feature request. Please try again.") from e

    counter("feature_requests.submitted")
    log_event(
        "feature_requests.submitted",
        email=mask_email(request.email),
        feature_type=request.feature_type,
        title=request.title,
        submitted_at=submitted_at,
    )
    return SuccessResponse(message="Feature request submitted successfully!")
