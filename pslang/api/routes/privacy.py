"""
Privacy API endpoints.

Provides endpoints for:
- Resolving what instrumentation the calling visitor allows (tier gate)
- Reading and changing the data-retention tier
- Recording consent decisions and reading the audit trail
- Exporting and erasing personal data, and deleting the account
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, Response

from pslang.api.dependencies import (
    get_consent_repository,
    get_data_rights,
    get_preferences_repository,
)
from pslang.api.middleware.auth import (
    forget_user,
    get_current_user,
    get_identity_provider,
    get_optional_user,
)
from pslang.api.models import ApiModel
from pslang.errors import BadRequest, ConfigurationError
from pslang.identity.provider import IdentityProvider, IdentityUser
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter, log_event
from pslang.privacy.consent import (
    ConsentAction,
    ConsentStatus,
    consent_expiry,
    consent_from_cookie,
    effective_granular,
    effective_status,
    gpc_signal,
    hash_ip,
    needs_renewal,
    parse_status,
)
from pslang.privacy.gate import DirectiveRecorder, TierGate, VisitorIdentity
from pslang.privacy.rights import DataCategory, DataRights
from pslang.privacy.tiers import (
    DEFAULT_TIER,
    TIER_DISPLAY_NAMES,
    Tier,
    TierPermissions,
    parse_tier,
    permissions_for,
)
from pslang.storage.consent_repository import ConsentRepository
from pslang.storage.models import ConsentRecord, GranularConsent, utc_now
from pslang.storage.preferences_repository import PreferencesRepository

router = APIRouter(tags=["privacy"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class PermissionsView(ApiModel):
    allow_analytics: bool
    allow_session_replay: bool
    allow_performance_monitoring: bool
    allow_behavior_tracking: bool
    allow_error_logging: bool
    allow_ai_training: bool
    retention_days: int
    anonymize_after_days: int
    aggregate_after_days: int | None = None

    @classmethod
    def from_permissions(cls, permissions: TierPermissions) -> PermissionsView:
        return cls(
            allow_analytics=permissions.allow_analytics,
            allow_session_replay=permissions.allow_session_replay,
            allow_performance_monitoring=permissions.allow_performance_monitoring,
            allow_behavior_tracking=permissions.allow_behavior_tracking,
            allow_error_logging=permissions.allow_error_logging,
            allow_ai_training=permissions.allow_ai_training,
            retention_days=permissions.retention_days,
            anonymize_after_days=permissions.anonymize_after_days,
            aggregate_after_days=permissions.aggregate_after_days,
        )


class GateResponse(ApiModel):
    signed_in: bool
    tier: str | None
    consent: str
    gpc_detected: bool
    analytics_allowed: bool
    session_replay_allowed: bool
    directive: str
    reason: str
    permissions: PermissionsView


class TierResponse(ApiModel):
    tier: str
    display_name: str
    is_default: bool
    previous_tier: str | None = None
    tier_changed_at: datetime | None = None
    research_contributor_since: datetime | None = None
    permissions: PermissionsView


class TierUpdateRequest(ApiModel):
    tier: str


class ConsentSaveRequest(ApiModel):
    session_id: str
    action: ConsentAction
    status: ConsentStatus
    granular: GranularConsent
    gpc_detected: bool = False
    user_agent: str | None = None
    referrer: str | None = None


class ConsentSaveResponse(ApiModel):
    success: bool = True
    consent_id: str
    status: str
    granular: GranularConsent
    gpc_applied: bool
    expires_at: datetime


class ConsentRecordView(ApiModel):
    id: str
    session_id: str
    action: str
    status: str
    granular: GranularConsent
    gpc_detected: bool
    created_at: datetime
    expires_at: datetime


class ConsentHistoryResponse(ApiModel):
    records: list[ConsentRecordView]
    needs_renewal: bool


class DeleteDataRequest(ApiModel):
    confirm_email: str | None = None
    delete_type: str = DataCategory.ALL.value


class DeleteDataResponse(ApiModel):
    success: bool
    message: str
    delete_type: str
    deleted: list[str]
    errors: list[dict[str, str]]
    next_steps: list[str]


# ============================================================================
# Tier Gate
# ============================================================================


def _visitor(user: IdentityUser | None, preferences: PreferencesRepository) -> VisitorIdentity:
    if user is None:
        return VisitorIdentity.anonymous()
    try:
        preference = preferences.get_preference(user.id)
    except sqlite3.Error as e:
        # Unresolved lookup: the gate fails closed for this request
        logger.warning("Tier lookup failed for user %s: %s", user.id, e)
        return VisitorIdentity.member(user.id, None)
    tier = parse_tier(preference.tier) if preference else DEFAULT_TIER
    return VisitorIdentity.member(user.id, tier)


@router.get("/api/privacy/permissions", response_model=GateResponse)
async def get_permissions(
    request: Request,
    consent: str | None = Query(None, description="granted or denied; defaults to the cookie"),
    user: IdentityUser | None = Depends(get_optional_user),
    preferences: PreferencesRepository = Depends(get_preferences_repository),
) -> GateResponse:
    """
    What analytics and session replay may do for the calling visitor.

    The page applies the returned directive to its analytics client.
    """
    if consent is not None:
        status = parse_status(consent)
    else:
        status = consent_from_cookie(request.headers.get("cookie"))
    gpc = gpc_signal(request.headers.get("Sec-GPC"), request.headers.get("DNT"))
    final_status = effective_status(status, gpc)

    recorder = DirectiveRecorder()
    decision = TierGate(recorder).update(
        _visitor(user, preferences),
        consent_granted=final_status is ConsentStatus.GRANTED,
    )

    return GateResponse(
        signed_in=user is not None,
        tier=decision.tier.value if decision.tier else None,
        consent=final_status.value,
        gpc_detected=gpc,
        analytics_allowed=decision.analytics_allowed,
        session_replay_allowed=decision.session_replay_allowed,
        directive=recorder.latest.value if recorder.latest else decision.directive.value,
        reason=decision.reason.value,
        permissions=PermissionsView.from_permissions(decision.permissions),
    )


# ============================================================================
# Retention Tier
# ============================================================================


def _tier_response(user_id: str, preferences: PreferencesRepository) -> TierResponse:
    preference = preferences.get_preference(user_id)
    tier = (parse_tier(preference.tier) if preference else None) or DEFAULT_TIER
    return TierResponse(
        tier=tier.value,
        display_name=TIER_DISPLAY_NAMES[tier],
        is_default=preference is None,
        previous_tier=preference.previous_tier if preference else None,
        tier_changed_at=preference.tier_changed_at if preference else None,
        research_contributor_since=preference.research_contributor_since if preference else None,
        permissions=PermissionsView.from_permissions(permissions_for(tier)),
    )


@router.get("/api/privacy/tier", response_model=TierResponse)
async def get_tier(
    user: IdentityUser = Depends(get_current_user),
    preferences: PreferencesRepository = Depends(get_preferences_repository),
) -> TierResponse:
    return _tier_response(user.id, preferences)


@router.put("/api/privacy/tier", response_model=TierResponse)
async def set_tier(
    request: TierUpdateRequest,
    user: IdentityUser = Depends(get_current_user),
    preferences: PreferencesRepository = Depends(get_preferences_repository),
) -> TierResponse:
    tier = parse_tier(request.tier)
    if tier is None:
        valid = ", ".join(t.value for t in Tier)
        raise BadRequest(f"Invalid tier. Expected one of: {valid}")
    preferences.set_tier(user.id, tier)
    return _tier_response(user.id, preferences)


# ============================================================================
# Consent
# ============================================================================


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/api/consent/save", response_model=ConsentSaveResponse)
async def save_consent(
    body: ConsentSaveRequest,
    request: Request,
    user: IdentityUser | None = Depends(get_optional_user),
    consent: ConsentRepository = Depends(get_consent_repository),
) -> ConsentSaveResponse:
    """
    Append a consent decision to the audit trail.

    Side Effects:
        - Inserts one row into consent_history (IP stored only as a hash)
    """
    gpc = body.gpc_detected or gpc_signal(request.headers.get("Sec-GPC"))
    status = effective_status(body.status, gpc)
    granular = effective_granular(status, body.granular)

    record = ConsentRecord(
        id=str(uuid.uuid4()),
        user_id=user.id if user else None,
        session_id=body.session_id,
        action=body.action.value,
        status=status.value,
        granular=granular,
        gpc_detected=gpc,
        ip_hash=hash_ip(_client_ip(request)),
        user_agent=body.user_agent or request.headers.get("User-Agent"),
        referrer=body.referrer or request.headers.get("Referer"),
        expires_at=consent_expiry(),
    )
    consent.save(record)

    counter(f"privacy.consent.{status.value}")
    log_event(
        "privacy.consent_saved",
        user_id=record.user_id,
        action=record.action,
        status=record.status,
        gpc=gpc,
    )
    return ConsentSaveResponse(
        consent_id=record.id,
        status=record.status,
        granular=granular,
        gpc_applied=gpc and body.status is not status,
        expires_at=record.expires_at,
    )


@router.get("/api/consent/history", response_model=ConsentHistoryResponse)
async def consent_history(
    user: IdentityUser = Depends(get_current_user),
    consent: ConsentRepository = Depends(get_consent_repository),
) -> ConsentHistoryResponse:
    records = consent.history_for_user(user.id)
    return ConsentHistoryResponse(
        records=[
            ConsentRecordView(
                id=r.id,
                session_id=r.session_id,
                action=r.action,
                status=r.status,
                granular=r.granular,
                gpc_detected=r.gpc_detected,
                created_at=r.created_at,
                expires_at=r.expires_at,
            )
            for r in records
        ],
        needs_renewal=not records or needs_renewal(records[0].expires_at),
    )


# ============================================================================
# Data Subject Rights
# ============================================================================


@router.get("/api/privacy/export")
async def export_data(
    export_format: Literal["json", "csv"] = Query("json", alias="format"),
    user: IdentityUser = Depends(get_current_user),
    rights: DataRights = Depends(get_data_rights),
) -> Response:
    """Download everything stored for the caller as an attachment."""
    data = rights.export(user.id, user.email, export_format)
    stamp = int(utc_now().timestamp() * 1000)
    filename = f"ps-lang-data-export-{user.id}-{stamp}.{export_format}"

    if export_format == "csv":
        content = DataRights.to_csv(data)
        media_type = "text/csv"
    else:
        content = json.dumps(data, indent=2)
        media_type = "application/json"

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/api/privacy/delete-data", response_model=DeleteDataResponse)
async def delete_data(
    request: DeleteDataRequest,
    user: IdentityUser = Depends(get_current_user),
    rights: DataRights = Depends(get_data_rights),
) -> DeleteDataResponse:
    """
    Right to erasure for selected data categories.

    Side Effects:
        - Deletes the caller's rows in the selected categories
    """
    if not request.confirm_email:
        raise BadRequest("Email confirmation required for data deletion")
    if request.confirm_email.strip().lower() != user.email.lower():
        raise BadRequest("Email confirmation does not match your account")
    try:
        category = DataCategory(request.delete_type)
    except ValueError:
        valid = ", ".join(c.value for c in DataCategory)
        raise BadRequest(f"Invalid delete type. Expected one of: {valid}") from None

    logger.info("Data deletion request for user %s (%s)", user.id, category.value)
    result = rights.delete(user.id, user.email, category)
    return DeleteDataResponse(
        success=not result.errors,
        message=f"Deleted user data for {user.id}",
        delete_type=category.value,
        deleted=result.deleted,
        errors=result.errors,
        next_steps=result.next_steps,
    )


@router.delete("/api/privacy/account")
async def delete_account(
    user: IdentityUser = Depends(get_current_user),
    rights: DataRights = Depends(get_data_rights),
    provider: IdentityProvider | None = Depends(get_identity_provider),
) -> dict[str, object]:
    """
    Delete all local data, then the identity provider account.

    Side Effects:
        - Deletes every row owned by the caller
        - Deletes the user from the identity provider
    """
    if provider is None:
        raise ConfigurationError("Authentication not configured")

    result = rights.delete(user.id, user.email, DataCategory.ALL)
    await provider.delete_user(user.id)
    forget_user(user.id)

    log_event("privacy.account_deleted", user_id=user.id, local_errors=len(result.errors))
    return {"success": True, "message": "Account deleted successfully", "deleted": result.deleted}
