"""
Admin API endpoints (super admin only).

Provides endpoints for:
- Listing users with their resolved roles
- Assigning a role to another user
- Diagnosing a user across the identity provider and local signups
- Checking a user's email verification state
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from pslang.api.dependencies import get_signup_repository
from pslang.api.middleware.auth import get_identity_provider, require_super_admin
from pslang.api.models import ApiModel
from pslang.config import ADMIN_USER_LIST_LIMIT
from pslang.errors import BadRequest, ConfigurationError, NotFound
from pslang.identity.provider import IdentityProvider, IdentityUser
from pslang.identity.roles import get_user_role, parse_role
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import log_event
from pslang.storage.models import SignupKind
from pslang.storage.signup_repository import SignupRepository

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class AdminUserView(ApiModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: str
    created_at: int | None = None
    last_sign_in_at: int | None = None


class UserListResponse(ApiModel):
    users: list[AdminUserView]


class UpdateRoleRequest(ApiModel):
    user_id: str | None = Field(None, max_length=100)
    role: str | None = Field(None, max_length=50)


class UpdateRoleResponse(ApiModel):
    success: bool = True
    role: str


class VerificationRequest(ApiModel):
    email: str | None = Field(None, max_length=320)


class VerificationResponse(ApiModel):
    message: str
    user_id: str
    verified: bool


def _provider(provider: IdentityProvider | None) -> IdentityProvider:
    if provider is None:
        raise ConfigurationError("Authentication not configured")
    return provider


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/users", response_model=UserListResponse)
async def list_users(
    admin: IdentityUser = Depends(require_super_admin),
    provider: IdentityProvider | None = Depends(get_identity_provider),
) -> UserListResponse:
    """Newest users first, with their resolved role."""
    users = await _provider(provider).list_users(limit=ADMIN_USER_LIST_LIMIT, order_by="-created_at")
    return UserListResponse(
        users=[
            AdminUserView(
                id=u.id,
                email=u.email,
                first_name=u.first_name,
                last_name=u.last_name,
                role=get_user_role(u).value,
                created_at=u.created_at,
                last_sign_in_at=u.last_sign_in_at,
            )
            for u in users
        ]
    )


@router.post("/update-role", response_model=UpdateRoleResponse)
async def update_role(
    request: UpdateRoleRequest,
    admin: IdentityUser = Depends(require_super_admin),
    provider: IdentityProvider | None = Depends(get_identity_provider),
) -> UpdateRoleResponse:
    """
    Side Effects:
        - Writes the role into the target user's public metadata
    """
    if not request.user_id or not request.role:
        raise BadRequest("Missing userId or role")
    role = parse_role(request.role)
    if role is None:
        raise BadRequest(f"Invalid role: {request.role}")
    if request.user_id == admin.id:
        raise BadRequest("Cannot change your own role")

    await _provider(provider).update_metadata(request.user_id, {"role": role.value})
    log_event("admin.role_updated", admin_id=admin.id, user_id=request.user_id, role=role.value)
    return UpdateRoleResponse(role=role.value)


@router.get("/diagnose-user")
async def diagnose_user(
    email: str | None = Query(None, max_length=320),
    admin: IdentityUser = Depends(require_super_admin),
    provider: IdentityProvider | None = Depends(get_identity_provider),
    signups: SignupRepository = Depends(get_signup_repository),
) -> dict[str, object]:
    """Where a user exists: identity provider, alpha waitlist, both or neither."""
    if not email:
        raise BadRequest("Email parameter required")

    matches = await _provider(provider).list_users(limit=1, email_address=[email])
    found = matches[0] if matches else None
    signup = signups.find(email, SignupKind.ALPHA)

    return {
        "email": email,
        "identity": {
            "found": found is not None,
            "userId": found.id if found else None,
            "emailVerified": found.email_verified if found else None,
            "createdAt": found.created_at if found else None,
        },
        "signup": {
            "found": signup is not None,
            "userId": signup.user_id if signup else None,
            "signupDate": signup.created_at.isoformat() if signup else None,
        },
        "needsLink": found is not None and signup is not None and not signup.user_id,
    }


@router.post("/verification-status", response_model=VerificationResponse)
async def verification_status(
    request: VerificationRequest,
    admin: IdentityUser = Depends(require_super_admin),
    provider: IdentityProvider | None = Depends(get_identity_provider),
) -> VerificationResponse:
    if not request.email:
        raise BadRequest("Email required")

    matches = await _provider(provider).list_users(limit=1, email_address=[request.email])
    if not matches:
        raise NotFound("User not found. They need to complete the signup form again.")

    user = matches[0]
    if user.email_verified:
        return VerificationResponse(message="Email already verified", user_id=user.id, verified=True)
    return VerificationResponse(
        message=(
            "User exists but not verified. "
            "They should check their email for the verification code."
        ),
        user_id=user.id,
        verified=False,
    )

