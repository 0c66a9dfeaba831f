"""Current-user endpoints: profile with role, and role sync from SUPER_ADMIN_EMAILS"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from pslang.api.middleware.auth import forget_user, get_current_user, get_identity_provider
from pslang.api.models import ApiModel
from pslang.config import super_admin_emails
from pslang.errors import BadRequest, ConfigurationError
from pslang.identity.provider import IdentityProvider, IdentityUser
from pslang.identity.roles import (
    ROLE_DISPLAY_NAMES,
    UserRole,
    can_access_theme_settings,
    get_user_role,
    parse_role,
)
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import log_event

router = APIRouter(prefix="/api/user", tags=["user"])
logger = get_logger(__name__)


class MeResponse(ApiModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: str
    role_display_name: str
    can_access_theme_settings: bool


class SyncRoleResponse(ApiModel):
    synced: bool
    role: str
    message: str


@router.get("/me", response_model=MeResponse)
async def me(user: IdentityUser = Depends(get_current_user)) -> MeResponse:
    role = get_user_role(user)
    return MeResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=role.value,
        role_display_name=ROLE_DISPLAY_NAMES[role],
        can_access_theme_settings=can_access_theme_settings(role),
    )


@router.post("/sync-role", response_model=SyncRoleResponse)
async def sync_role(
    user: IdentityUser = Depends(get_current_user),
    provider: IdentityProvider | None = Depends(get_identity_provider),
) -> SyncRoleResponse:
    """
    Persist super_admin into the identity provider for SUPER_ADMIN_EMAILS.

    Side Effects:
        - May update the user's public metadata
    """
    if not user.email:
        raise BadRequest("No email found")
    if provider is None:
        raise ConfigurationError("Authentication not configured")

    stored = parse_role(user.public_metadata.get("role")) or UserRole.USER
    if user.email.lower() in super_admin_emails() and stored is not UserRole.SUPER_ADMIN:
        await provider.update_metadata(
            user.id, {**user.public_metadata, "role": UserRole.SUPER_ADMIN.value}
        )
        forget_user(user.id)
        log_event("user.role_synced", user_id=user.id, role=UserRole.SUPER_ADMIN.value)
        return SyncRoleResponse(
            synced=True,
            role=UserRole.SUPER_ADMIN.value,
            message="Role synced from environment variable to identity provider metadata",
        )

    return SyncRoleResponse(synced=False, role=stored.value, message="No sync needed")
