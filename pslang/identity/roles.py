"""
Role-based access control.

Hierarchy (highest to lowest):
- super_admin: full access, can assign roles
- admin: journal and playground
- designer: theme customization, journal and playground
- reviewer: journal and playground (read-focused)
- alpha_tester: playground only
- user: public access only
"""

from __future__ import annotations

from enum import Enum

from pslang.config import super_admin_emails
from pslang.identity.provider import IdentityUser


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    DESIGNER = "designer"
    REVIEWER = "reviewer"
    ALPHA_TESTER = "alpha_tester"
    USER = "user"


ROLE_LEVELS: dict[UserRole, int] = {
    UserRole.SUPER_ADMIN: 100,
    UserRole.ADMIN: 80,
    UserRole.DESIGNER: 70,
    UserRole.REVIEWER: 60,
    UserRole.ALPHA_TESTER: 40,
    UserRole.USER: 0,
}

ROLE_DISPLAY_NAMES: dict[UserRole, str] = {
    UserRole.SUPER_ADMIN: "Super Admin",
    UserRole.ADMIN: "Admin",
    UserRole.DESIGNER: "Designer",
    UserRole.REVIEWER: "Reviewer",
    UserRole.ALPHA_TESTER: "Alpha Tester",
    UserRole.USER: "User",
}

_ADMINS = (UserRole.SUPER_ADMIN, UserRole.ADMIN)
_REVIEWERS = (*_ADMINS, UserRole.DESIGNER, UserRole.REVIEWER)

ROUTE_PERMISSIONS: dict[str, tuple[UserRole, ...]] = {
    "/journal/admin": _ADMINS,
    "/ps-journaling": _REVIEWERS,
    "/playground": (*_REVIEWERS, UserRole.ALPHA_TESTER),
    "/admin/roles": (UserRole.SUPER_ADMIN,),
    "/admin/data": _ADMINS,
    "/admin": _ADMINS,
    "/api/admin": (UserRole.SUPER_ADMIN,),
}

THEME_SETTINGS_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.DESIGNER, UserRole.ALPHA_TESTER)


def parse_role(value: object) -> UserRole | None:
    if not isinstance(value, str):
        return None
    try:
        return UserRole(value)
    except ValueError:
        return None


def get_user_role(user: IdentityUser | None) -> UserRole:
    """SUPER_ADMIN_EMAILS wins, then public_metadata.role, then user."""
    if user is None:
        return UserRole.USER
    if user.email and user.email.lower() in super_admin_emails():
        return UserRole.SUPER_ADMIN
    return parse_role(user.public_metadata.get("role")) or UserRole.USER


def has_required_role(role: UserRole | None, required: UserRole) -> bool:
    if role is None:
        return False
    return ROLE_LEVELS[role] >= ROLE_LEVELS[required]


def can_access_route(role: UserRole | None, route: str) -> bool:
    """Longest matching prefix decides; routes with no rule are open."""
    if role is None:
        return False
    match = next(
        (key for key in sorted(ROUTE_PERMISSIONS, key=len, reverse=True) if route.startswith(key)),
        None,
    )
    if match is None:
        return True
    return role in ROUTE_PERMISSIONS[match]


def can_access_theme_settings(role: UserRole | None) -> bool:
    return role in THEME_SETTINGS_ROLES
