"""
Consent signals and consent-record rules.

The consent flag itself is owned by the browser (the ps_lang_consent cookie).
This module parses it, applies the Global Privacy Control rule, and computes
expiry and renewal for the audit trail.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta
from enum import Enum
from http.cookies import CookieError, SimpleCookie

from pslang.config import CONSENT_COOKIE_NAME, CONSENT_RENEWAL_WINDOW_DAYS, CONSENT_VALIDITY_DAYS
from pslang.storage.models import GranularConsent, utc_now


class ConsentStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


class ConsentAction(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UPDATED = "updated"
    REVOKED = "revoked"


def parse_status(value: str | None) -> ConsentStatus | None:
    if value is None:
        return None
    try:
        return ConsentStatus(value.strip().lower())
    except ValueError:
        return None


def consent_from_cookie(cookie_header: str | None) -> ConsentStatus | None:
    """Read ps_lang_consent from a Cookie header; None if absent or unreadable."""
    if not cookie_header:
        return None
    cookies = SimpleCookie()
    try:
        cookies.load(cookie_header)
    except CookieError:
        return None
    morsel = cookies.get(CONSENT_COOKIE_NAME)
    return parse_status(morsel.value) if morsel else None


def gpc_signal(sec_gpc: str | None, dnt: str | None = None) -> bool:
    """True when the browser sends Global Privacy Control or Do Not Track."""
    return (sec_gpc or "").strip() == "1" or (dnt or "").strip() == "1"


def effective_status(status: ConsentStatus | None, gpc_detected: bool) -> ConsentStatus:
    """
    Final consent status.

    No answer counts as denied. GPC turns anything short of an explicit
    grant into a denial.
    """
    if status is ConsentStatus.GRANTED:
        return ConsentStatus.GRANTED
    if gpc_detected:
        return ConsentStatus.DENIED
    return status or ConsentStatus.DENIED


def effective_granular(status: ConsentStatus, granular: GranularConsent) -> GranularConsent:
    """Denied consent switches every category off."""
    if status is ConsentStatus.DENIED:
        return GranularConsent()
    return granular


def consent_expiry(recorded_at: datetime | None = None) -> datetime:
    return (recorded_at or utc_now()) + timedelta(days=CONSENT_VALIDITY_DAYS)


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    return (now or utc_now()) >= expires_at


def needs_renewal(expires_at: datetime, now: datetime | None = None) -> bool:
    """True once within the renewal window before expiry, or after it."""
    return (now or utc_now()) >= expires_at - timedelta(days=CONSENT_RENEWAL_WINDOW_DAYS)


def hash_ip(ip_address: str | None) -> str | None:
    """Pseudonymize an IP address for the audit trail."""
    if not ip_address:
        return None
    return hashlib.sha256(ip_address.strip().encode()).hexdigest()[:16]
