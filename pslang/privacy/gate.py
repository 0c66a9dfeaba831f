"""
Tier gate for analytics and session replay.

Two layers decide whether instrumentation may run:

1. Consent: the visitor's explicit granted/denied choice.
2. Tier: the visitor's data-retention tier, which can only narrow what
   consent allows.

    analytics = consent AND permissions(tier).allow_analytics
    replay    = analytics AND permissions(tier).allow_session_replay

A signed-in visitor whose tier has not been resolved gets the restrictive
decision until the lookup completes.

The decision is pushed into an AnalyticsClient that the caller injects, so
enforcement never goes through global flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter
from pslang.privacy.tiers import (
    ANONYMOUS_DEFAULT_TIER,
    RESTRICTIVE_PERMISSIONS,
    Tier,
    TierPermissions,
    permissions_for,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class VisitorIdentity:
    """Who is visiting, and what we know of their tier so far."""

    signed_in: bool
    user_id: str | None = None
    tier: Tier | None = None

    @classmethod
    def anonymous(cls) -> VisitorIdentity:
        return cls(signed_in=False)

    @classmethod
    def member(cls, user_id: str, tier: Tier | None) -> VisitorIdentity:
        """A signed-in visitor; tier None means the stored record is not resolved."""
        return cls(signed_in=True, user_id=user_id, tier=tier)

    @property
    def tier_pending(self) -> bool:
        return self.signed_in and self.tier is None


class GateReason(str, Enum):
    ALLOWED = "allowed"
    CONSENT_DENIED = "consent_denied"
    TIER_RESTRICTED = "tier_restricted"
    REPLAY_RESTRICTED = "replay_restricted"
    TIER_PENDING = "tier_pending"


class Directive(str, Enum):
    ENABLE = "enable"
    DISABLE = "disable"
    DISABLE_REPLAY_ONLY = "disable_replay_only"


@dataclass(frozen=True)
class GateDecision:
    tier: Tier | None
    permissions: TierPermissions
    consent_granted: bool
    analytics_allowed: bool
    session_replay_allowed: bool
    reason: GateReason

    @property
    def directive(self) -> Directive:
        if not self.analytics_allowed:
            return Directive.DISABLE
        if not self.session_replay_allowed:
            return Directive.DISABLE_REPLAY_ONLY
        return Directive.ENABLE


class AnalyticsClient(Protocol):
    """Anything that can switch analytics instrumentation on and off."""

    def enable(self) -> None: ...

    def disable(self) -> None: ...

    def disable_replay_only(self) -> None: ...


def resolve_tier(identity: VisitorIdentity) -> Tier | None:
    """Tier that applies to identity, None while a member's tier is pending."""
    if not identity.signed_in:
        return ANONYMOUS_DEFAULT_TIER
    return identity.tier


def evaluate(identity: VisitorIdentity, consent_granted: bool) -> GateDecision:
    """
    Decide what instrumentation may run. Pure: no side effects.

    Consent is necessary but not sufficient; the tier can only narrow it.
    """
    tier = resolve_tier(identity)

    if tier is None:
        return GateDecision(
            tier=None,
            permissions=RESTRICTIVE_PERMISSIONS,
            consent_granted=consent_granted,
            analytics_allowed=False,
            session_replay_allowed=False,
            reason=GateReason.TIER_PENDING,
        )

    permissions = permissions_for(tier)
    analytics = consent_granted and permissions.allow_analytics
    replay = analytics and permissions.allow_session_replay

    if not consent_granted:
        reason = GateReason.CONSENT_DENIED
    elif not analytics:
        reason = GateReason.TIER_RESTRICTED
    elif not replay:
        reason = GateReason.REPLAY_RESTRICTED
    else:
        reason = GateReason.ALLOWED

    return GateDecision(
        tier=tier,
        permissions=permissions,
        consent_granted=consent_granted,
        analytics_allowed=analytics,
        session_replay_allowed=replay,
        reason=reason,
    )


def enforce(decision: GateDecision, client: AnalyticsClient) -> Directive:
    """
    Push a decision into an analytics client.

    Side Effects:
        - Calls exactly one of client.enable/disable/disable_replay_only
    """
    directive = decision.directive
    if directive is Directive.DISABLE:
        client.disable()
    elif directive is Directive.DISABLE_REPLAY_ONLY:
        client.disable_replay_only()
    else:
        client.enable()
    counter(f"privacy.gate.{directive.value}")
    return directive


class TierGate:
    """
    Continuous enforcement: call update() whenever identity or consent changes.

    A revocation is applied to the already-running client immediately, even
    if an earlier update had enabled it.
    """

    def __init__(self, client: AnalyticsClient) -> None:
        self._client = client
        self.last_decision: GateDecision | None = None

    def update(self, identity: VisitorIdentity, consent_granted: bool) -> GateDecision:
        decision = evaluate(identity, consent_granted)
        previous = self.last_decision
        enforce(decision, self._client)
        self.last_decision = decision

        if previous is not None and previous.directive != decision.directive:
            logger.info(
                "Analytics directive changed %s -> %s (%s)",
                previous.directive.value,
                decision.directive.value,
                decision.reason.value,
            )
        return decision


class DirectiveRecorder:
    """
    AnalyticsClient that records directives instead of calling a browser SDK.

    The API hands the recorded directives back to the page, which applies
    them to its analytics snippets.
    """

    def __init__(self) -> None:
        self.directives: list[Directive] = []

    def enable(self) -> None:
        self.directives.append(Directive.ENABLE)

    def disable(self) -> None:
        self.directives.append(Directive.DISABLE)

    def disable_replay_only(self) -> None:
        self.directives.append(Directive.DISABLE_REPLAY_ONLY)

    @property
    def latest(self) -> Directive | None:
        return self.directives[-1] if self.directives else None
