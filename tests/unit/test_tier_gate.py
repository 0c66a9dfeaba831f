"""Unit tests for privacy tiers and the analytics gate

Tests cover:
- Replay never granted without analytics, for every tier
- Effective analytics is consent AND tier permission
- Anonymous and signed-in scenarios
- Pending tier fails closed
- Directives pushed into an injected client, including revocation
"""

from __future__ import annotations

import pytest

from pslang.privacy.gate import (
    Directive,
    DirectiveRecorder,
    GateReason,
    TierGate,
    VisitorIdentity,
    enforce,
    evaluate,
)
from pslang.privacy.tiers import (
    PERMISSIONS,
    RESTRICTIVE_PERMISSIONS,
    Tier,
    TierPermissions,
    parse_tier,
    permissions_for,
)


@pytest.mark.parametrize("tier", list(Tier))
def test_replay_implies_analytics(tier):
    """Test that no tier grants session replay without analytics"""
    permissions = permissions_for(tier)
    if permissions.allow_session_replay:
        assert permissions.allow_analytics


def test_permissions_reject_replay_without_analytics():
    """Test that an inconsistent permission set cannot be built"""
    with pytest.raises(ValueError):
        TierPermissions(
            allow_analytics=False,
            allow_session_replay=True,
            allow_performance_monitoring=False,
            allow_behavior_tracking=False,
            allow_error_logging=True,
            allow_ai_training=False,
            retention_days=90,
            anonymize_after_days=30,
        )


@pytest.mark.parametrize("tier", list(Tier))
@pytest.mark.parametrize("consent", [True, False])
def test_effective_analytics_is_consent_and_tier(tier, consent):
    """Test that the gate is never wider than consent or tier alone"""
    decision = evaluate(VisitorIdentity.member("user_1", tier), consent)

    assert decision.analytics_allowed == (consent and PERMISSIONS[tier].allow_analytics)
    assert decision.session_replay_allowed == (
        decision.analytics_allowed and PERMISSIONS[tier].allow_session_replay
    )


def test_anonymous_visitor_consent_denied():
    """Test that an anonymous visitor without consent gets nothing"""
    decision = evaluate(VisitorIdentity.anonymous(), consent_granted=False)

    assert decision.analytics_allowed is False
    assert decision.session_replay_allowed is False
    assert decision.reason is GateReason.CONSENT_DENIED
    assert decision.directive is Directive.DISABLE


def test_anonymous_visitor_consent_granted_gets_standard():
    """Test that anonymous visitors are treated as standard tier"""
    decision = evaluate(VisitorIdentity.anonymous(), consent_granted=True)

    assert decision.tier is Tier.STANDARD
    assert decision.analytics_allowed is True
    assert decision.session_replay_allowed is False
    assert decision.directive is Directive.DISABLE_REPLAY_ONLY


def test_research_contributor_with_consent_gets_replay():
    """Test that research contributors who consent get analytics and replay"""
    decision = evaluate(VisitorIdentity.member("user_1", Tier.RESEARCH_CONTRIBUTOR), True)

    assert decision.analytics_allowed is True
    assert decision.session_replay_allowed is True
    assert decision.reason is GateReason.ALLOWED
    assert decision.directive is Directive.ENABLE


def test_essential_tier_overrides_consent():
    """Test that the essential tier narrows a granted consent"""
    decision = evaluate(VisitorIdentity.member("user_1", Tier.ESSENTIAL), True)

    assert decision.analytics_allowed is False
    assert decision.reason is GateReason.TIER_RESTRICTED


def test_pending_tier_fails_closed():
    """Test that an unresolved tier yields the restrictive decision"""
    decision = evaluate(VisitorIdentity.member("user_1", None), consent_granted=True)

    assert decision.tier is None
    assert decision.permissions == RESTRICTIVE_PERMISSIONS
    assert decision.analytics_allowed is False
    assert decision.session_replay_allowed is False
    assert decision.reason is GateReason.TIER_PENDING


def test_enforce_calls_exactly_one_method():
    """Test that enforce pushes a single directive into the client"""
    client = DirectiveRecorder()
    decision = evaluate(VisitorIdentity.anonymous(), consent_granted=False)

    assert enforce(decision, client) is Directive.DISABLE
    assert client.directives == [Directive.DISABLE]


def test_gate_applies_revocation_to_running_client():
    """Test that withdrawing consent disables an already-enabled client"""
    client = DirectiveRecorder()
    gate = TierGate(client)
    member = VisitorIdentity.member("user_1", Tier.RESEARCH_CONTRIBUTOR)

    gate.update(member, consent_granted=True)
    gate.update(member, consent_granted=False)

    assert client.directives == [Directive.ENABLE, Directive.DISABLE]
    assert client.latest is Directive.DISABLE
    assert gate.last_decision.reason is GateReason.CONSENT_DENIED


def test_gate_resolves_pending_tier():
    """Test that a later tier resolution lifts the restrictive decision"""
    client = DirectiveRecorder()
    gate = TierGate(client)

    gate.update(VisitorIdentity.member("user_1", None), consent_granted=True)
    gate.update(VisitorIdentity.member("user_1", Tier.STANDARD), consent_granted=True)

    assert client.directives == [Directive.DISABLE, Directive.DISABLE_REPLAY_ONLY]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("standard", Tier.STANDARD),
        (" Research_Contributor ", Tier.RESEARCH_CONTRIBUTOR),
        ("premium", None),
        (None, None),
    ],
)
def test_parse_tier(raw, expected):
    """Test tier parsing of stored and submitted values"""
    assert parse_tier(raw) is expected
