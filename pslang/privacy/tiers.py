"""
Data-retention tiers and the permissions each one grants.

permissions_for() is a pure table lookup. Session replay is only ever
granted together with analytics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Tier(str, Enum):
    """Data-retention classification of a visitor."""

    ESSENTIAL = "essential"
    STANDARD = "standard"
    RESEARCH_CONTRIBUTOR = "research_contributor"


TIER_DISPLAY_NAMES = {
    Tier.ESSENTIAL: "Privacy Essential",
    Tier.STANDARD: "Standard",
    Tier.RESEARCH_CONTRIBUTOR: "Research Contributor",
}


@dataclass(frozen=True)
class TierPermissions:
    allow_analytics: bool
    allow_session_replay: bool
    allow_performance_monitoring: bool
    allow_behavior_tracking: bool
    allow_error_logging: bool
    allow_ai_training: bool
    retention_days: int
    anonymize_after_days: int
    aggregate_after_days: int | None = None

    def __post_init__(self) -> None:
        if self.allow_session_replay and not self.allow_analytics:
            raise ValueError("session replay requires analytics")


ANONYMOUS_DEFAULT_TIER = Tier.STANDARD
DEFAULT_TIER = Tier.STANDARD

PERMISSIONS: dict[Tier, TierPermissions] = {
    Tier.ESSENTIAL: TierPermissions(
        allow_analytics=False,
        allow_session_replay=False,
        allow_performance_monitoring=False,
        allow_behavior_tracking=False,
        allow_error_logging=True,
        allow_ai_training=False,
        retention_days=90,
        anonymize_after_days=30,
    ),
    Tier.STANDARD: TierPermissions(
        allow_analytics=True,
        allow_session_replay=False,
        allow_performance_monitoring=True,
        allow_behavior_tracking=True,
        allow_error_logging=True,
        allow_ai_training=False,
        retention_days=730,
        anonymize_after_days=90,
    ),
    Tier.RESEARCH_CONTRIBUTOR: TierPermissions(
        allow_analytics=True,
        allow_session_replay=True,
        allow_performance_monitoring=True,
        allow_behavior_tracking=True,
        allow_error_logging=True,
        allow_ai_training=True,
        retention_days=1825,
        anonymize_after_days=90,
        aggregate_after_days=730,
    ),
}

# Used while a signed-in visitor's tier is still unknown
RESTRICTIVE_PERMISSIONS = TierPermissions(
    allow_analytics=False,
    allow_session_replay=False,
    allow_performance_monitoring=False,
    allow_behavior_tracking=False,
    allow_error_logging=True,
    allow_ai_training=False,
    retention_days=PERMISSIONS[Tier.ESSENTIAL].retention_days,
    anonymize_after_days=PERMISSIONS[Tier.ESSENTIAL].anonymize_after_days,
)


def parse_tier(value: str | None) -> Tier | None:
    """Tier for a stored or submitted value, None when unrecognized."""
    if value is None:
        return None
    try:
        return Tier(value.strip().lower())
    except ValueError:
        return None


def permissions_for(tier: Tier) -> TierPermissions:
    return PERMISSIONS[tier]
