"""Retention tier preferences for signed-in users."""

from __future__ import annotations

from pslang.observability.logging import get_logger
from pslang.observability.telemetry import log_event
from pslang.privacy.tiers import Tier
from pslang.storage import BaseRepository
from pslang.storage.models import RetentionPreference, utc_now

logger = get_logger(__name__)


class PreferencesRepository(BaseRepository):
    def __init__(self) -> None:
        super().__init__("retention_preferences", key_column="user_id")

    def get_preference(self, user_id: str) -> RetentionPreference | None:
        row = self.get(user_id)
        return RetentionPreference.from_db_row(row) if row else None

    def set_tier(self, user_id: str, tier: Tier) -> RetentionPreference:
        """
        Store a user's tier, keeping the previous one for the audit trail.

        Side Effects:
            - Inserts or updates one row in retention_preferences
            - Emits privacy.tier_changed when the tier actually changes
        """
        now = utc_now().isoformat()
        existing = self.get_preference(user_id)

        if existing is None:
            self.insert(
                {
                    "user_id": user_id,
                    "tier": tier.value,
                    "previous_tier": None,
                    "tier_changed_at": now,
                    "research_contributor_since": (
                        now if tier is Tier.RESEARCH_CONTRIBUTOR else None
                    ),
                    "created_at": now,
                    "updated_at": now,
                }
            )
            log_event("privacy.tier_set", user_id=user_id, tier=tier.value)
        elif existing.tier != tier.value:
            fields = {
                "tier": tier.value,
                "previous_tier": existing.tier,
                "tier_changed_at": now,
                "updated_at": now,
            }
            if tier is Tier.RESEARCH_CONTRIBUTOR:
                fields["research_contributor_since"] = now
            self.patch(user_id, fields)
            log_event(
                "privacy.tier_changed",
                user_id=user_id,
                previous_tier=existing.tier,
                tier=tier.value,
            )

        preference = self.get_preference(user_id)
        assert preference is not None
        return preference
