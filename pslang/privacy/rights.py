"""
Data subject rights: export and erasure of everything stored for a user.

Deletion works category by category. A failing category is recorded in the
result and the remaining categories still run, so one locked table never
blocks the rest of an erasure request.
"""

from __future__ import annotations

import csv
import io
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pslang.observability.logging import get_logger
from pslang.observability.telemetry import log_event
from pslang.privacy.tiers import DEFAULT_TIER, TIER_DISPLAY_NAMES, parse_tier, permissions_for
from pslang.storage.connector_repository import ConnectorRepository, CredentialEncryptionError
from pslang.storage.consent_repository import ConsentRepository
from pslang.storage.conversation_repository import ConversationRepository
from pslang.storage.models import utc_now
from pslang.storage.preferences_repository import PreferencesRepository
from pslang.storage.signup_repository import FeedbackRepository, SignupRepository

logger = get_logger(__name__)

EXPORT_DATA_VERSION = "1.0"


class DataCategory(str, Enum):
    ALL = "all"
    FEEDBACK = "feedback"
    CONSENT = "consent"
    CONVERSATIONS = "conversations"
    CONNECTORS = "connectors"
    SIGNUPS = "signups"


CATEGORY_LABELS = {
    DataCategory.FEEDBACK: "Feedback Submissions",
    DataCategory.CONSENT: "Cookie Consent History",
    DataCategory.CONVERSATIONS: "Synced Conversations",
    DataCategory.CONNECTORS: "AI Connectors",
    DataCategory.SIGNUPS: "Newsletter and Alpha Signups",
}

NEXT_STEPS_ALL = [
    "Your data has been deleted from our systems.",
    "If you wish to delete your account entirely, use the account deletion option.",
    "Note: Some anonymized analytics data may be retained for legal/compliance purposes.",
]
NEXT_STEPS_PARTIAL = [
    "Selected data categories have been deleted.",
    'To delete all data, choose "Delete All Data" option.',
]


@dataclass
class DeletionResult:
    user_id: str
    category: DataCategory
    deleted: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def next_steps(self) -> list[str]:
        return NEXT_STEPS_ALL if self.category is DataCategory.ALL else NEXT_STEPS_PARTIAL


class DataRights:
    def __init__(
        self,
        connectors: ConnectorRepository,
        conversations: ConversationRepository,
        consent: ConsentRepository,
        feedback: FeedbackRepository,
        signups: SignupRepository,
        preferences: PreferencesRepository,
    ) -> None:
        self.connectors = connectors
        self.conversations = conversations
        self.consent = consent
        self.feedback = feedback
        self.signups = signups
        self.preferences = preferences

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, user_id: str, email: str, export_format: str = "json") -> dict[str, Any]:
        """Everything stored for user_id, ready to serialize."""
        preference = self.preferences.get_preference(user_id)
        tier = parse_tier(preference.tier) if preference else None
        permissions = permissions_for(tier or DEFAULT_TIER)

        try:
            connectors = [
                {
                    "provider": c.provider.value,
                    "status": c.status.value,
                    "connectedAt": c.connected_at.isoformat() if c.connected_at else None,
                    "lastSyncAt": c.last_sync_at.isoformat() if c.last_sync_at else None,
                }
                for c in self.connectors.list_for_user(user_id)
            ]
        except CredentialEncryptionError:
            logger.error("Could not decrypt connectors for export of user %s", user_id)
            connectors = []

        conversations = self.conversations.list_for_user(user_id)
        consent_history = self.consent.history_for_user(user_id)
        feedback = self.feedback.list_for_user(user_id)
        signups = self.signups.list_for_email(email) if email else []

        log_event("privacy.export", user_id=user_id, format=export_format)
        return {
            "exportMetadata": {
                "userId": user_id,
                "exportDate": utc_now().isoformat(),
                "exportFormat": export_format,
                "dataVersion": EXPORT_DATA_VERSION,
            },
            "dataRetentionPreferences": {
                "tier": (tier or DEFAULT_TIER).value,
                "tierDisplayName": TIER_DISPLAY_NAMES[tier or DEFAULT_TIER],
                "isDefault": preference is None,
                "retentionDays": permissions.retention_days,
                "anonymizationDays": permissions.anonymize_after_days,
            },
            "connectors": connectors,
            "syncedConversations": {
                "count": len(conversations),
                "conversations": [
                    {
                        "id": c.id,
                        "provider": c.provider.value,
                        "title": c.title,
                        "messages": [m.model_dump() for m in c.messages],
                        "pslPrompt": c.psl_prompt,
                        "metaTags": c.meta_tags,
                        "conversationDate": (
                            c.conversation_date.isoformat() if c.conversation_date else None
                        ),
                    }
                    for c in conversations
                ],
            },
            "consentHistory": {
                "count": len(consent_history),
                "records": [
                    {
                        "action": r.action,
                        "status": r.status,
                        "granular": r.granular.model_dump(),
                        "gpcDetected": r.gpc_detected,
                        "createdAt": r.created_at.isoformat(),
                        "expiresAt": r.expires_at.isoformat(),
                    }
                    for r in consent_history
                ],
            },
            "feedback": {
                "count": len(feedback),
                "entries": [
                    {
                        "text": f.text,
                        "feedbackType": f.feedback_type,
                        "rating": f.rating,
                        "createdAt": f.created_at.isoformat(),
                    }
                    for f in feedback
                ],
            },
            "signups": [
                {"kind": s.kind.value, "createdAt": s.created_at.isoformat()} for s in signups
            ],
        }

    @staticmethod
    def to_csv(data: dict[str, Any]) -> str:
        """Flatten an export into Section,Key,Value rows."""
        meta = data["exportMetadata"]
        retention = data["dataRetentionPreferences"]
        rows: list[tuple[str, str, Any]] = [
            ("Export Metadata", "User ID", meta["userId"]),
            ("Export Metadata", "Export Date", meta["exportDate"]),
            ("Export Metadata", "Format", meta["exportFormat"]),
            ("Data Retention", "Tier", retention["tier"]),
            ("Data Retention", "Retention Days", retention["retentionDays"]),
            ("Data Retention", "Anonymization Days", retention["anonymizationDays"]),
        ]
        for connector in data["connectors"]:
            rows.append(("Connectors", connector["provider"], connector["status"]))
        rows.append(("Conversations", "Total Conversations", data["syncedConversations"]["count"]))
        for conversation in data["syncedConversations"]["conversations"]:
            rows.append(("Conversations", conversation["id"], conversation["title"]))
        rows.append(("Consent", "Total Records", data["consentHistory"]["count"]))
        rows.append(("Feedback", "Total Submissions", data["feedback"]["count"]))
        for signup in data["signups"]:
            rows.append(("Signups", signup["kind"], signup["createdAt"]))

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Section", "Key", "Value"])
        writer.writerows(rows)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Erasure
    # ------------------------------------------------------------------

    def _deleters(self, user_id: str, email: str) -> dict[DataCategory, Callable[[], int]]:
        def delete_signups() -> int:
            removed = self.signups.delete_for_user(user_id)
            if email:
                removed += self.signups.delete_for_email(email)
            return removed

        return {
            DataCategory.FEEDBACK: lambda: self.feedback.delete_for_user(user_id),
            DataCategory.CONSENT: lambda: self.consent.delete_for_user(user_id),
            DataCategory.CONVERSATIONS: lambda: self.conversations.delete_for_user(user_id),
            DataCategory.CONNECTORS: lambda: self.connectors.delete_for_user(user_id),
            DataCategory.SIGNUPS: delete_signups,
        }

    def delete(self, user_id: str, email: str, category: DataCategory = DataCategory.ALL) -> DeletionResult:
        """
        Erase one category of the user's data, or all of it.

        Side Effects:
            - Deletes rows from the tables behind the selected categories
            - Deletes the retention preference when category is ALL
        """
        result = DeletionResult(user_id=user_id, category=category)

        for current, deleter in self._deleters(user_id, email).items():
            if category is not DataCategory.ALL and current is not category:
                continue
            try:
                removed = deleter()
            except sqlite3.Error as e:
                logger.error("Failed to delete %s for user %s: %s", current.value, user_id, e)
                result.errors.append({"table": current.value, "error": type(e).__name__})
                continue
            result.deleted.append(f"{CATEGORY_LABELS[current]} ({removed} records)")

        if category is DataCategory.ALL:
            try:
                if self.preferences.delete(user_id):
                    result.deleted.append("Retention Preferences (1 record)")
            except sqlite3.Error as e:
                logger.error("Failed to delete retention preference for user %s: %s", user_id, e)
                result.errors.append({"table": "retention_preferences", "error": type(e).__name__})

        log_event(
            "privacy.delete_data",
            user_id=user_id,
            category=category.value,
            deleted=len(result.deleted),
            errors=len(result.errors),
        )
        return result
