"""Integration tests for the privacy endpoints

Tests cover:
- Gate decisions for anonymous and signed-in visitors across tiers
- Consent from the query string, the cookie and the GPC header
- Reading and changing the retention tier
- Consent audit trail
- Export, data deletion and account deletion
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime

import pytest

from pslang.api.app import app
from pslang.api.dependencies import get_preferences_repository
from pslang.privacy.tiers import Tier
from pslang.storage.conversation_repository import ConversationRepository
from pslang.storage.models import ChatMessage, Provider
from pslang.storage.preferences_repository import PreferencesRepository
from pslang.transform.psl import transform


def test_anonymous_with_consent_gets_standard_analytics(client):
    response = client.get("/api/privacy/permissions", params={"consent": "granted"})

    assert response.status_code == 200
    data = response.json()
    assert data["signedIn"] is False
    assert data["tier"] == "standard"
    assert data["analyticsAllowed"] is True
    assert data["sessionReplayAllowed"] is False
    assert data["directive"] == "disable_replay_only"
    assert data["reason"] == "replay_restricted"


def test_no_consent_disables_everything(client):
    data = client.get("/api/privacy/permissions").json()

    assert data["consent"] == "denied"
    assert data["analyticsAllowed"] is False
    assert data["directive"] == "disable"
    assert data["reason"] == "consent_denied"


def test_consent_read_from_cookie(client):
    client.cookies.set("ps_lang_consent", "granted")

    data = client.get("/api/privacy/permissions").json()

    assert data["consent"] == "granted"
    assert data["analyticsAllowed"] is True


def test_gpc_without_explicit_grant_denies(client):
    data = client.get("/api/privacy/permissions", headers={"Sec-GPC": "1"}).json()

    assert data["gpcDetected"] is True
    assert data["analyticsAllowed"] is False


@pytest.mark.parametrize(
    ("tier", "analytics", "replay", "directive"),
    [
        (Tier.ESSENTIAL, False, False, "disable"),
        (Tier.STANDARD, True, False, "disable_replay_only"),
        (Tier.RESEARCH_CONTRIBUTOR, True, True, "enable"),
    ],
)
def test_signed_in_tier_narrows_consent(client, ada, tier, analytics, replay, directive):
    PreferencesRepository().set_tier("user_1", tier)

    data = client.get("/api/privacy/permissions", params={"consent": "granted"}, headers=ada).json()

    assert data["signedIn"] is True
    assert data["tier"] == tier.value
    assert data["analyticsAllowed"] is analytics
    assert data["sessionReplayAllowed"] is replay
    assert data["directive"] == directive
    assert data["permissions"]["allowSessionReplay"] is replay


def test_essential_tier_with_consent_is_tier_restricted(client, ada):
    PreferencesRepository().set_tier("user_1", Tier.ESSENTIAL)

    data = client.get("/api/privacy/permissions", params={"consent": "granted"}, headers=ada).json()

    assert data["reason"] == "tier_restricted"


def test_tier_lookup_failure_fails_closed(client, ada):
    """Test that an unreadable tier disables instrumentation for a member"""

    class BrokenPreferences:
        def get_preference(self, user_id):
            raise sqlite3.OperationalError("database is locked")

    app.dependency_overrides[get_preferences_repository] = lambda: BrokenPreferences()

    data = client.get("/api/privacy/permissions", params={"consent": "granted"}, headers=ada).json()

    assert data["tier"] is None
    assert data["reason"] == "tier_pending"
    assert data["analyticsAllowed"] is False
    assert data["sessionReplayAllowed"] is False


def test_invalid_token_treated_as_anonymous(client):
    data = client.get(
        "/api/privacy/permissions",
        params={"consent": "granted"},
        headers={"Authorization": "Bearer nope"},
    ).json()

    assert data["signedIn"] is False


def test_get_default_tier(client, ada):
    data = client.get("/api/privacy/tier", headers=ada).json()

    assert data["tier"] == "standard"
    assert data["isDefault"] is True
    assert data["permissions"]["retentionDays"] == 730


def test_update_tier(client, ada):
    response = client.put("/api/privacy/tier", json={"tier": "research_contributor"}, headers=ada)

    assert response.status_code == 200
    data = response.json()
    assert data["tier"] == "research_contributor"
    assert data["displayName"] == "Research Contributor"
    assert data["previousTier"] is None
    assert data["researchContributorSince"] is not None
    assert client.get("/api/privacy/tier", headers=ada).json()["isDefault"] is False


def test_update_tier_rejects_unknown_value(client, ada):
    response = client.put("/api/privacy/tier", json={"tier": "platinum"}, headers=ada)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid tier")


def test_tier_requires_sign_in(client):
    response = client.get("/api/privacy/tier")

    assert response.status_code == 401
    assert "error" in response.json()


def consent_body(status="granted", **overrides):
    body = {
        "sessionId": "sess-1",
        "action": status,
        "status": status,
        "granular": {"analytics": True, "session_replay": True, "performance": True},
    }
    body.update(overrides)
    return body


def test_save_consent_and_read_history(client, ada):
    response = client.post("/api/consent/save", json=consent_body(), headers=ada)

    assert response.status_code == 200
    saved = response.json()
    assert saved["status"] == "granted"
    assert saved["gpcApplied"] is False
    assert saved["granular"]["analytics"] is True

    history = client.get("/api/consent/history", headers=ada).json()
    assert [r["id"] for r in history["records"]] == [saved["consentId"]]
    assert history["needsRenewal"] is False


def test_denied_consent_clears_granular_choices(client):
    """Test that a denial switches every granular category off"""
    response = client.post("/api/consent/save", json=consent_body("denied", gpcDetected=True))

    saved = response.json()
    assert saved["status"] == "denied"
    assert saved["granular"] == {"analytics": False, "session_replay": False, "performance": False}


def test_empty_history_needs_renewal(client, ada):
    assert client.get("/api/consent/history", headers=ada).json() == {
        "records": [],
        "needsRenewal": True,
    }


def test_save_consent_validation_error(client):
    response = client.post("/api/consent/save", json={"sessionId": "s"})

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid request")
    assert "status" in response.json()["invalid_fields"]


def _seed_conversation(user_id="user_1"):
    messages = [ChatMessage(role="user", content="Build a python CLI")]
    ConversationRepository().upsert(user_id, Provider.CHATGPT, "c1", messages, transform(messages))


def test_export_json(client, ada):
    _seed_conversation()

    response = client.get("/api/privacy/export", headers=ada)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert 'filename="ps-lang-data-export-user_1-' in response.headers["content-disposition"]
    data = json.loads(response.content)
    assert data["exportMetadata"]["userId"] == "user_1"
    assert data["syncedConversations"]["count"] == 1


def test_export_filename_is_stamped_in_utc(client, ada, monkeypatch):
    fixed = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    monkeypatch.setattr("pslang.api.routes.privacy.utc_now", lambda: fixed)

    response = client.get("/api/privacy/export", headers=ada)

    stamp = int(fixed.timestamp() * 1000)
    assert f'filename="ps-lang-data-export-user_1-{stamp}.json"' in response.headers[
        "content-disposition"
    ]


def test_export_csv(client, ada):
    response = client.get("/api/privacy/export", params={"format": "csv"}, headers=ada)

    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.startswith("Section,Key,Value")


def test_delete_data_requires_matching_email(client, ada):
    missing = client.post("/api/privacy/delete-data", json={}, headers=ada)
    wrong = client.post("/api/privacy/delete-data", json={"confirmEmail": "x@y.z"}, headers=ada)

    assert missing.status_code == 400
    assert missing.json() == {"error": "Email confirmation required for data deletion"}
    assert wrong.status_code == 400
    assert wrong.json() == {"error": "Email confirmation does not match your account"}


def test_delete_data_by_category(client, ada):
    _seed_conversation()
    _seed_conversation("user_2")

    response = client.post(
        "/api/privacy/delete-data",
        json={"confirmEmail": "ADA@example.com", "deleteType": "conversations"},
        headers=ada,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["deleteType"] == "conversations"
    assert data["deleted"] == ["Synced Conversations (1 records)"]
    assert data["errors"] == []
    assert data["nextSteps"]
    assert ConversationRepository().count_for_user("user_1") == 0
    assert ConversationRepository().count_for_user("user_2") == 1


def test_delete_data_unknown_category(client, ada):
    response = client.post(
        "/api/privacy/delete-data",
        json={"confirmEmail": "ada@example.com", "deleteType": "everything"},
        headers=ada,
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid delete type")


def test_delete_account(client, ada, identity):
    _seed_conversation()

    response = client.delete("/api/privacy/account", headers=ada)

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert identity.deleted == ["user_1"]
    assert ConversationRepository().count_for_user("user_1") == 0


def test_gpc_does_not_override_explicit_grant(client):
    response = client.post("/api/consent/save", json=consent_body(), headers={"Sec-GPC": "1"})

    saved = response.json()
    assert saved["status"] == "granted"
    assert saved["gpcApplied"] is False


def test_changing_tier_keeps_previous(client, ada):
    client.put("/api/privacy/tier", json={"tier": "essential"}, headers=ada)

    data = client.put("/api/privacy/tier", json={"tier": "standard"}, headers=ada).json()

    assert data["tier"] == "standard"
    assert data["previousTier"] == "essential"
