"""
Domain models for PS-LANG persistent records.

Connector credentials link a local account to one external AI chat provider.
Synced conversations are the transformed local copies of provider
conversations. Both are owned by a single user id.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Provider(str, Enum):
    """External AI chat providers a user can connect."""

    CHATGPT = "chatgpt"
    CLAUDE = "claude"
    GEMINI = "gemini"
    CURSOR = "cursor"


class ConnectorStatus(str, Enum):
    """Lifecycle of a connector credential."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"  # provider answered 401; user must re-authorize


class ConnectorSettings(BaseModel):
    auto_sync: bool = True
    sync_frequency: str = "daily"


class ConnectorCredential(BaseModel):
    """
    Link between a local user and one external chat provider.

    At most one credential exists per (user_id, provider); the repository
    enforces that with lookup-then-upsert.
    """

    id: str
    user_id: str
    provider: Provider
    status: ConnectorStatus = ConnectorStatus.DISCONNECTED
    access_token: str | None = None
    refresh_token: str | None = None
    api_key: str | None = None
    settings: ConnectorSettings = Field(default_factory=ConnectorSettings)
    connected_at: datetime | None = None
    last_sync_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def connected_requires_secret(self) -> ConnectorCredential:
        if self.status == ConnectorStatus.CONNECTED and not (self.access_token or self.api_key):
            raise ValueError("a connected credential needs an access token or api key")
        return self

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectorStatus.CONNECTED


class ChatMessage(BaseModel):
    """One role-tagged message of a conversation."""

    role: str
    content: str

    @field_validator("role")
    @classmethod
    def role_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("role cannot be empty")
        return v.strip().lower()


class SyncedConversation(BaseModel):
    """A transformed local copy of a provider conversation."""

    id: str
    user_id: str
    provider: Provider
    external_conversation_id: str
    title: str
    messages: list[ChatMessage] = Field(default_factory=list)
    psl_prompt: str = ""
    meta_tags: list[str] = Field(default_factory=list)
    zones: list[dict[str, Any]] = Field(default_factory=list)
    private_signals: list[str] = Field(default_factory=list)
    content_hash: str
    conversation_date: datetime | None = None
    synced_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dict for database storage."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "provider": self.provider.value,
            "external_conversation_id": self.external_conversation_id,
            "title": self.title,
            "messages": json.dumps([m.model_dump() for m in self.messages]),
            "psl_prompt": self.psl_prompt,
            "meta_tags": json.dumps(self.meta_tags),
            "zones": json.dumps(self.zones),
            "private_signals": json.dumps(self.private_signals),
            "content_hash": self.content_hash,
            "conversation_date": _iso(self.conversation_date),
            "synced_at": self.synced_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: Any) -> SyncedConversation:
        """Create SyncedConversation from database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            provider=Provider(row["provider"]),
            external_conversation_id=row["external_conversation_id"],
            title=row["title"],
            messages=json.loads(row["messages"]),
            psl_prompt=row["psl_prompt"],
            meta_tags=json.loads(row["meta_tags"]),
            zones=json.loads(row["zones"]),
            private_signals=json.loads(row["private_signals"]),
            content_hash=row["content_hash"],
            conversation_date=parse_dt(row["conversation_date"]),
            synced_at=parse_dt(row["synced_at"]),
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
        )


class GranularConsent(BaseModel):
    analytics: bool = False
    session_replay: bool = False
    performance: bool = False


class ConsentRecord(BaseModel):
    """One entry of the consent audit trail. Append-only."""

    id: str
    user_id: str | None = None
    session_id: str
    action: str
    status: str
    granular: GranularConsent
    gpc_detected: bool = False
    ip_hash: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "action": self.action,
            "status": self.status,
            "granular": self.granular.model_dump_json(),
            "gpc_detected": int(self.gpc_detected),
            "ip_hash": self.ip_hash,
            "user_agent": self.user_agent,
            "referrer": self.referrer,
            "expires_at": self.expires_at.isoformat(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: Any) -> ConsentRecord:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            session_id=row["session_id"],
            action=row["action"],
            status=row["status"],
            granular=GranularConsent.model_validate_json(row["granular"]),
            gpc_detected=bool(row["gpc_detected"]),
            ip_hash=row["ip_hash"],
            user_agent=row["user_agent"],
            referrer=row["referrer"],
            expires_at=parse_dt(row["expires_at"]),
            created_at=parse_dt(row["created_at"]),
        )


class RetentionPreference(BaseModel):
    """Stored data-retention tier of a signed-in user."""

    user_id: str
    tier: str
    previous_tier: str | None = None
    tier_changed_at: datetime | None = None
    research_contributor_since: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_db_row(cls, row: Any) -> RetentionPreference:
        return cls(
            user_id=row["user_id"],
            tier=row["tier"],
            previous_tier=row["previous_tier"],
            tier_changed_at=parse_dt(row["tier_changed_at"]),
            research_contributor_since=parse_dt(row["research_contributor_since"]),
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
        )


class SignupKind(str, Enum):
    NEWSLETTER = "newsletter"
    ALPHA = "alpha"


class Signup(BaseModel):
    id: str
    email: str
    kind: SignupKind
    name: str | None = None
    user_id: str | None = None
    user_segment: str
    intent: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_db_row(cls, row: Any) -> Signup:
        return cls(
            id=row["id"],
            email=row["email"],
            kind=SignupKind(row["kind"]),
            name=row["name"],
            user_id=row["user_id"],
            user_segment=row["user_segment"],
            intent=row["intent"],
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
        )


class FeedbackEntry(BaseModel):
    id: str
    user_id: str | None = None
    email: str | None = None
    text: str
    feedback_type: str | None = None
    rating: int | None = None
    version: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("text")
    @classmethod
    def text_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("text cannot be empty")
        return v.strip()

    @classmethod
    def from_db_row(cls, row: Any) -> FeedbackEntry:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            email=row["email"],
            text=row["text"],
            feedback_type=row["feedback_type"],
            rating=row["rating"],
            version=row["version"],
            created_at=parse_dt(row["created_at"]),
        )
