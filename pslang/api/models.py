"""Pydantic request/response models shared across PS-LANG API routes.

Every model serializes with camelCase keys (syncedCount, lastSyncAt) and
accepts either camelCase or snake_case on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from pslang.connectors.sync import SyncReport
from pslang.storage.models import ChatMessage, ConnectorCredential, SyncedConversation

# Upload size guards for Claude imports and transform previews
MAX_UPLOAD_CONVERSATIONS = 500
MAX_PREVIEW_MESSAGES = 500


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessResponse(ApiModel):
    success: bool = True
    message: str | None = None


# =============================================================================
# CONNECTORS
# =============================================================================


class ConnectorView(ApiModel):
    """A connector as shown to its owner. Secrets are never included."""

    provider: str
    status: str
    connected: bool
    has_api_key: bool = False
    auto_sync: bool = True
    sync_frequency: str = "daily"
    connected_at: datetime | None = None
    last_sync_at: datetime | None = None

    @classmethod
    def from_credential(cls, credential: ConnectorCredential) -> ConnectorView:
        return cls(
            provider=credential.provider.value,
            status=credential.status.value,
            connected=credential.is_connected,
            has_api_key=bool(credential.api_key),
            auto_sync=credential.settings.auto_sync,
            sync_frequency=credential.settings.sync_frequency,
            connected_at=credential.connected_at,
            last_sync_at=credential.last_sync_at,
        )


class SyncErrorView(ApiModel):
    external_id: str | None = None
    reason: str


class SyncResponse(ApiModel):
    success: bool = True
    synced_count: int
    failed_count: int
    message: str
    errors: list[SyncErrorView] = []

    @classmethod
    def from_report(cls, report: SyncReport) -> SyncResponse:
        return cls(
            synced_count=report.synced_count,
            failed_count=report.failed_count,
            message=report.message,
            errors=[SyncErrorView(external_id=e.external_id, reason=e.reason) for e in report.errors],
        )


# =============================================================================
# CONVERSATIONS
# =============================================================================


class ConversationSummary(ApiModel):
    id: str
    provider: str
    external_conversation_id: str
    title: str
    meta_tags: list[str] = []
    conversation_date: datetime | None = None
    synced_at: datetime

    @classmethod
    def from_conversation(cls, conversation: SyncedConversation) -> ConversationSummary:
        return cls(
            id=conversation.id,
            provider=conversation.provider.value,
            external_conversation_id=conversation.external_conversation_id,
            title=conversation.title,
            meta_tags=conversation.meta_tags,
            conversation_date=conversation.conversation_date,
            synced_at=conversation.synced_at,
        )


class ConversationDetail(ConversationSummary):
    messages: list[ChatMessage] = []
    psl_prompt: str = ""
    zones: list[dict[str, Any]] = []
    private_signals: list[str] = []

    @classmethod
    def from_conversation(cls, conversation: SyncedConversation) -> ConversationDetail:
        summary = ConversationSummary.from_conversation(conversation)
        return cls(
            **summary.model_dump(),
            messages=conversation.messages,
            psl_prompt=conversation.psl_prompt,
            zones=conversation.zones,
            private_signals=conversation.private_signals,
        )
