"""Repository for synced conversations.

A conversation is identified by (user_id, provider, external_conversation_id).
Re-syncing the same external id updates the stored row in place; when the
content hash is unchanged nothing is written, so a repeat sync leaves the
stored set untouched.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import datetime
from enum import Enum

from pslang.observability.logging import get_logger
from pslang.storage import BaseRepository
from pslang.storage.models import ChatMessage, Provider, SyncedConversation, utc_now
from pslang.transform.psl import TransformResult

logger = get_logger(__name__)


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def content_hash(messages: list[ChatMessage], title: str) -> str:
    """Stable digest of what a sync would store for a conversation."""
    payload = json.dumps(
        {"title": title, "messages": [m.model_dump() for m in messages]},
        sort_keys=True,
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


class ConversationRepository(BaseRepository):
    def __init__(self) -> None:
        super().__init__("synced_conversations")

    def find_by_external_id(
        self, user_id: str, provider: Provider, external_id: str
    ) -> SyncedConversation | None:
        row = self.query_one(
            """
            SELECT * FROM synced_conversations
            WHERE user_id = ? AND provider = ? AND external_conversation_id = ?
            """,
            (user_id, provider.value, external_id),
        )
        return SyncedConversation.from_db_row(row) if row else None

    def upsert(
        self,
        user_id: str,
        provider: Provider,
        external_id: str,
        messages: list[ChatMessage],
        transformed: TransformResult,
        conversation_date: datetime | None = None,
    ) -> tuple[SyncedConversation, UpsertOutcome]:
        """
        Insert or update a synced conversation keyed by its external id.

        Returns:
            The stored conversation and whether it was created, updated or
            left unchanged

        Side Effects:
            - Inserts or patches at most one row in synced_conversations
        """
        digest = content_hash(messages, transformed.title)
        existing = self.find_by_external_id(user_id, provider, external_id)

        if existing and existing.content_hash == digest:
            return existing, UpsertOutcome.UNCHANGED

        now = utc_now()
        conversation = SyncedConversation(
            id=existing.id if existing else str(uuid.uuid4()),
            user_id=user_id,
            provider=provider,
            external_conversation_id=external_id,
            title=transformed.title,
            messages=messages,
            psl_prompt=transformed.psl_prompt,
            meta_tags=transformed.meta_tags,
            zones=[zone.to_dict() for zone in transformed.zones],
            private_signals=transformed.private_signals,
            content_hash=digest,
            conversation_date=conversation_date,
            synced_at=now,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        record = conversation.to_db_dict()

        if existing:
            record.pop("id")
            record.pop("created_at")
            self.patch(existing.id, record)
            logger.debug("Updated conversation %s for user %s", external_id, user_id)
            return conversation, UpsertOutcome.UPDATED

        self.insert(record)
        logger.debug("Stored conversation %s for user %s", external_id, user_id)
        return conversation, UpsertOutcome.CREATED

    def list_for_user(
        self,
        user_id: str,
        provider: Provider | None = None,
        limit: int | None = None,
    ) -> list[SyncedConversation]:
        """Conversations owned by user_id, newest conversation first."""
        query = "SELECT * FROM synced_conversations WHERE user_id = ?"
        params: list[object] = [user_id]
        if provider is not None:
            query += " AND provider = ?"
            params.append(provider.value)
        query += " ORDER BY COALESCE(conversation_date, created_at) DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return [SyncedConversation.from_db_row(row) for row in self.query_all(query, tuple(params))]

    def get_for_user(self, user_id: str, conversation_id: str) -> SyncedConversation | None:
        row = self.query_one(
            "SELECT * FROM synced_conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )
        return SyncedConversation.from_db_row(row) if row else None

    def count_for_user(self, user_id: str, provider: Provider | None = None) -> int:
        if provider is None:
            row = self.query_one(
                "SELECT COUNT(*) AS n FROM synced_conversations WHERE user_id = ?",
                (user_id,),
            )
        else:
            row = self.query_one(
                "SELECT COUNT(*) AS n FROM synced_conversations WHERE user_id = ? AND provider = ?",
                (user_id, provider.value),
            )
        return int(row["n"]) if row else 0
