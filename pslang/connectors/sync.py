"""
Conversation sync for connected providers.

The loop is sequential: fetch one conversation, transform it, upsert it,
move on. A failure on one item is recorded as Err(reason) in the report and
does not stop the loop. last_sync_at is updated once the loop has run,
whatever the per-item outcome.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Union

from pydantic import ValidationError

from pslang.connectors.chat_client import ChatGPTClient, ProviderRequestError, ProviderUnauthorized
from pslang.errors import ConfigurationError, NotConnected, TokenExpired, UpstreamError
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter, log_event, time_block
from pslang.storage.connector_repository import ConnectorRepository
from pslang.storage.conversation_repository import ConversationRepository, UpsertOutcome
from pslang.storage.models import ChatMessage, ConnectorCredential, Provider, SyncedConversation, utc_now
from pslang.transform.psl import transform

logger = get_logger(__name__)

PROVIDER_LABELS = {
    Provider.CHATGPT: "ChatGPT",
    Provider.CLAUDE: "Claude",
    Provider.GEMINI: "Gemini",
    Provider.CURSOR: "Cursor",
}


@dataclass(frozen=True)
class Ok:
    external_id: str
    conversation: SyncedConversation
    outcome: UpsertOutcome


@dataclass(frozen=True)
class Err:
    external_id: str | None
    reason: str


SyncItem = Union[Ok, Err]


@dataclass
class SyncReport:
    provider: Provider
    items: list[SyncItem] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def synced(self) -> list[Ok]:
        return [item for item in self.items if isinstance(item, Ok)]

    @property
    def errors(self) -> list[Err]:
        return [item for item in self.items if isinstance(item, Err)]

    @property
    def synced_count(self) -> int:
        return len(self.synced)

    @property
    def failed_count(self) -> int:
        return len(self.errors)

    @property
    def message(self) -> str:
        return f"Synced {self.synced_count} conversations"


class UploadItemError(ValueError):
    pass


def _conversation_date(value: Any) -> datetime | None:
    """
    created_at as epoch seconds, epoch milliseconds or ISO-8601.

    Unparseable strings are ignored.

    Raises:
        UploadItemError: If a numeric timestamp is outside the datetime range
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, UTC)
        except (OverflowError, OSError, ValueError):
            raise UploadItemError(f"created_at out of range: {value!r}") from None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _messages(raw: Any) -> list[ChatMessage]:
    if not isinstance(raw, list) or not raw:
        raise UploadItemError("conversation has no messages")
    try:
        return [ChatMessage.model_validate(message) for message in raw]
    except ValidationError as e:
        raise UploadItemError(f"malformed message ({e.error_count()} errors)") from e


class ConversationSyncer:
    def __init__(
        self,
        connectors: ConnectorRepository,
        conversations: ConversationRepository,
        client: ChatGPTClient | None = None,
    ) -> None:
        self.connectors = connectors
        self.conversations = conversations
        self.client = client

    def _require_connected(self, user_id: str, provider: Provider) -> ConnectorCredential:
        credential = self.connectors.get_credential(user_id, provider)
        secret = None
        if credential is not None:
            secret = credential.api_key if provider is Provider.CLAUDE else credential.access_token
        if credential is None or not credential.is_connected or not secret:
            raise NotConnected(f"{PROVIDER_LABELS[provider]} not connected")
        return credential

    def _store(
        self,
        user_id: str,
        provider: Provider,
        external_id: str,
        raw_messages: Any,
        created_at: Any,
    ) -> SyncItem:
        try:
            messages = _messages(raw_messages)
            conversation_date = _conversation_date(created_at)
        except UploadItemError as e:
            return Err(external_id=external_id, reason=str(e))

        transformed = transform(messages)
        if transformed.is_empty:
            return Err(external_id=external_id, reason="conversation could not be transformed")

        try:
            conversation, outcome = self.conversations.upsert(
                user_id,
                provider,
                external_id,
                messages,
                transformed,
                conversation_date=conversation_date,
            )
        except sqlite3.Error as e:
            logger.error("Failed to store %s conversation %s: %s", provider.value, external_id, e)
            return Err(external_id=external_id, reason="conversation could not be stored")
        return Ok(external_id=external_id, conversation=conversation, outcome=outcome)

    def _finish(self, user_id: str, report: SyncReport) -> SyncReport:
        self.connectors.update_last_sync(user_id, report.provider)
        report.finished_at = utc_now()
        counter(f"connectors.sync.{report.provider.value}.synced", report.synced_count)
        counter(f"connectors.sync.{report.provider.value}.failed", report.failed_count)
        log_event(
            "connectors.sync.completed",
            user_id=user_id,
            provider=report.provider.value,
            synced=report.synced_count,
            failed=report.failed_count,
        )
        for error in report.errors:
            logger.warning(
                "Skipped %s conversation %s: %s",
                report.provider.value,
                error.external_id,
                error.reason,
            )
        return report

    async def sync(self, user_id: str, provider: Provider = Provider.CHATGPT) -> SyncReport:
        """
        Pull the remote conversation index and upsert every conversation.

        Raises:
            NotConnected: If there is no connected credential with a token
            TokenExpired: If the index fetch is rejected with 401
            UpstreamError: If the index fetch fails for any other reason
            ConfigurationError: If no provider client is configured

        Side Effects:
            - Marks the credential expired on a 401 from the index
            - Upserts synced_conversations rows
            - Updates last_sync_at once the loop has run
        """
        credential = self._require_connected(user_id, provider)
        if self.client is None:
            raise ConfigurationError(f"{PROVIDER_LABELS[provider]} sync not configured")
        access_token = credential.access_token or ""

        try:
            index = await self.client.list_conversations(access_token)
        except ProviderUnauthorized:
            self.connectors.mark_expired(user_id, provider)
            log_event("connectors.sync.token_expired", user_id=user_id, provider=provider.value)
            raise TokenExpired() from None
        except ProviderRequestError as e:
            raise UpstreamError(f"Failed to fetch conversations: {e.message}") from e

        report = SyncReport(provider=provider)
        with time_block(f"connectors.sync.{provider.value}"):
            for summary in index:
                external_id = summary.get("id")
                if not isinstance(external_id, str) or not external_id:
                    report.items.append(Err(external_id=None, reason="index entry without id"))
                    continue

                try:
                    detail = await self.client.get_conversation(access_token, external_id)
                except UpstreamError as e:
                    report.items.append(Err(external_id=external_id, reason=e.message))
                    continue

                report.items.append(
                    self._store(
                        user_id,
                        provider,
                        external_id,
                        detail.get("messages"),
                        detail.get("created_at"),
                    )
                )

        return self._finish(user_id, report)

    def import_conversations(
        self,
        user_id: str,
        provider: Provider,
        conversations: Iterable[Any],
    ) -> SyncReport:
        """
        Upsert conversations the user uploaded (Claude exports).

        Each item is {id, messages, created_at}; malformed items become Err
        entries in the report.

        Raises:
            NotConnected: If the provider is not connected

        Side Effects:
            - Upserts synced_conversations rows
            - Updates last_sync_at
        """
        self._require_connected(user_id, provider)

        report = SyncReport(provider=provider)
        for item in conversations:
            if not isinstance(item, Mapping):
                report.items.append(Err(external_id=None, reason="conversation is not an object"))
                continue
            external_id = item.get("id")
            if external_id is None or external_id == "":
                report.items.append(Err(external_id=None, reason="conversation without id"))
                continue
            report.items.append(
                self._store(
                    user_id,
                    provider,
                    str(external_id),
                    item.get("messages"),
                    item.get("created_at"),
                )
            )

        return self._finish(user_id, report)
