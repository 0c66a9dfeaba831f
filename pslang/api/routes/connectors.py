"""
Connector API endpoints.

Provides endpoints for:
- Linking ChatGPT through OAuth (authorize + callback)
- Connecting Claude with an API key
- Syncing conversations (ChatGPT pull, Claude upload)
- Listing, inspecting and disconnecting connectors
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from pydantic import Field, field_validator

from pslang.api.dependencies import (
    get_connector_repository,
    get_conversation_repository,
    get_linker,
    get_syncer,
)
from pslang.api.middleware.auth import get_current_user
from pslang.api.models import MAX_UPLOAD_CONVERSATIONS, ApiModel, ConnectorView, SyncResponse
from pslang.connectors.oauth import ConnectorLinker
from pslang.connectors.sync import PROVIDER_LABELS, ConversationSyncer
from pslang.errors import BadRequest, NotFound
from pslang.identity.provider import IdentityUser
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import log_event
from pslang.storage.connector_repository import ConnectorRepository
from pslang.storage.conversation_repository import ConversationRepository
from pslang.storage.models import Provider

router = APIRouter(tags=["connectors"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class ClaudeConnectRequest(ApiModel):
    api_key: str = Field(min_length=1, max_length=512)

    @field_validator("api_key")
    @classmethod
    def api_key_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("API key cannot be empty")
        return v.strip()


class ClaudeUploadRequest(ApiModel):
    # Items are validated one by one so a malformed conversation becomes a
    # per-item error instead of rejecting the whole upload
    conversations: list[Any] | None = None


class ClaudeSyncStatus(ApiModel):
    connected: bool
    last_sync_at: datetime | None = None
    conversation_count: int = 0


class DisconnectResponse(ApiModel):
    success: bool = True
    provider: str
    status: str


# ============================================================================
# ChatGPT OAuth
# ============================================================================


@router.get("/api/auth/chatgpt/authorize")
async def authorize_chatgpt(
    user: IdentityUser = Depends(get_current_user),
    linker: ConnectorLinker = Depends(get_linker),
) -> RedirectResponse:
    """Redirect the signed-in user to ChatGPT's authorization page."""
    return RedirectResponse(linker.authorize(user.id), status_code=302)


@router.get("/api/auth/chatgpt/callback")
async def chatgpt_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    linker: ConnectorLinker = Depends(get_linker),
) -> RedirectResponse:
    """
    OAuth redirect target. The user is identified by the signed state, not by
    a session, so no authentication dependency is applied here.
    """
    result = await linker.callback(code, state, error)
    return RedirectResponse(result.redirect_url, status_code=302)


# ============================================================================
# Sync
# ============================================================================


@router.post("/api/sync/chatgpt", response_model=SyncResponse)
async def sync_chatgpt(
    user: IdentityUser = Depends(get_current_user),
    syncer: ConversationSyncer = Depends(get_syncer),
) -> SyncResponse:
    report = await syncer.sync(user.id, Provider.CHATGPT)
    return SyncResponse.from_report(report)


@router.post("/api/sync/claude", response_model=SyncResponse)
async def sync_claude(
    request: ClaudeUploadRequest,
    user: IdentityUser = Depends(get_current_user),
    syncer: ConversationSyncer = Depends(get_syncer),
) -> SyncResponse:
    """Import conversations exported from Claude."""
    if request.conversations is None:
        raise BadRequest("Invalid request. Send conversations array.")
    if len(request.conversations) > MAX_UPLOAD_CONVERSATIONS:
        raise BadRequest(f"Too many conversations (max {MAX_UPLOAD_CONVERSATIONS} per upload)")

    report = syncer.import_conversations(user.id, Provider.CLAUDE, request.conversations)
    return SyncResponse.from_report(report)


@router.get("/api/sync/claude", response_model=ClaudeSyncStatus)
async def claude_sync_status(
    user: IdentityUser = Depends(get_current_user),
    connectors: ConnectorRepository = Depends(get_connector_repository),
    conversations: ConversationRepository = Depends(get_conversation_repository),
) -> ClaudeSyncStatus:
    credential = connectors.get_credential(user.id, Provider.CLAUDE)
    if credential is None:
        return ClaudeSyncStatus(connected=False)
    return ClaudeSyncStatus(
        connected=credential.is_connected,
        last_sync_at=credential.last_sync_at,
        conversation_count=conversations.count_for_user(user.id, Provider.CLAUDE),
    )


# ============================================================================
# Connector Management
# ============================================================================


@router.post("/api/connectors/claude", response_model=ConnectorView)
async def connect_claude(
    request: ClaudeConnectRequest,
    user: IdentityUser = Depends(get_current_user),
    connectors: ConnectorRepository = Depends(get_connector_repository),
) -> ConnectorView:
    """
    Side Effects:
        - Stores the encrypted API key and marks the Claude connector connected
    """
    credential = connectors.connect(user.id, Provider.CLAUDE, api_key=request.api_key)
    log_event("connectors.claude.connected", user_id=user.id)
    return ConnectorView.from_credential(credential)


@router.get("/api/connectors", response_model=list[ConnectorView])
async def list_connectors(
    user: IdentityUser = Depends(get_current_user),
    connectors: ConnectorRepository = Depends(get_connector_repository),
) -> list[ConnectorView]:
    return [ConnectorView.from_credential(c) for c in connectors.list_for_user(user.id)]


@router.get("/api/connectors/{provider}", response_model=ConnectorView)
async def get_connector(
    provider: Provider,
    user: IdentityUser = Depends(get_current_user),
    connectors: ConnectorRepository = Depends(get_connector_repository),
) -> ConnectorView:
    credential = connectors.get_credential(user.id, provider)
    if credential is None:
        raise NotFound(f"{PROVIDER_LABELS[provider]} connector not found")
    return ConnectorView.from_credential(credential)


@router.delete("/api/connectors/{provider}", response_model=DisconnectResponse)
async def disconnect_connector(
    provider: Provider,
    user: IdentityUser = Depends(get_current_user),
    connectors: ConnectorRepository = Depends(get_connector_repository),
) -> DisconnectResponse:
    """
    Side Effects:
        - Sets the connector to disconnected and clears its stored secrets
    """
    if not connectors.disconnect(user.id, provider):
        raise NotFound(f"{PROVIDER_LABELS[provider]} connector not found")
    log_event("connectors.disconnected", user_id=user.id, provider=provider.value)
    return DisconnectResponse(provider=provider.value, status="disconnected")
