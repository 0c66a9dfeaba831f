"""Synced conversations and PS-LANG transform endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from pslang.api.dependencies import get_conversation_repository, get_summarizer
from pslang.api.middleware.auth import get_current_user
from pslang.api.models import (
    MAX_PREVIEW_MESSAGES,
    ApiModel,
    ConversationDetail,
    ConversationSummary,
)
from pslang.config import API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from pslang.connectors.summarizer import ConversationSummarizer
from pslang.errors import BadRequest, ConfigurationError, NotFound
from pslang.identity.provider import IdentityUser
from pslang.storage.conversation_repository import ConversationRepository
from pslang.storage.models import ChatMessage, Provider
from pslang.transform import parse_zones, transform

router = APIRouter(tags=["conversations"])

MAX_ZONE_TEXT_LENGTH = 100_000


class ZonesRequest(ApiModel):
    text: str = Field(max_length=MAX_ZONE_TEXT_LENGTH)


class ZonesResponse(ApiModel):
    zones: list[dict[str, Any]]


class TransformRequest(ApiModel):
    messages: list[ChatMessage] = Field(max_length=MAX_PREVIEW_MESSAGES)


class TransformResponse(ApiModel):
    title: str
    psl_prompt: str
    meta_tags: list[str]
    zones: list[dict[str, Any]]
    private_signals: list[str]


class SummarizeRequest(ApiModel):
    conversation_id: str | None = Field(None, max_length=100)
    messages: list[ChatMessage] | None = Field(None, max_length=MAX_PREVIEW_MESSAGES)


class SummaryResponse(ApiModel):
    summary: str


@router.get("/api/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    provider: Provider | None = Query(None),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
    user: IdentityUser = Depends(get_current_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
) -> list[ConversationSummary]:
    """The caller's synced conversations, newest first."""
    return [
        ConversationSummary.from_conversation(c)
        for c in conversations.list_for_user(user.id, provider=provider, limit=limit)
    ]


@router.post("/api/conversations/summarize", response_model=SummaryResponse)
async def summarize_conversation(
    request: SummarizeRequest,
    user: IdentityUser = Depends(get_current_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
    summarizer: ConversationSummarizer | None = Depends(get_summarizer),
) -> SummaryResponse:
    """
    Summarize posted messages, or one of the caller's stored conversations by id.

    Raises:
        NotFound: If conversationId is not one of the caller's conversations
        BadRequest: If there are no messages to summarize
        ConfigurationError: If ANTHROPIC_API_KEY is not set
        UpstreamError: If the model call fails
    """
    messages = request.messages
    if request.conversation_id:
        conversation = conversations.get_for_user(user.id, request.conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        messages = conversation.messages
    if not messages:
        raise BadRequest("Invalid messages")
    if summarizer is None:
        raise ConfigurationError("Summaries not configured")
    return SummaryResponse(summary=await summarizer.summarize(messages))


@router.get("/api/conversations/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: str,
    user: IdentityUser = Depends(get_current_user),
    conversations: ConversationRepository = Depends(get_conversation_repository),
) -> ConversationDetail:
    # Another user's conversation is reported exactly like a missing one
    conversation = conversations.get_for_user(user.id, conversation_id)
    if conversation is None:
        raise NotFound("Conversation not found")
    return ConversationDetail.from_conversation(conversation)


@router.post("/api/psl/zones", response_model=ZonesResponse)
async def zones(request: ZonesRequest) -> ZonesResponse:
    return ZonesResponse(zones=[zone.to_dict() for zone in parse_zones(request.text)])


@router.post("/api/psl/transform", response_model=TransformResponse)
async def transform_preview(request: TransformRequest) -> TransformResponse:
    """Transform messages without storing anything."""
    result = transform(request.messages)
    return TransformResponse(
        title=result.title,
        psl_prompt=result.psl_prompt,
        meta_tags=result.meta_tags,
        zones=[zone.to_dict() for zone in result.zones],
        private_signals=result.private_signals,
    )
