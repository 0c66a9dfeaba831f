"""
FastAPI dependency providers.

Routes receive repositories and upstream clients through Depends() so tests
can swap any of them with app.dependency_overrides.
"""

from __future__ import annotations

from fastapi import Depends

from pslang.config import (
    anthropic_api_key,
    app_url,
    chatgpt_client_id,
    chatgpt_client_secret,
    resend_api_key,
)
from pslang.connectors.chat_client import ChatGPTClient
from pslang.connectors.oauth import ConnectorLinker
from pslang.connectors.state import StateSigner
from pslang.connectors.summarizer import ConversationSummarizer
from pslang.connectors.sync import ConversationSyncer
from pslang.email.sender import ResendClient
from pslang.errors import ConfigurationError
from pslang.observability.logging import get_logger
from pslang.privacy.rights import DataRights
from pslang.storage.connector_repository import ConnectorRepository
from pslang.storage.consent_repository import ConsentRepository
from pslang.storage.conversation_repository import ConversationRepository
from pslang.storage.preferences_repository import PreferencesRepository
from pslang.storage.signup_repository import FeedbackRepository, SignupRepository

logger = get_logger(__name__)


def get_connector_repository() -> ConnectorRepository:
    """
    Raises:
        ConfigurationError: If PSLANG_ENCRYPTION_KEY is missing or malformed
    """
    try:
        return ConnectorRepository()
    except ValueError as e:
        logger.error("Connector storage unavailable: %s", e)
        raise ConfigurationError("Credential encryption not configured") from e


def get_conversation_repository() -> ConversationRepository:
    return ConversationRepository()


def get_preferences_repository() -> PreferencesRepository:
    return PreferencesRepository()


def get_consent_repository() -> ConsentRepository:
    return ConsentRepository()


def get_feedback_repository() -> FeedbackRepository:
    return FeedbackRepository()


def get_signup_repository() -> SignupRepository:
    return SignupRepository()


def get_chatgpt_client() -> ChatGPTClient | None:
    """None when CHATGPT_CLIENT_ID is not set."""
    client_id = chatgpt_client_id()
    if not client_id:
        return None
    return ChatGPTClient(client_id, chatgpt_client_secret())


def get_summarizer() -> ConversationSummarizer | None:
    """None when ANTHROPIC_API_KEY is not set."""
    api_key = anthropic_api_key()
    if not api_key:
        return None
    return ConversationSummarizer(api_key)


def get_state_signer() -> StateSigner:
    return StateSigner.from_env()


def get_linker(
    repository: ConnectorRepository = Depends(get_connector_repository),
    signer: StateSigner = Depends(get_state_signer),
    client: ChatGPTClient | None = Depends(get_chatgpt_client),
) -> ConnectorLinker:
    return ConnectorLinker(repository, signer, client, app_url=app_url())


def get_syncer(
    connectors: ConnectorRepository = Depends(get_connector_repository),
    conversations: ConversationRepository = Depends(get_conversation_repository),
    client: ChatGPTClient | None = Depends(get_chatgpt_client),
) -> ConversationSyncer:
    return ConversationSyncer(connectors, conversations, client)


def get_email_client() -> ResendClient | None:
    """None when RESEND_API_KEY is not set."""
    if not resend_api_key():
        return None
    return ResendClient.from_env()


def require_email_client(client: ResendClient | None = Depends(get_email_client)) -> ResendClient:
    if client is None:
        raise ConfigurationError("Email service not configured")
    return client


def get_data_rights(
    connectors: ConnectorRepository = Depends(get_connector_repository),
    conversations: ConversationRepository = Depends(get_conversation_repository),
    consent: ConsentRepository = Depends(get_consent_repository),
    feedback: FeedbackRepository = Depends(get_feedback_repository),
    signups: SignupRepository = Depends(get_signup_repository),
    preferences: PreferencesRepository = Depends(get_preferences_repository),
) -> DataRights:
    return DataRights(connectors, conversations, consent, feedback, signups, preferences)
