"""
OAuth connector linker for ChatGPT.

States of a connector credential:

    disconnected -> authorizing -> connected -> (expired | disconnected)

authorize() builds the provider's authorization URL with a signed state
token. callback() verifies that state, exchanges the code for tokens and
stores the credential. Every callback outcome is a redirect back to the
site; only missing code/state is reported as a client error.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

from pslang.config import CHATGPT_AUTHORIZE_URL, CHATGPT_SCOPE
from pslang.connectors.chat_client import ChatGPTClient
from pslang.connectors.state import StateSigner
from pslang.errors import BadRequest, ConfigurationError, InvalidStateError, TokenExchangeError
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter, log_event
from pslang.storage.connector_repository import ConnectorRepository
from pslang.storage.models import ConnectorSettings, ConnectorStatus, Provider

logger = get_logger(__name__)

CALLBACK_PATH = "/api/auth/chatgpt/callback"
RETURN_PATH = "/journal-plus"


@dataclass(frozen=True)
class CallbackResult:
    redirect_url: str
    connected: bool
    error: str | None = None


class ConnectorLinker:
    provider = Provider.CHATGPT

    def __init__(
        self,
        repository: ConnectorRepository,
        signer: StateSigner,
        client: ChatGPTClient | None,
        app_url: str,
        authorize_url: str = CHATGPT_AUTHORIZE_URL,
        scope: str = CHATGPT_SCOPE,
    ) -> None:
        self.repository = repository
        self.signer = signer
        self.client = client
        self.app_url = app_url.rstrip("/")
        self.authorize_url = authorize_url
        self.scope = scope

    @property
    def redirect_uri(self) -> str:
        return f"{self.app_url}{CALLBACK_PATH}"

    def _return_url(self, **params: str) -> str:
        return f"{self.app_url}{RETURN_PATH}?{urlencode(params)}"

    def _require_client(self) -> ChatGPTClient:
        if self.client is None:
            raise ConfigurationError("ChatGPT OAuth not configured")
        return self.client

    def authorize(self, user_id: str | None) -> str:
        """
        Build the authorization-request URL for user_id.

        Raises:
            BadRequest: If user_id is missing
            ConfigurationError: If no client id is configured
        """
        if not user_id:
            raise BadRequest("User ID required")
        client = self._require_client()

        params = {
            "client_id": client.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": self.signer.issue(user_id, self.provider),
        }
        log_event("connectors.oauth.authorize", user_id=user_id, provider=self.provider.value)
        return f"{self.authorize_url}?{urlencode(params)}"

    def _fail(self, reason: str, user_id: str | None = None) -> CallbackResult:
        counter(f"connectors.oauth.failed.{reason}")
        log_event(
            "connectors.oauth.callback_failed",
            provider=self.provider.value,
            reason=reason,
            user_id=user_id,
        )
        return CallbackResult(redirect_url=self._return_url(error=reason), connected=False, error=reason)

    async def callback(
        self,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> CallbackResult:
        """
        Finish the OAuth handshake.

        Returns:
            CallbackResult with the redirect target

        Raises:
            BadRequest: If code or state is missing (and no provider error)
            ConfigurationError: If no client is configured

        Side Effects:
            - On success, upserts the (user, provider) credential as connected
            - On a provider error with a valid state, marks an existing
              credential disconnected
            - Nothing is written on any other failure
        """
        if error:
            logger.warning("OAuth provider returned error: %s", error)
            user_id = None
            if state:
                try:
                    user_id = self.signer.verify(state, self.provider).user_id
                except InvalidStateError:
                    user_id = None
            if user_id:
                self.repository.set_status(user_id, self.provider, ConnectorStatus.DISCONNECTED)
            return self._fail("oauth_failed", user_id)

        if not code or not state:
            raise BadRequest("Missing code or state")

        try:
            verified = self.signer.verify(state, self.provider)
        except InvalidStateError:
            logger.warning("Rejected OAuth callback with invalid state")
            return self._fail("invalid_state")

        client = self._require_client()
        try:
            tokens = await client.exchange_code(code, self.redirect_uri)
        except TokenExchangeError as e:
            logger.error("Token exchange failed for user %s: %s", verified.user_id, e.message)
            return self._fail("token_exchange_failed", verified.user_id)

        self.repository.connect(
            verified.user_id,
            self.provider,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            settings=ConnectorSettings(auto_sync=True, sync_frequency="daily"),
        )
        counter("connectors.oauth.connected")
        log_event("connectors.oauth.connected", user_id=verified.user_id, provider=self.provider.value)
        return CallbackResult(
            redirect_url=self._return_url(connected=self.provider.value),
            connected=True,
        )
