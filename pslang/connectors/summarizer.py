"""
Conversation summaries through the Anthropic Messages API.

One POST per summary, no retries. The conversation is flattened to
"ROLE: content" blocks and the model is asked for two or three sentences.
"""

from __future__ import annotations

from typing import Any

import httpx

from pslang.config import (
    ANTHROPIC_API_BASE,
    ANTHROPIC_API_VERSION,
    HTTP_CONNECT_TIMEOUT_SECONDS,
    SUMMARY_MAX_TOKENS,
    SUMMARY_MODEL,
)
from pslang.errors import UpstreamError
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter
from pslang.storage.models import ChatMessage
from pslang.utils.error_sanitizer import redact

logger = get_logger(__name__)

SUMMARY_PROMPT = (
    "Summarize this conversation in 2-3 clear, concise sentences. "
    "Focus on the main goal and outcome:\n\n"
)
# Model calls are slower than the other upstreams
SUMMARY_TIMEOUT_SECONDS = 30.0


def conversation_text(messages: list[ChatMessage]) -> str:
    return "\n\n".join(f"{m.role.upper()}: {m.content}" for m in messages)


def _first_text(body: Any) -> str:
    content = body.get("content") if isinstance(body, dict) else None
    if not isinstance(content, list) or not content:
        return ""
    first = content[0]
    if isinstance(first, dict) and first.get("type") == "text":
        return str(first.get("text", "")).strip()
    return ""


class ConversationSummarizer:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = SUMMARY_MODEL,
        api_base: str = ANTHROPIC_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self._timeout = httpx.Timeout(SUMMARY_TIMEOUT_SECONDS, connect=HTTP_CONNECT_TIMEOUT_SECONDS)

    async def summarize(self, messages: list[ChatMessage]) -> str:
        """
        Summarize messages; an empty string when the model returns no text.

        Raises:
            UpstreamError: On transport failure, non-2xx status or a non-JSON body
        """
        payload = {
            "model": self.model,
            "max_tokens": SUMMARY_MAX_TOKENS,
            "messages": [{"role": "user", "content": SUMMARY_PROMPT + conversation_text(messages)}],
        }
        headers = {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_API_VERSION}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(f"{self.api_base}/messages", json=payload, headers=headers)
            except httpx.RequestError as e:
                logger.error("Summary request failed: %s", type(e).__name__)
                raise UpstreamError("Failed to generate summary") from e

        if not response.is_success:
            logger.warning(
                "Summary request rejected: status=%d body=%s",
                response.status_code,
                redact(response.text[:200]),
            )
            raise UpstreamError("Failed to generate summary")

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("Failed to generate summary") from e

        counter("conversations.summaries")
        return _first_text(body)
