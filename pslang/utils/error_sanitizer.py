"""
Error message sanitization.

Upstream providers sometimes echo tokens, keys or email addresses back in
their error payloads. Messages are scrubbed before they reach a response body
or a log line.
"""

from __future__ import annotations

import re

from pslang.observability.logging import get_logger

logger = get_logger(__name__)

# Patterns that force the generic message for the status code
SENSITIVE_PATTERNS = [
    r"/[^\s]+\.py",
    r"[A-Za-z]:\\[^\s]+",
    r"Traceback \(most recent call last\)",
    r"File \".*\"",
    r"sqlite3?\.",
    r"UNIQUE constraint",
    r"no such table",
    r"no such column",
    r"pslang\.[a-z_.]+",
]

# Patterns that are redacted in place
REDACT_PATTERNS = [
    (re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE), "Bearer [REDACTED]"),
    (re.compile(r"\b(sk|pk|re|rk)_[A-Za-z0-9_]{8,}"), "[REDACTED_KEY]"),
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*"), "[REDACTED_JWT]"),
    (re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"), "[REDACTED_EMAIL]"),
]

GENERIC_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    401: "Authentication required.",
    403: "Access denied.",
    404: "Resource not found.",
    409: "Resource already exists.",
    422: "Invalid data format.",
    429: "Too many requests. Please try again later.",
    500: "An internal error occurred. Please try again later.",
    503: "Service temporarily unavailable.",
}

MAX_MESSAGE_LENGTH = 200


def redact(message: str) -> str:
    """Replace tokens, keys and email addresses in message."""
    for pattern, replacement in REDACT_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def sanitize_error_message(message: str, status_code: int = 500) -> str:
    """
    Sanitize an error message before it is returned to a client.

    Args:
        message: The original error message
        status_code: HTTP status code (selects the generic fallback)

    Returns:
        The redacted message, or a generic one when it looks like internals
    """
    if not message:
        return GENERIC_MESSAGES.get(status_code, "An error occurred.")

    for pattern in SENSITIVE_PATTERNS:
        if re.search(pattern, message, re.IGNORECASE):
            logger.warning("Sanitized sensitive error pattern: %s", pattern)
            return GENERIC_MESSAGES.get(status_code, "An error occurred.")

    cleaned = redact(message).strip()
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        cleaned = cleaned[:MAX_MESSAGE_LENGTH].rstrip() + "..."
    return cleaned
