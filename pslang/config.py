"""Centralized configuration for the PS-LANG backend.

Re-exports everything from pslang.infrastructure.settings, then adds typed
constants for the database, upstream providers, rate limiting and privacy
rules. Secrets are read through small accessor functions so that a changed
environment (tests, .env reloads) is picked up without re-importing.
"""

from __future__ import annotations

import os

from pslang.infrastructure.settings import *  # noqa: F401, F403
from pslang.infrastructure.settings import (
    DEFAULT_ALLOWED_ORIGINS,
    DEFAULT_APP_URL,
    DEFAULT_EMAIL_SENDER,
    DEFAULT_FEEDBACK_RECIPIENT,
)

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("PSLANG_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("PSLANG_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("PSLANG_DB_CONNECT_TIMEOUT", "30.0"))
DB_RETRY_MAX: int = int(os.getenv("PSLANG_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("PSLANG_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("PSLANG_DB_RETRY_MAX_DELAY", "2.0"))

# --- Upstream HTTP ---
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("PSLANG_HTTP_TIMEOUT", "10.0"))
HTTP_CONNECT_TIMEOUT_SECONDS: float = float(os.getenv("PSLANG_HTTP_CONNECT_TIMEOUT", "5.0"))

# --- ChatGPT OAuth ---
CHATGPT_AUTHORIZE_URL: str = "https://auth.openai.com/authorize"
CHATGPT_TOKEN_URL: str = "https://auth.openai.com/oauth/token"
CHATGPT_API_BASE: str = "https://api.openai.com/v1"
CHATGPT_SCOPE: str = "openid profile email offline_access"
OAUTH_STATE_TTL_SECONDS: int = int(os.getenv("PSLANG_OAUTH_STATE_TTL", "600"))

# --- Clerk ---
CLERK_API_BASE: str = "https://api.clerk.com/v1"
CLERK_SESSION_CACHE_TTL: int = 60
CLERK_SESSION_CACHE_MAX: int = 1000
CLERK_SESSION_COOKIE: str = "__session"

# --- Resend ---
RESEND_API_BASE: str = "https://api.resend.com"

# --- Conversation summaries ---
ANTHROPIC_API_BASE: str = "https://api.anthropic.com/v1"
ANTHROPIC_API_VERSION: str = "2023-06-01"
SUMMARY_MODEL: str = os.getenv("PSLANG_SUMMARY_MODEL", "claude-3-5-sonnet-20241022")
SUMMARY_MAX_TOKENS: int = 150

# --- Consent ---
CONSENT_COOKIE_NAME: str = "ps_lang_consent"
CONSENT_VALIDITY_DAYS: int = 365
CONSENT_RENEWAL_WINDOW_DAYS: int = 30

# --- Rate Limiting ---
RATE_LIMIT_RPM: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
RATE_LIMIT_RPH: int = int(os.getenv("RATE_LIMIT_PER_HOUR", "1000"))
RATE_LIMIT_MAX_IPS: int = 10000

# --- API ---
API_LIST_LIMIT_DEFAULT: int = 100
API_LIST_LIMIT_MAX: int = 500
ADMIN_USER_LIST_LIMIT: int = 100


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def app_url() -> str:
    return (_env("APP_URL", DEFAULT_APP_URL) or DEFAULT_APP_URL).rstrip("/")


def chatgpt_client_id() -> str | None:
    return _env("CHATGPT_CLIENT_ID")


def chatgpt_client_secret() -> str | None:
    return _env("CHATGPT_CLIENT_SECRET")


def state_secret() -> str | None:
    """Fernet key used to sign OAuth state tokens."""
    return _env("PSLANG_STATE_SECRET")


def encryption_key() -> str | None:
    """Fernet key used to encrypt stored connector tokens."""
    return _env("PSLANG_ENCRYPTION_KEY")


def clerk_secret_key() -> str | None:
    return _env("CLERK_SECRET_KEY")


def clerk_jwks_url() -> str | None:
    return _env("CLERK_JWKS_URL")


def clerk_issuer() -> str | None:
    return _env("CLERK_ISSUER")


def super_admin_emails() -> list[str]:
    raw = _env("SUPER_ADMIN_EMAILS", "") or ""
    return [email.strip().lower() for email in raw.split(",") if email.strip()]


def resend_api_key() -> str | None:
    return _env("RESEND_API_KEY")


def resend_audience_id() -> str | None:
    return _env("RESEND_AUDIENCE_ID")


def anthropic_api_key() -> str | None:
    return _env("ANTHROPIC_API_KEY")


def feedback_recipient() -> str:
    return _env("FEEDBACK_RECIPIENT", DEFAULT_FEEDBACK_RECIPIENT) or DEFAULT_FEEDBACK_RECIPIENT


def email_sender() -> str:
    return _env("PSLANG_EMAIL_SENDER", DEFAULT_EMAIL_SENDER) or DEFAULT_EMAIL_SENDER


def allowed_origins() -> list[str]:
    raw = _env("PSLANG_ALLOWED_ORIGINS")
    if not raw:
        return list(DEFAULT_ALLOWED_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
