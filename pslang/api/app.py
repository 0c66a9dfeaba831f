"""FastAPI server for the PS-LANG site backend"""

from __future__ import annotations

import sqlite3
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pslang.api.middleware.rate_limit import RateLimitMiddleware
from pslang.api.middleware.security_headers import SecurityHeadersMiddleware
from pslang.api.routes.admin import router as admin_router
from pslang.api.routes.connectors import router as connectors_router
from pslang.api.routes.conversations import router as conversations_router
from pslang.api.routes.feedback import router as feedback_router
from pslang.api.routes.health import router as health_router
from pslang.api.routes.newsletter import router as newsletter_router
from pslang.api.routes.privacy import router as privacy_router
from pslang.api.routes.user import router as user_router
from pslang.config import (
    APP_VERSION,
    RATE_LIMIT_MAX_IPS,
    RATE_LIMIT_RPH,
    RATE_LIMIT_RPM,
    allowed_origins,
)
from pslang.errors import ApiError
from pslang.infrastructure.database import get_db_path, validate_schema
from pslang.infrastructure.database_schema import init_database
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter, log_event
from pslang.utils.error_sanitizer import redact, sanitize_error_message

# Load environment variables from .env file
load_dotenv()

app = FastAPI(title="PS-LANG API", version=APP_VERSION)

logger = get_logger(__name__)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Every ApiError becomes {"error": message} with its own status."""
    counter(f"api.errors.{exc.status_code}")
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, redact(exc.message))
        message = sanitize_error_message(exc.message, exc.status_code)
    else:
        message = exc.message
    return JSONResponse(status_code=exc.status_code, content={"error": message})


# Validation failures are plain bad requests; field names only, no rule text
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning("Validation error on %s: %s", redact(str(request.url)), exc.errors())
    counter("api.validation_errors")

    fields = [str(err["loc"][-1]) for err in exc.errors() if err.get("loc")]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": f"Invalid request: {', '.join(fields)}" if fields else "Invalid request",
            "invalid_fields": fields,
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    counter("api.errors.500")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# Rate limiting - prevent abuse
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=RATE_LIMIT_RPM,
    requests_per_hour=RATE_LIMIT_RPH,
    max_ips=RATE_LIMIT_MAX_IPS,
)

app.add_middleware(SecurityHeadersMiddleware)

# Initialize database schema
try:
    logger.info("Initializing database schema...")
    init_database(get_db_path())
    validate_schema()
    logger.info("Database initialization complete")
except sqlite3.OperationalError as e:
    logger.critical("Database schema error: %s", e)
    raise RuntimeError(f"Database initialization failed: {e}") from e
except ValueError as e:
    logger.critical("Database schema incomplete: %s", e)
    raise RuntimeError(f"Database initialization failed: {e}") from e
except OSError as e:
    logger.critical("Database path not usable: %s", e)
    raise RuntimeError(f"Database initialization failed: {e}") from e

app.include_router(health_router)
app.include_router(privacy_router)
app.include_router(connectors_router)
app.include_router(conversations_router)
app.include_router(feedback_router)
app.include_router(newsletter_router)
app.include_router(user_router)
app.include_router(admin_router)

log_event("api.startup", service="pslang-site", version=APP_VERSION)


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "PS-LANG API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "permissions": "/api/privacy/permissions",
            "tier": "/api/privacy/tier",
            "consent": "/api/consent/save",
            "export": "/api/privacy/export",
            "delete_data": "/api/privacy/delete-data",
            "chatgpt_authorize": "/api/auth/chatgpt/authorize",
            "chatgpt_sync": "/api/sync/chatgpt",
            "claude_sync": "/api/sync/claude",
            "connectors": "/api/connectors",
            "conversations": "/api/conversations",
            "summarize": "/api/conversations/summarize",
            "psl_transform": "/api/psl/transform",
            "feedback": "/api/feedback",
            "feature_request": "/api/feature-request",
            "newsletter": "/api/newsletter",
            "alpha_signup": "/api/alpha-signup",
            "me": "/api/user/me",
        },
    }
