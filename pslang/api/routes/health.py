"""Health check endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from pslang import __version__
from pslang.config import (
    anthropic_api_key,
    chatgpt_client_id,
    clerk_secret_key,
    encryption_key,
    resend_api_key,
    state_secret,
)
from pslang.storage.models import utc_now

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "PS-LANG API",
        "version": __version__,
        "timestamp": utc_now().isoformat(),
        "configured": {
            "identity": bool(clerk_secret_key()),
            "chatgpt_oauth": bool(chatgpt_client_id() and state_secret()),
            "credential_encryption": bool(encryption_key()),
            "email": bool(resend_api_key()),
            "summaries": bool(anthropic_api_key()),
        },
    }


@router.get("/health/db")
def database_health() -> dict[str, Any]:
    """
    Database connection pool health check

    Returns pool usage for spotting leaked connections.
    """
    from pslang.infrastructure.database import get_pool_stats

    stats = get_pool_stats()

    status = "healthy"
    if stats["in_use"] > stats["size"] * 0.8:
        status = "degraded"

    return {
        "status": status,
        "pool": stats,
        "timestamp": utc_now().isoformat(),
    }
