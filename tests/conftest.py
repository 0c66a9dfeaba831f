"""
Pytest configuration shared across unit and integration tests

Every test gets its own SQLite database, fresh Fernet keys and empty
counters. Environment is prepared before pslang is imported because the
app initializes its schema at import time.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

_BOOT_DIR = Path(tempfile.mkdtemp(prefix="pslang-tests-"))
os.environ.setdefault("PSLANG_DB_PATH", str(_BOOT_DIR / "boot.db"))
os.environ.setdefault("PSLANG_ENV", "test")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "100000")
os.environ.setdefault("RATE_LIMIT_PER_HOUR", "100000")

from pslang.api.middleware.auth import clear_session_cache  # noqa: E402
from pslang.infrastructure.database import reset_pool  # noqa: E402
from pslang.infrastructure.database_schema import init_database  # noqa: E402
from pslang.observability.telemetry import reset_counters  # noqa: E402

UNSET_FOR_TESTS = (
    "CHATGPT_CLIENT_ID",
    "CHATGPT_CLIENT_SECRET",
    "CLERK_SECRET_KEY",
    "CLERK_JWKS_URL",
    "CLERK_ISSUER",
    "RESEND_API_KEY",
    "RESEND_AUDIENCE_ID",
    "ANTHROPIC_API_KEY",
    "SUPER_ADMIN_EMAILS",
    "APP_URL",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Fresh secrets, no upstream credentials."""
    for name in UNSET_FOR_TESTS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PSLANG_ENCRYPTION_KEY", Fernet.generate_key().decode())
    monkeypatch.setenv("PSLANG_STATE_SECRET", Fernet.generate_key().decode())
    monkeypatch.setenv("APP_URL", "https://ps-lang.test")
    reset_counters()
    clear_session_cache()
    yield
    clear_session_cache()


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    """Point the pool at a new database with the full schema."""
    db_path = tmp_path / "pslang.db"
    monkeypatch.setenv("PSLANG_DB_PATH", str(db_path))
    reset_pool()
    init_database(db_path)
    yield db_path
    reset_pool()
