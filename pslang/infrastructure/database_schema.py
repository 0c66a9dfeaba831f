"""
Database schema initialization for PS-LANG.

Holds the SQL schema and the startup validation check. Uniqueness of
(user_id, provider) credentials and of synced conversations is maintained
by the repositories with lookup-then-upsert, so the indexes below are
lookup indexes only.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from pslang.observability.logging import get_logger

logger = get_logger(__name__)


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Safe to run multiple times - uses CREATE TABLE IF NOT EXISTS.

    Args:
        db_path: Path to the database file

    Side Effects:
    - Creates tables in the PS-LANG database if they don't exist
    - Creates indexes for query performance
    - Creates the parent data directory if needed
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)

    conn.executescript("""
        CREATE TABLE IF NOT EXISTS connector_credentials (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            encrypted_access_token TEXT,
            encrypted_refresh_token TEXT,
            encrypted_api_key TEXT,
            status TEXT NOT NULL DEFAULT 'disconnected',
            settings TEXT NOT NULL DEFAULT '{}',
            connected_at TEXT,
            last_sync_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_connector_credentials_user_provider
            ON connector_credentials(user_id, provider);

        CREATE TABLE IF NOT EXISTS synced_conversations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            external_conversation_id TEXT NOT NULL,
            title TEXT NOT NULL,
            messages TEXT NOT NULL,
            psl_prompt TEXT NOT NULL DEFAULT '',
            meta_tags TEXT NOT NULL DEFAULT '[]',
            zones TEXT NOT NULL DEFAULT '[]',
            private_signals TEXT NOT NULL DEFAULT '[]',
            content_hash TEXT NOT NULL,
            conversation_date TEXT,
            synced_at TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_synced_conversations_owner
            ON synced_conversations(user_id, provider, external_conversation_id);
        CREATE INDEX IF NOT EXISTS idx_synced_conversations_date
            ON synced_conversations(user_id, conversation_date);

        CREATE TABLE IF NOT EXISTS retention_preferences (
            user_id TEXT PRIMARY KEY,
            tier TEXT NOT NULL,
            previous_tier TEXT,
            tier_changed_at TEXT,
            research_contributor_since TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS consent_history (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            session_id TEXT NOT NULL,
            action TEXT NOT NULL,
            status TEXT NOT NULL,
            granular TEXT NOT NULL,
            gpc_detected INTEGER NOT NULL DEFAULT 0,
            ip_hash TEXT,
            user_agent TEXT,
            referrer TEXT,
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_consent_history_user
            ON consent_history(user_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_consent_history_session
            ON consent_history(session_id, created_at);

        CREATE TABLE IF NOT EXISTS feedback (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            email TEXT,
            text TEXT NOT NULL,
            feedback_type TEXT,
            rating INTEGER,
            version TEXT,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_feedback_user ON feedback(user_id);

        CREATE TABLE IF NOT EXISTS signups (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL,
            kind TEXT NOT NULL,
            name TEXT,
            user_id TEXT,
            user_segment TEXT NOT NULL,
            intent TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_signups_email_kind ON signups(email, kind);
    """)

    conn.commit()
    conn.close()

    logger.info("Database initialized: %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Args:
        conn: Active database connection

    Returns:
        True if valid

    Raises:
        ValueError: If tables are missing
    """
    required_tables = {
        "connector_credentials": ["id", "user_id", "provider", "status", "last_sync_at"],
        "synced_conversations": [
            "id",
            "user_id",
            "provider",
            "external_conversation_id",
            "content_hash",
        ],
        "retention_preferences": ["user_id", "tier", "previous_tier"],
        "consent_history": ["id", "session_id", "action", "status", "expires_at"],
        "feedback": ["id", "text"],
        "signups": ["id", "email", "kind"],
    }

    cursor = conn.cursor()

    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(required_tables.keys()) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in required_tables.items():
        # Schema identifiers cannot be parameterized; names come from the dict above
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid table name: {table}")

        cursor.execute(f"PRAGMA table_info({table})")
        existing_cols = {row[1] for row in cursor.fetchall()}

        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {missing_cols}")

    return True
