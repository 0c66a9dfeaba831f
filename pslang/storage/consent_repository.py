"""Repository for the consent audit trail (append-only)."""

from __future__ import annotations

from pslang.storage import BaseRepository
from pslang.storage.models import ConsentRecord


class ConsentRepository(BaseRepository):
    def __init__(self) -> None:
        super().__init__("consent_history")

    def save(self, record: ConsentRecord) -> ConsentRecord:
        """
        Side Effects:
            - Inserts one row into consent_history
        """
        self.insert(record.to_db_dict())
        return record

    def history_for_user(self, user_id: str) -> list[ConsentRecord]:
        rows = self.query_all(
            "SELECT * FROM consent_history WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        return [ConsentRecord.from_db_row(row) for row in rows]

    def history_for_session(self, session_id: str) -> list[ConsentRecord]:
        rows = self.query_all(
            "SELECT * FROM consent_history WHERE session_id = ? ORDER BY created_at DESC",
            (session_id,),
        )
        return [ConsentRecord.from_db_row(row) for row in rows]

    def latest(self, user_id: str | None = None, session_id: str | None = None) -> ConsentRecord | None:
        """Newest record for a user, falling back to the session."""
        if user_id:
            history = self.history_for_user(user_id)
            if history:
                return history[0]
        if session_id:
            history = self.history_for_session(session_id)
            if history:
                return history[0]
        return None
