"""Repositories for feedback entries and newsletter/alpha signups."""

from __future__ import annotations

import uuid

from pslang.storage import BaseRepository
from pslang.storage.models import FeedbackEntry, Signup, SignupKind, utc_now


class FeedbackRepository(BaseRepository):
    def __init__(self) -> None:
        super().__init__("feedback")

    def add(
        self,
        text: str,
        user_id: str | None = None,
        email: str | None = None,
        feedback_type: str | None = None,
        rating: int | None = None,
        version: str | None = None,
    ) -> FeedbackEntry:
        entry = FeedbackEntry(
            id=str(uuid.uuid4()),
            user_id=user_id,
            email=email,
            text=text,
            feedback_type=feedback_type,
            rating=rating,
            version=version,
        )
        self.insert(
            {
                "id": entry.id,
                "user_id": entry.user_id,
                "email": entry.email,
                "text": entry.text,
                "feedback_type": entry.feedback_type,
                "rating": entry.rating,
                "version": entry.version,
                "created_at": entry.created_at.isoformat(),
            }
        )
        return entry

    def list_for_user(self, user_id: str) -> list[FeedbackEntry]:
        rows = self.query_all(
            "SELECT * FROM feedback WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        return [FeedbackEntry.from_db_row(row) for row in rows]


class SignupRepository(BaseRepository):
    """One row per (email, kind); repeat signups refresh the existing row."""

    def __init__(self) -> None:
        super().__init__("signups")

    def find(self, email: str, kind: SignupKind) -> Signup | None:
        row = self.query_one(
            "SELECT * FROM signups WHERE email = ? AND kind = ?",
            (email.lower(), kind.value),
        )
        return Signup.from_db_row(row) if row else None

    def upsert(
        self,
        email: str,
        kind: SignupKind,
        user_segment: str,
        intent: str,
        name: str | None = None,
        user_id: str | None = None,
    ) -> tuple[Signup, bool]:
        """
        Returns:
            The stored signup and True when it was newly created

        Side Effects:
            - Inserts or updates one row in signups
        """
        now = utc_now().isoformat()
        existing = self.find(email, kind)
        if existing:
            self.patch(
                existing.id,
                {
                    "name": name or existing.name,
                    "user_id": user_id or existing.user_id,
                    "user_segment": user_segment,
                    "intent": intent,
                    "updated_at": now,
                },
            )
        else:
            self.insert(
                {
                    "id": str(uuid.uuid4()),
                    "email": email.lower(),
                    "kind": kind.value,
                    "name": name,
                    "user_id": user_id,
                    "user_segment": user_segment,
                    "intent": intent,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        signup = self.find(email, kind)
        assert signup is not None
        return signup, existing is None

    def list_for_email(self, email: str) -> list[Signup]:
        rows = self.query_all(
            "SELECT * FROM signups WHERE email = ? ORDER BY created_at DESC",
            (email.lower(),),
        )
        return [Signup.from_db_row(row) for row in rows]

    def delete_for_email(self, email: str) -> int:
        return self.execute("DELETE FROM signups WHERE email = ?", (email.lower(),))
