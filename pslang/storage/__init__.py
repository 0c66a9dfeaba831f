"""Storage - database models and repositories"""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from pslang.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock


def _check_identifier(name: str) -> str:
    if not isinstance(name, str) or not name.replace("_", "").isalnum():
        raise ValueError(f"Invalid identifier: {name}")
    return name


class BaseRepository:
    """
    Base class for repositories over one table.

    Exposes the document-store style operations used across the app:
    insert, patch, query and delete. Uniqueness rules are enforced by
    subclasses through lookup-then-upsert.
    """

    def __init__(self, table_name: str, key_column: str = "id") -> None:
        self.table_name = _check_identifier(table_name)
        self.key_column = _check_identifier(key_column)

    @contextmanager
    def _get_conn(self) -> Generator[sqlite3.Connection, None, None]:
        with get_db_connection() as conn:
            yield conn

    def query_one(self, query: str, params: tuple[Any, ...] | None = None) -> sqlite3.Row | None:
        with self._get_conn() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            return cursor.fetchone()

    def query_all(self, query: str, params: tuple[Any, ...] | None = None) -> list[sqlite3.Row]:
        with self._get_conn() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            return cursor.fetchall()

    @retry_on_db_lock()
    def execute(self, query: str, params: tuple[Any, ...] | None = None) -> int:
        """
        Execute a write query (INSERT, UPDATE, DELETE)

        Returns:
            Number of rows affected

        Side Effects:
            - Writes to the database
            - Commits automatically (via db_transaction), rolls back on error
        """
        with db_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            return cursor.rowcount

    def insert(self, record: dict[str, Any]) -> None:
        """
        Insert one record.

        Side Effects:
            - Inserts a row into self.table_name
        """
        columns = [_check_identifier(column) for column in record]
        placeholders = ", ".join("?" for _ in columns)
        self.execute(
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(record.values()),
        )

    def patch(self, key: str, fields: dict[str, Any]) -> bool:
        """
        Update selected fields of the record with the given key.

        Returns:
            True if a row was updated

        Side Effects:
            - Updates one row in self.table_name
        """
        if not fields:
            return False
        assignments = ", ".join(f"{_check_identifier(column)} = ?" for column in fields)
        affected = self.execute(
            f"UPDATE {self.table_name} SET {assignments} WHERE {self.key_column} = ?",
            (*fields.values(), key),
        )
        return affected > 0

    def get(self, key: str) -> sqlite3.Row | None:
        return self.query_one(
            f"SELECT * FROM {self.table_name} WHERE {self.key_column} = ?",
            (key,),
        )

    def delete(self, key: str) -> bool:
        """
        Delete the record with the given key.

        Side Effects:
            - Deletes at most one row from self.table_name
        """
        affected = self.execute(
            f"DELETE FROM {self.table_name} WHERE {self.key_column} = ?",
            (key,),
        )
        return affected > 0

    def delete_for_user(self, user_id: str) -> int:
        """
        Delete every record owned by user_id.

        Returns:
            Number of rows deleted

        Side Effects:
            - Deletes rows from self.table_name
        """
        return self.execute(f"DELETE FROM {self.table_name} WHERE user_id = ?", (user_id,))


__all__ = ["BaseRepository"]
