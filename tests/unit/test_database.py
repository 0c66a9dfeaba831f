"""Unit tests for the SQLite connection pool

Tests cover:
- Connections are opened lazily and reused
- Pool usage stats for /health/db
- Exhausted and closed pools
- Transactions commit or roll back, leaked transactions are rolled back on release
- Lock retries by SQLite error code
"""

from __future__ import annotations

import sqlite3

import pytest

from pslang.infrastructure import database as database_module
from pslang.infrastructure.database import (
    ConnectionPool,
    db_transaction,
    get_db_connection,
    get_pool,
    get_pool_stats,
    reset_pool,
    retry_on_db_lock,
)


@pytest.fixture
def scratch_table():
    with get_db_connection() as conn:
        conn.execute("CREATE TABLE scratch (value TEXT)")


def count_scratch() -> int:
    with get_db_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM scratch").fetchone()[0]


def test_connection_reused():
    with get_db_connection() as first:
        pass
    with get_db_connection() as second:
        pass

    assert first is second
    assert get_pool_stats()["opened"] == 1


def test_stats_while_borrowed():
    with get_db_connection():
        with get_db_connection():
            stats = get_pool_stats()

    assert stats["in_use"] == 2
    assert stats["idle"] == 0
    assert get_pool_stats()["idle"] == 2


def test_rows_by_column_name():
    with get_db_connection() as conn:
        row = conn.execute("SELECT 1 AS one").fetchone()

    assert row["one"] == 1


def test_exhausted_pool_raises(database, monkeypatch):
    monkeypatch.setattr(database_module, "DB_POOL_TIMEOUT", 0.01)
    pool = ConnectionPool(database, size=1)
    held = pool.acquire()

    with pytest.raises(RuntimeError, match="exhausted"):
        pool.acquire()

    pool.release(held)
    assert pool.acquire() is held


def test_closed_pool_refuses_and_closes_returned_connections(database):
    pool = ConnectionPool(database, size=2)
    conn = pool.acquire()
    pool.close()

    with pytest.raises(RuntimeError, match="closed"):
        pool.acquire()

    pool.release(conn)
    assert pool.stats()["opened"] == 0


def test_reset_pool_reopens():
    before = get_pool()
    reset_pool()

    assert before.closed is True
    assert get_pool() is not before


def test_missing_database(tmp_path, monkeypatch):
    monkeypatch.setenv("PSLANG_DB_PATH", str(tmp_path / "absent.db"))

    with pytest.raises(FileNotFoundError):
        with get_db_connection():
            pass


def test_transaction_commits(scratch_table):
    with db_transaction() as conn:
        conn.execute("INSERT INTO scratch VALUES ('kept')")

    assert count_scratch() == 1


def test_transaction_rolls_back_on_error(scratch_table):
    with pytest.raises(ValueError):
        with db_transaction() as conn:
            conn.execute("INSERT INTO scratch VALUES ('lost')")
            raise ValueError("boom")

    assert count_scratch() == 0


def test_uncommitted_write_rolled_back_on_release(scratch_table):
    with get_db_connection() as conn:
        conn.execute("INSERT INTO scratch VALUES ('forgotten')")

    assert conn.in_transaction is False
    assert count_scratch() == 0


def locked_error(code: int = sqlite3.SQLITE_BUSY) -> sqlite3.OperationalError:
    error = sqlite3.OperationalError("database is locked")
    error.sqlite_errorcode = code
    return error


def test_retry_on_lock_backs_off(monkeypatch):
    sleeps = []
    monkeypatch.setattr(database_module.time, "sleep", sleeps.append)
    attempts = []

    @retry_on_db_lock(attempts=3, delay=0.1)
    def write():
        attempts.append(1)
        if len(attempts) < 3:
            raise locked_error()
        return "done"

    assert write() == "done"
    assert sleeps == [0.1, 0.2]


def test_retry_gives_up(monkeypatch):
    monkeypatch.setattr(database_module.time, "sleep", lambda _: None)

    @retry_on_db_lock(attempts=2, delay=0.1)
    def write():
        raise locked_error(sqlite3.SQLITE_LOCKED)

    with pytest.raises(sqlite3.OperationalError):
        write()


def test_other_errors_not_retried():
    attempts = []

    @retry_on_db_lock(attempts=5, delay=0.1)
    def write():
        attempts.append(1)
        raise sqlite3.OperationalError("no such table: nowhere")

    with pytest.raises(sqlite3.OperationalError, match="no such table"):
        write()
    assert len(attempts) == 1