"""SQLite access for PS-LANG

All persistent state (connector credentials, synced conversations, retention
preferences, consent records, feedback and signups) lives in one SQLite file,
PSLANG_DB_PATH. Repositories borrow a connection with get_db_connection() or
db_transaction(); connections are opened lazily, up to DB_POOL_SIZE, and
reused across requests.
"""

from __future__ import annotations

import atexit
import os
import sqlite3
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from queue import Empty, Queue
from threading import Lock
from typing import Any, TypeVar

from pslang.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
)
from pslang.observability.logging import get_logger
from pslang.observability.telemetry import counter, log_event

F = TypeVar("F", bound=Callable[..., Any])

DB_PATH = Path(__file__).parent.parent / "data" / "pslang.db"

_LOCK_ERROR_CODES = frozenset({sqlite3.SQLITE_BUSY, sqlite3.SQLITE_LOCKED})

logger = get_logger(__name__)


def retry_on_db_lock(
    attempts: int = DB_RETRY_MAX,
    delay: float = DB_RETRY_BASE_DELAY,
) -> Callable[[F], F]:
    """
    Retry a database write that failed with SQLITE_BUSY or SQLITE_LOCKED.

    The wait doubles after every failed attempt, capped at DB_RETRY_MAX_DELAY.
    Any other OperationalError propagates immediately.
    """
    attempts = max(attempts, 1)

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            wait = delay
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    locked = getattr(e, "sqlite_errorcode", None) in _LOCK_ERROR_CODES
                    if not locked or attempt == attempts:
                        raise
                    counter("database.lock_retries")
                    logger.warning(
                        "%s: database locked, attempt %d/%d, waiting %.2fs",
                        func.__name__,
                        attempt,
                        attempts,
                        wait,
                    )
                    time.sleep(wait)
                    wait = min(wait * 2, DB_RETRY_MAX_DELAY)

        return wrapper  # type: ignore[return-value]

    return decorator


class ConnectionPool:
    """Connections to one database file, opened on demand and handed out one at a time."""

    def __init__(self, db_path: Path, size: int = DB_POOL_SIZE) -> None:
        self.db_path = db_path
        self.size = max(size, 1)
        self.closed = False
        self._idle: Queue[sqlite3.Connection] = Queue()
        self._opened = 0
        self._lock = Lock()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=DB_CONNECT_TIMEOUT,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def acquire(self) -> sqlite3.Connection:
        """
        Borrow a connection.

        Raises:
            RuntimeError: If the pool is closed, or every connection stays
                busy for DB_POOL_TIMEOUT seconds
        """
        if self.closed:
            raise RuntimeError("Connection pool has been closed")

        try:
            return self._idle.get_nowait()
        except Empty:
            pass

        with self._lock:
            may_open = self._opened < self.size
            if may_open:
                self._opened += 1

        if may_open:
            try:
                return self._open()
            except sqlite3.Error:
                with self._lock:
                    self._opened -= 1
                raise

        try:
            return self._idle.get(timeout=DB_POOL_TIMEOUT)
        except Empty:
            log_event("database.pool_exhausted", pool_size=self.size, db_path=str(self.db_path))
            raise RuntimeError("Database connection pool exhausted") from None

    def release(self, conn: sqlite3.Connection) -> None:
        # A borrower that raised mid-write must not leak its transaction
        if conn.in_transaction:
            conn.rollback()
        if self.closed:
            conn.close()
            with self._lock:
                self._opened -= 1
            return
        self._idle.put(conn)

    def close(self) -> None:
        self.closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except Empty:
                break
            conn.close()
            with self._lock:
                self._opened -= 1

    def stats(self) -> dict[str, Any]:
        idle = self._idle.qsize()
        return {
            "size": self.size,
            "opened": self._opened,
            "idle": idle,
            "in_use": self._opened - idle,
            "closed": self.closed,
        }


_pool: ConnectionPool | None = None
_pool_lock = Lock()


def get_db_path() -> Path:
    """PSLANG_DB_PATH, falling back to pslang/data/pslang.db."""
    if env_path := os.getenv("PSLANG_DB_PATH"):
        return Path(env_path)
    return DB_PATH


def get_pool() -> ConnectionPool:
    """The shared pool for get_db_path(); reopened when the path changes."""
    global _pool
    db_path = get_db_path()
    with _pool_lock:
        if _pool is None or _pool.closed or _pool.db_path != db_path:
            if _pool is not None:
                _pool.close()
            _pool = ConnectionPool(db_path)
        return _pool


def reset_pool() -> None:
    """Close the shared pool; the next get_pool() opens a new one."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.close()
        _pool = None


atexit.register(reset_pool)


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Borrow a pooled connection for the duration of the block.

    Raises:
        FileNotFoundError: If the database does not exist (run init_database first)
    """
    db_path = get_db_path()
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}")

    pool = get_pool()
    conn = pool.acquire()
    try:
        yield conn
    finally:
        pool.release(conn)


@contextmanager
def db_transaction() -> Generator[sqlite3.Connection, None, None]:
    """Borrow a connection and commit on success; roll back if the block raises."""
    with get_db_connection() as conn:
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()


def validate_schema() -> bool:
    """
    Raises:
        ValueError: If tables or columns are missing
    """
    from pslang.infrastructure.database_schema import validate_schema as _validate_schema

    with get_db_connection() as conn:
        return _validate_schema(conn)


def get_pool_stats() -> dict[str, Any]:
    """Connection usage of the shared pool, for /health/db."""
    return get_pool().stats()
