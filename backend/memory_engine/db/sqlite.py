"""SQLite management utilities."""

from __future__ import annotations

import queue
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from memory_engine.core.errors import ResourceTimeout, StoreFailure
from memory_engine.core.logging import get_logger
from memory_engine.core.metrics import POOL_WAIT

LOGGER = get_logger(__name__)

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
    "PRAGMA busy_timeout=5000;",
)


class ConnectionPool:
    """Fixed-size pool of sqlite3 connections shared between threads.

    ``acquire`` blocks for at most ``timeout`` seconds. Connections are checked
    with ``SELECT 1`` when handed back; a broken one is closed and replaced so
    the pool never shrinks.
    """

    def __init__(self, db_path: Path, size: int = 5, timeout: float = 30.0) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.db_path = db_path.expanduser()
        self.size = size
        self.timeout = timeout
        self._idle: "queue.Queue[sqlite3.Connection]" = queue.Queue(maxsize=size)
        self._lock = threading.Lock()
        self._closed = False
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            for _ in range(size):
                self._idle.put(self._open())
        except (OSError, sqlite3.Error) as exc:
            self.close()
            raise StoreFailure(f"cannot open database {self.db_path}: {exc}", error_code="db_open") from exc

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        for pragma in DEFAULT_PRAGMAS:
            conn.execute(pragma)
        return conn

    def acquire(self, timeout: float | None = None) -> sqlite3.Connection:
        if self._closed:
            raise StoreFailure("connection pool is closed", error_code="pool_closed")
        wait = self.timeout if timeout is None else timeout
        started = time.perf_counter()
        try:
            conn = self._idle.get(timeout=wait)
        except queue.Empty as exc:
            raise ResourceTimeout(
                f"no database connection available after {wait:.1f}s"
            ) from exc
        finally:
            POOL_WAIT.observe(time.perf_counter() - started)
        return conn

    def release(self, conn: sqlite3.Connection) -> None:
        if self._closed:
            conn.close()
            return
        if not _is_alive(conn):
            LOGGER.warning("Replacing broken pooled connection", extra={"ctx_db": str(self.db_path)})
            try:
                conn.close()
            except sqlite3.Error as exc:
                LOGGER.debug("Closing broken connection failed: %s", exc)
            conn = self._open()
        self._idle.put(conn)

    @contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[sqlite3.Connection]:
        conn = self.acquire(timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    @property
    def available(self) -> int:
        return self._idle.qsize()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()


def _is_alive(conn: sqlite3.Connection) -> bool:
    try:
        if conn.in_transaction:
            conn.rollback()
        conn.execute("SELECT 1").fetchone()
    except sqlite3.Error:
        return False
    return True


class SQLiteDatabase:
    """Thin wrapper around a connection pool providing pragmatic defaults."""

    def __init__(self, db_path: Path, pool_size: int = 5, timeout: float = 30.0) -> None:
        self.db_path = db_path.expanduser()
        self.pool = ConnectionPool(self.db_path, size=pool_size, timeout=timeout)

    def close(self) -> None:
        self.pool.close()

    def __enter__(self) -> "SQLiteDatabase":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        with self.pool.connection() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        with self.pool.connection() as conn:
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def executescript(self, script: str) -> None:
        with self.pool.connection() as conn:
            conn.executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> int:
        """Run a single statement in its own transaction; return the rowcount."""
        with self.transaction() as cursor:
            cursor.execute(sql, params or [])
            return cursor.rowcount

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        with self.pool.connection() as conn:
            cursor = conn.execute(sql, params or [])
            try:
                return list(iter_rows(cursor))
            finally:
                cursor.close()

    def ensure_schema(self, schema_sql: str | None = None) -> None:
        if schema_sql is None:
            schema_path = Path(__file__).with_name("schema.sql")
            schema_sql = schema_path.read_text(encoding="utf-8")
        try:
            self.executescript(schema_sql)
        except sqlite3.Error as exc:
            raise StoreFailure(f"failed to apply schema: {exc}", error_code="schema") from exc


def iter_rows(cursor: sqlite3.Cursor) -> Iterator[sqlite3.Row]:
    """Yield rows from a cursor lazily."""
    while True:
        row = cursor.fetchone()
        if row is None:
            break
        yield row


__all__ = ["ConnectionPool", "SQLiteDatabase", "iter_rows", "DEFAULT_PRAGMAS"]
