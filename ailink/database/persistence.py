"""
Persistence layer for the coordination bus.

One SQLite connection per Store, with every read-modify-write serialised by
the PersistenceGuard. In-process callers are serialised by a re-entrant
thread lock; for file databases a FileLock beside the database extends the
same critical section to other processes on the host.

USAGE:
    store = Store("data/ai_link.db")

    with store.guard.transaction() as conn:
        row = conn.execute("SELECT status FROM tasks WHERE id = ?", (task_id,)).fetchone()
        conn.execute("UPDATE tasks SET status = ? WHERE id = ?", ("in-progress", task_id))

    store.close()
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Optional

import filelock

from ailink.errors import PersistenceError, StoreError

logger = logging.getLogger("ailink.database")

MEMORY_DB = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    capabilities TEXT NOT NULL DEFAULT '[]',
    metadata TEXT NOT NULL DEFAULT '{}',
    registered_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    sequence_id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_id TEXT NOT NULL,
    to_id TEXT NOT NULL,
    body TEXT NOT NULL,
    kind TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    sent_at TEXT NOT NULL,
    read INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_messages_to_id ON messages (to_id, sequence_id);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    description TEXT NOT NULL,
    required_capabilities TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL,
    assigned_to TEXT,
    result TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks (status);

CREATE TABLE IF NOT EXISTS contexts (
    id TEXT PRIMARY KEY,
    data TEXT,
    authorized_ids TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    expires_at TEXT
);
"""

TABLES = ("agents", "messages", "tasks", "contexts")


class PersistenceGuard:
    """
    Serialisation point for all store access.

    ``transaction()`` opens a write transaction (BEGIN IMMEDIATE), commits on
    success and rolls back on any exception. ``read()`` opens a read-only
    snapshot under the same critical section. Nested use from the thread
    that already holds the guard joins the outer transaction.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        lock_path: Optional[Path] = None,
        timeout: float = 10.0,
    ):
        self._conn = conn
        self.timeout = timeout
        self._lock = threading.RLock()
        self._depth = 0
        self._file_lock = (
            filelock.FileLock(str(lock_path), timeout=timeout) if lock_path else None
        )

    @contextmanager
    def _critical_section(self, begin: str) -> Generator[sqlite3.Connection, None, None]:
        if not self._lock.acquire(timeout=self.timeout):
            raise PersistenceError(
                f"Timed out after {self.timeout}s waiting for the store lock"
            )
        try:
            if self._depth:
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return

            if self._file_lock is not None:
                try:
                    self._file_lock.acquire()
                except filelock.Timeout:
                    raise PersistenceError(
                        f"Timed out after {self.timeout}s waiting for {self._file_lock.lock_file}"
                    )
            try:
                self._conn.execute(begin)
                self._depth = 1
                try:
                    yield self._conn
                except BaseException:
                    if self._conn.in_transaction:
                        self._conn.execute("ROLLBACK")
                    raise
                else:
                    self._conn.execute("COMMIT")
                finally:
                    self._depth = 0
            finally:
                if self._file_lock is not None:
                    self._file_lock.release()
        finally:
            self._lock.release()

    def transaction(self):
        """Critical section for read-modify-write access."""
        return self._critical_section("BEGIN IMMEDIATE")

    def read(self):
        """Critical section for a consistent read-only snapshot."""
        return self._critical_section("BEGIN")

    @contextmanager
    def closing(self) -> Generator[None, None, None]:
        """Hold the guard with no transaction open, waiting out any in flight."""
        if not self._lock.acquire(timeout=self.timeout):
            raise PersistenceError(
                f"Timed out after {self.timeout}s waiting for the store lock"
            )
        try:
            yield
        finally:
            self._lock.release()


class Store:
    """
    The single shared store: registry, mailbox, task queue and contexts.

    Constructed once at process start and injected into every component.
    """

    def __init__(self, db_path: str = MEMORY_DB, lock_timeout: float = 10.0):
        self.db_path = str(db_path)
        self.lock_timeout = lock_timeout
        self._closed = False

        lock_path = None
        try:
            if self.db_path == MEMORY_DB:
                conn = sqlite3.connect(
                    MEMORY_DB,
                    timeout=lock_timeout,
                    check_same_thread=False,
                    isolation_level=None,
                )
            else:
                path = Path(self.db_path)
                path.parent.mkdir(parents=True, exist_ok=True)
                lock_path = path.with_suffix(path.suffix + ".lock")
                conn = sqlite3.connect(
                    str(path),
                    timeout=lock_timeout,
                    check_same_thread=False,
                    isolation_level=None,
                )
                conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open store at {self.db_path}: {e}")

        conn.row_factory = sqlite3.Row
        self._conn = conn
        self.guard = PersistenceGuard(conn, lock_path=lock_path, timeout=lock_timeout)

        with self.guard.transaction() as tx:
            self._create_schema(tx)

        logger.info(f"Store initialized at {self.db_path}")

    @staticmethod
    def _create_schema(conn: sqlite3.Connection) -> None:
        # executescript would COMMIT the open transaction, so run statements one by one
        for statement in SCHEMA.split(";"):
            if statement.strip():
                conn.execute(statement)

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> Dict[str, int]:
        """Row counts per table."""
        with self.guard.read() as conn:
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in TABLES
            }

    def close(self) -> None:
        if self._closed:
            return
        with self.guard.closing():
            self._conn.close()
            self._closed = True
        logger.info(f"Store closed ({self.db_path})")
