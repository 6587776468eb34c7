# focustrack/database.py
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS focus_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    task_id TEXT,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    planned_minutes INTEGER NOT NULL,
    duration_minutes INTEGER,
    completed INTEGER NOT NULL DEFAULT 0
);

-- at most one open session per user, enforced by the storage layer
CREATE UNIQUE INDEX IF NOT EXISTS uq_focus_sessions_open
    ON focus_sessions(user_id) WHERE ended_at IS NULL;

CREATE INDEX IF NOT EXISTS idx_focus_sessions_user_start
    ON focus_sessions(user_id, started_at);

CREATE TABLE IF NOT EXISTS streaks (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    activity_type TEXT NOT NULL,
    current_count INTEGER NOT NULL,
    longest_count INTEGER NOT NULL,
    last_credited TEXT NOT NULL,
    UNIQUE (user_id, activity_type)
);

-- owned by the task service; read-only here
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    completed_at TEXT,
    due_at TEXT
);

CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    task_id TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id);
CREATE INDEX IF NOT EXISTS idx_notes_user_created ON notes(user_id, created_at);
"""


class Database:
    """SQLite file shared by every service instance.

    Each operation opens its own connection so several processes can work
    against the same file; cross-instance invariants live in the schema.
    """

    def __init__(self, db_path: str | Path, busy_timeout: float = 5.0) -> None:
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        # autocommit mode: transactions are opened explicitly below
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from the first read."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _create_tables(self) -> None:
        with self.read() as conn:
            conn.executescript(SCHEMA)
        logger.info("Database ready at %s", self.db_path)
