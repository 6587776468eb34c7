"""SQLite-backed store for focus-session rows.

The single-open-session rule is the partial unique index on
``focus_sessions(user_id) WHERE ended_at IS NULL``: creating a session is an
atomic conditional insert and closing one is a conditional update, so the
invariant holds across any number of service instances sharing the file.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime

from focustrack.database import Database
from focustrack.services.clock import elapsed_minutes, from_storage, to_storage

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("started_at", "ended_at", "duration_minutes")


@dataclass
class FocusSession:
    id: str
    user_id: str
    task_id: str | None
    started_at: datetime
    planned_minutes: int
    ended_at: datetime | None = None
    duration_minutes: int | None = None
    completed: bool = False

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class OpenSessionExists(Exception):
    """The conditional insert lost to an existing open session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id


def _row_to_session(row: sqlite3.Row) -> FocusSession:
    return FocusSession(
        id=row["id"],
        user_id=row["user_id"],
        task_id=row["task_id"],
        started_at=from_storage(row["started_at"]),
        planned_minutes=row["planned_minutes"],
        ended_at=from_storage(row["ended_at"]),
        duration_minutes=row["duration_minutes"],
        completed=bool(row["completed"]),
    )


class SessionStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------ #
    # lifecycle writes
    # ------------------------------------------------------------------ #

    def close_stale(self, user_id: str, cutoff: datetime, now: datetime) -> list[FocusSession]:
        """Force-close every open session started before *cutoff* as incomplete."""
        closed: list[FocusSession] = []
        with self.db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM focus_sessions
                WHERE user_id = ? AND ended_at IS NULL AND started_at < ?
                """,
                (user_id, to_storage(cutoff)),
            ).fetchall()

            for row in rows:
                session = _row_to_session(row)
                session.ended_at = now
                session.duration_minutes = max(0, elapsed_minutes(session.started_at, now))
                session.completed = False
                conn.execute(
                    """
                    UPDATE focus_sessions
                    SET ended_at = ?, duration_minutes = ?, completed = 0
                    WHERE id = ? AND ended_at IS NULL
                    """,
                    (to_storage(now), session.duration_minutes, session.id),
                )
                closed.append(session)
        return closed

    def insert_open(self, session: FocusSession) -> FocusSession:
        """Insert *session*; raises :class:`OpenSessionExists` if the user already has one."""
        with self.db.transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO focus_sessions (
                        id, user_id, task_id, started_at, ended_at,
                        planned_minutes, duration_minutes, completed
                    )
                    VALUES (?, ?, ?, ?, NULL, ?, NULL, 0)
                    """,
                    (
                        session.id,
                        session.user_id,
                        session.task_id,
                        to_storage(session.started_at),
                        session.planned_minutes,
                    ),
                )
            except sqlite3.IntegrityError:
                row = conn.execute(
                    "SELECT id FROM focus_sessions WHERE user_id = ? AND ended_at IS NULL",
                    (session.user_id,),
                ).fetchone()
                if row is None:
                    raise
                raise OpenSessionExists(row["id"]) from None
        return session

    def close(
        self,
        session_id: str,
        user_id: str,
        ended_at: datetime,
        duration_minutes: int,
        completed: bool,
    ) -> FocusSession | None:
        """Close an open session. Returns None when it was not open (or not owned)."""
        with self.db.transaction() as conn:
            cur = conn.execute(
                """
                UPDATE focus_sessions
                SET ended_at = ?, duration_minutes = ?, completed = ?
                WHERE id = ? AND user_id = ? AND ended_at IS NULL
                """,
                (to_storage(ended_at), duration_minutes, int(completed), session_id, user_id),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM focus_sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return _row_to_session(row)

    def delete(self, session_id: str, user_id: str) -> bool:
        with self.db.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM focus_sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            )
            return cur.rowcount > 0

    # ------------------------------------------------------------------ #
    # reads
    # ------------------------------------------------------------------ #

    def get(self, session_id: str) -> FocusSession | None:
        with self.db.read() as conn:
            row = conn.execute(
                "SELECT * FROM focus_sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def find_open(self, user_id: str) -> FocusSession | None:
        with self.db.read() as conn:
            row = conn.execute(
                "SELECT * FROM focus_sessions WHERE user_id = ? AND ended_at IS NULL",
                (user_id,),
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def completed_between(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[FocusSession]:
        """Completed sessions whose start lies in [start, end), oldest first."""
        sql = "SELECT * FROM focus_sessions WHERE user_id = ? AND completed = 1"
        params: list = [user_id]
        if start is not None:
            sql += " AND started_at >= ?"
            params.append(to_storage(start))
        if end is not None:
            sql += " AND started_at < ?"
            params.append(to_storage(end))
        sql += " ORDER BY started_at ASC"

        with self.db.read() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_session(r) for r in rows]

    def query(
        self,
        user_id: str,
        *,
        task_id: str | None = None,
        completed: bool | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        sort_by: str = "started_at",
        descending: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[FocusSession], int]:
        """Filtered, sorted page of a user's sessions plus the unpaged total.

        *start* and *end* bound the start instant as [start, end).
        """
        where = ["user_id = ?"]
        params: list = [user_id]
        if task_id is not None:
            where.append("task_id = ?")
            params.append(task_id)
        if completed is not None:
            where.append("completed = ?")
            params.append(int(completed))
        if start is not None:
            where.append("started_at >= ?")
            params.append(to_storage(start))
        if end is not None:
            where.append("started_at < ?")
            params.append(to_storage(end))

        if sort_by not in SORTABLE_FIELDS:
            sort_by = "started_at"
        direction = "DESC" if descending else "ASC"
        clause = " AND ".join(where)

        with self.db.read() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM focus_sessions WHERE {clause}", params
            ).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM focus_sessions WHERE {clause} "
                f"ORDER BY {sort_by} {direction}, id ASC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        return [_row_to_session(r) for r in rows], total
