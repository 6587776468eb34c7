"""Read-only view of the task service's tables.

Tasks and notes are written by the board/task service; this core only
validates task ownership and reads completion/note facts for reporting.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime

from focustrack.database import Database
from focustrack.services.clock import from_storage, to_storage


@dataclass
class TaskFact:
    id: str
    user_id: str
    title: str
    created_at: datetime
    completed_at: datetime | None = None
    due_at: datetime | None = None

    def completed_by(self, moment: datetime) -> bool:
        return self.completed_at is not None and self.completed_at <= moment

    def overdue_at(self, moment: datetime) -> bool:
        return (
            self.due_at is not None
            and self.due_at < moment
            and not self.completed_by(moment)
        )


def _row_to_task(row: sqlite3.Row) -> TaskFact:
    return TaskFact(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        created_at=from_storage(row["created_at"]),
        completed_at=from_storage(row["completed_at"]),
        due_at=from_storage(row["due_at"]),
    )


class TaskDirectory:
    def __init__(self, db: Database) -> None:
        self.db = db

    def exists(self, task_id: str, user_id: str) -> bool:
        return self.get(task_id, user_id) is not None

    def get(self, task_id: str, user_id: str) -> TaskFact | None:
        with self.db.read() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def tasks_for_user(self, user_id: str) -> list[TaskFact]:
        with self.db.read() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at ASC",
                (user_id,),
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def note_times(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[datetime]:
        """Creation instants of a user's notes within [start, end)."""
        sql = "SELECT created_at FROM notes WHERE user_id = ?"
        params: list = [user_id]
        if start is not None:
            sql += " AND created_at >= ?"
            params.append(to_storage(start))
        if end is not None:
            sql += " AND created_at < ?"
            params.append(to_storage(end))

        with self.db.read() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [from_storage(r["created_at"]) for r in rows]
