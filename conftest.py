"""Shared fixtures: a temporary SQLite database, a controllable clock and a
notifier that records celebrations.

Task and note rows belong to the task service, so tests insert them directly
with SQL, the same way that service would.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from focustrack.database import Database
from focustrack.services.aggregation import AggregationReporter
from focustrack.services.clock import to_storage
from focustrack.services.lifecycle import SessionLifecycleManager
from focustrack.services.session_store import SessionStore
from focustrack.services.streaks import StreakTracker
from focustrack.services.task_directory import TaskDirectory

UTC = timezone.utc
# A Monday, mid-morning
T0 = datetime(2024, 3, 11, 10, 0, tzinfo=UTC)


class FrozenClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> datetime:
        self.moment += timedelta(**kwargs)
        return self.moment

    def set(self, moment: datetime) -> None:
        self.moment = moment


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict]] = []

    def celebrate(self, user_id: str, event_kind: str, payload: dict) -> None:
        self.events.append((user_id, event_kind, payload))

    def kinds(self) -> list[str]:
        return [kind for _, kind, _ in self.events]


class FailingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    def celebrate(self, user_id: str, event_kind: str, payload: dict) -> None:
        self.calls += 1
        raise ConnectionError("notification service unreachable")


# ---------------------------------------------------------------------------
# Raw row helpers
# ---------------------------------------------------------------------------


def add_task(
    db: Database,
    user_id: str,
    *,
    task_id: str | None = None,
    title: str = "Write report",
    created_at: datetime = T0 - timedelta(days=10),
    completed_at: datetime | None = None,
    due_at: datetime | None = None,
) -> str:
    task_id = task_id or uuid.uuid4().hex
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO tasks (id, user_id, title, created_at, completed_at, due_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                task_id,
                user_id,
                title,
                to_storage(created_at),
                to_storage(completed_at) if completed_at else None,
                to_storage(due_at) if due_at else None,
            ),
        )
    return task_id


def add_note(db: Database, user_id: str, created_at: datetime, task_id: str | None = None) -> None:
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO notes (id, user_id, task_id, created_at) VALUES (?, ?, ?, ?)",
            (uuid.uuid4().hex, user_id, task_id, to_storage(created_at)),
        )


def add_session(
    db: Database,
    user_id: str,
    started_at: datetime,
    minutes: int | None,
    *,
    completed: bool = True,
    task_id: str | None = None,
) -> str:
    """Insert a session row; ``minutes=None`` leaves it open."""
    session_id = uuid.uuid4().hex
    ended_at = started_at + timedelta(minutes=minutes) if minutes is not None else None
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO focus_sessions (id, user_id, task_id, started_at, ended_at, "
            "planned_minutes, duration_minutes, completed) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                session_id,
                user_id,
                task_id,
                to_storage(started_at),
                to_storage(ended_at) if ended_at else None,
                25,
                minutes,
                int(completed and minutes is not None),
            ),
        )
    return session_id


def set_streak(db: Database, user_id: str, activity_type: str, current: int, longest: int, last_credited) -> None:
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO streaks (id, user_id, activity_type, current_count, longest_count, last_credited) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (uuid.uuid4().hex, user_id, activity_type, current, longest, last_credited.isoformat()),
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "focustrack_test.db"


@pytest.fixture()
def db(db_path: Path) -> Database:
    return Database(db_path)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def store(db: Database) -> SessionStore:
    return SessionStore(db)


@pytest.fixture()
def tasks(db: Database) -> TaskDirectory:
    return TaskDirectory(db)


@pytest.fixture()
def streaks(db: Database, clock: FrozenClock, notifier: RecordingNotifier) -> StreakTracker:
    return StreakTracker(db, clock, UTC, notifier)


@pytest.fixture()
def lifecycle(store, tasks, streaks, clock, notifier) -> SessionLifecycleManager:
    return SessionLifecycleManager(
        store=store,
        tasks=tasks,
        streaks=streaks,
        clock=clock,
        notifier=notifier,
        tz=UTC,
    )


@pytest.fixture()
def reporter(store, tasks, streaks, clock) -> AggregationReporter:
    return AggregationReporter(store=store, tasks=tasks, streaks=streaks, clock=clock, tz=UTC)
