"""FastAPI dependencies that assemble the core services per request.

Tests swap ``get_settings``, ``get_clock`` and ``get_notifier`` through
``app.dependency_overrides``.
"""
from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from focustrack.config import Settings, get_settings
from focustrack.database import Database
from focustrack.errors import Unauthorized
from focustrack.services.aggregation import AggregationReporter
from focustrack.services.clock import Clock, SystemClock
from focustrack.services.lifecycle import SessionLifecycleManager
from focustrack.services.notifier import Notifier, build_notifier
from focustrack.services.session_store import SessionStore
from focustrack.services.streaks import StreakTracker
from focustrack.services.task_directory import TaskDirectory


@lru_cache
def _open_database(path: str, busy_timeout: float) -> Database:
    return Database(path, busy_timeout)


def get_database(settings: Settings = Depends(get_settings)) -> Database:
    return _open_database(settings.database_path, settings.sqlite_busy_timeout_seconds)


def get_clock() -> Clock:
    return SystemClock()


def get_notifier(settings: Settings = Depends(get_settings)) -> Notifier:
    return build_notifier(settings)


def current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, set by the upstream authentication layer."""
    if not x_user_id:
        exc = Unauthorized("User not authenticated")
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail())
    return x_user_id


def get_streak_tracker(
    settings: Settings = Depends(get_settings),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> StreakTracker:
    return StreakTracker(db, clock, settings.tz, notifier, settings.streak_milestones)


def get_lifecycle(
    settings: Settings = Depends(get_settings),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    streaks: StreakTracker = Depends(get_streak_tracker),
) -> SessionLifecycleManager:
    return SessionLifecycleManager(
        store=SessionStore(db),
        tasks=TaskDirectory(db),
        streaks=streaks,
        clock=clock,
        notifier=notifier,
        tz=settings.tz,
        stale_after=timedelta(hours=settings.stale_session_hours),
        min_streak_minutes=settings.min_streak_minutes,
        daily_goal_minutes=settings.daily_focus_goal_minutes,
    )


def get_reporter(
    settings: Settings = Depends(get_settings),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
    streaks: StreakTracker = Depends(get_streak_tracker),
) -> AggregationReporter:
    return AggregationReporter(
        store=SessionStore(db),
        tasks=TaskDirectory(db),
        streaks=streaks,
        clock=clock,
        tz=settings.tz,
        min_streak_minutes=settings.min_streak_minutes,
        trend_threshold=settings.trend_threshold,
    )
