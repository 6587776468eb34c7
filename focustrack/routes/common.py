"""Shared helpers: core dataclasses → API models, domain errors → HTTP."""
from fastapi import HTTPException

from focustrack.errors import FocusTrackError
from focustrack.schemas.response import (
    ActiveSessionOut,
    MetricTotalsOut,
    SessionOut,
    StreakOut,
    StreakUpdateOut,
)
from focustrack.services.aggregation import MetricTotals
from focustrack.services.lifecycle import ActiveSession
from focustrack.services.session_store import FocusSession
from focustrack.services.streaks import StreakOutcome, StreakStatus, StreakUpdate


def http_error(exc: FocusTrackError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def session_out(session: FocusSession) -> SessionOut:
    return SessionOut(
        id=session.id,
        user_id=session.user_id,
        task_id=session.task_id,
        started_at=session.started_at,
        ended_at=session.ended_at,
        planned_minutes=session.planned_minutes,
        duration_minutes=session.duration_minutes,
        completed=session.completed,
    )


def active_out(active: ActiveSession | None) -> ActiveSessionOut | None:
    if active is None:
        return None
    return ActiveSessionOut(
        **session_out(active.session).model_dump(),
        elapsed_minutes=active.elapsed_minutes,
    )


def streak_status_out(status: StreakStatus) -> StreakOut:
    return StreakOut(
        activity_type=status.activity_type.value,
        current_count=status.current_count,
        longest_count=status.longest_count,
        last_credited=status.last_credited,
        alive=status.alive,
    )


def streak_update_out(update: StreakUpdate | None) -> StreakUpdateOut | None:
    if update is None:
        return None
    streak = update.streak
    return StreakUpdateOut(
        outcome=update.outcome.value,
        streak=StreakOut(
            activity_type=streak.activity_type.value,
            current_count=streak.current_count,
            longest_count=streak.longest_count,
            last_credited=streak.last_credited,
            # an anomalous update leaves last_credited in the future
            alive=update.outcome is not StreakOutcome.ANOMALY,
        ),
    )


def totals_out(totals: MetricTotals) -> MetricTotalsOut:
    return MetricTotalsOut(
        tasks_completed=totals.tasks_completed,
        focus_minutes=totals.focus_minutes,
        sessions=totals.sessions,
        notes_created=totals.notes_created,
    )
