"""Focus-session lifecycle: start, end, reconcile.

start_session
  1. force-close this user's sessions left open longer than the stale window
     (completed=False, duration = elapsed wall-clock minutes)
  2. refuse with Conflict while any other open session remains
  3. validate the task reference, if any
  4. atomic conditional insert of the new open session

end_session
  conditional close (only an open row is updated), so a second close fails
  with InvalidState and the focus streak is credited at most once. A failed
  streak write after the close is logged and flagged on the result
  (streak_error) instead of failing the request.
"""
from __future__ import annotations

import logging
import math
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo

from focustrack.errors import Conflict, ErrorKind, InvalidState, NotFound, require_user
from focustrack.services.clock import (
    Clock,
    day_bounds,
    elapsed_minutes,
    local_date,
    round_half_up,
)
from focustrack.services.notifier import FOCUS_SESSION_COMPLETE, Notifier, celebrate_safely
from focustrack.services.session_stats import stats as session_stats
from focustrack.services.session_store import FocusSession, OpenSessionExists, SessionStore
from focustrack.services.streaks import ActivityType, StreakTracker, StreakUpdate
from focustrack.services.task_directory import TaskDirectory

logger = logging.getLogger(__name__)


@dataclass
class StartedSession:
    session: FocusSession
    reconciled: list[FocusSession] = field(default_factory=list)


@dataclass
class EndedSession:
    session: FocusSession
    streak: StreakUpdate | None = None
    clock_anomaly: bool = False
    streak_error: bool = False


@dataclass
class ActiveSession:
    session: FocusSession
    elapsed_minutes: int


@dataclass
class SessionPage:
    sessions: list[FocusSession]
    page: int
    limit: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


@dataclass
class TodaySummary:
    sessions: list[FocusSession]
    total_minutes: int
    goal_minutes: int
    active: ActiveSession | None = None

    @property
    def sessions_completed(self) -> int:
        return len(self.sessions)

    @property
    def total_hours(self) -> float:
        return round_half_up(self.total_minutes / 60 * 100) / 100

    @property
    def goal_progress(self) -> int:
        if self.goal_minutes <= 0:
            return 0
        return round_half_up(self.total_minutes / self.goal_minutes * 100)


class SessionLifecycleManager:
    def __init__(
        self,
        store: SessionStore,
        tasks: TaskDirectory,
        streaks: StreakTracker,
        clock: Clock,
        notifier: Notifier,
        tz: tzinfo,
        stale_after: timedelta = timedelta(hours=24),
        min_streak_minutes: int = 15,
        daily_goal_minutes: int = 240,
    ) -> None:
        self.store = store
        self.tasks = tasks
        self.streaks = streaks
        self.clock = clock
        self.notifier = notifier
        self.tz = tz
        self.stale_after = stale_after
        self.min_streak_minutes = min_streak_minutes
        self.daily_goal_minutes = daily_goal_minutes

    # ------------------------------------------------------------------ #
    # PUBLIC API
    # ------------------------------------------------------------------ #

    def start_session(
        self,
        user_id: str,
        task_id: str | None = None,
        planned_minutes: int = 25,
    ) -> StartedSession:
        user_id = require_user(user_id)
        if planned_minutes < 1:
            raise ValueError("planned_minutes must be a positive number of minutes.")

        now = self.clock.now()

        reconciled = self.store.close_stale(user_id, now - self.stale_after, now)
        if reconciled:
            session_stats.bump("stale_reconciled", len(reconciled))
            logger.info(
                "[%s] Closed %d stale session(s) as incomplete: %s",
                user_id, len(reconciled), ", ".join(s.id for s in reconciled),
            )

        active = self.store.find_open(user_id)
        if active is not None:
            raise Conflict(
                "You already have an active focus session. Please complete it first.",
                active.id,
            )

        if task_id and not self.tasks.exists(task_id, user_id):
            raise NotFound("Task not found or you do not have access to it")

        session = FocusSession(
            id=uuid.uuid4().hex,
            user_id=user_id,
            task_id=task_id or None,
            started_at=now,
            planned_minutes=planned_minutes,
        )
        try:
            self.store.insert_open(session)
        except OpenSessionExists as exc:
            # another instance won the race between our guard and insert
            raise Conflict(
                "You already have an active focus session. Please complete it first.",
                exc.session_id,
            ) from None

        session_stats.bump("sessions_started")
        logger.info("[%s] Started session %s (planned %d min)", user_id, session.id, planned_minutes)
        return StartedSession(session=session, reconciled=reconciled)

    def end_session(self, user_id: str, session_id: str, completed: bool = True) -> EndedSession:
        user_id = require_user(user_id)

        existing = self.store.get(session_id)
        if existing is None or existing.user_id != user_id:
            raise NotFound("Focus session not found or you do not have access to it")
        if not existing.is_open:
            raise InvalidState("Focus session has already ended")

        now = self.clock.now()
        duration = elapsed_minutes(existing.started_at, now)
        clock_anomaly = duration < 0
        if clock_anomaly:
            session_stats.bump("clock_anomalies")
            logger.warning(
                "[%s] %s: session %s ends %d min before it started; duration clamped to 0",
                user_id, ErrorKind.CLOCK_ANOMALY.value, session_id, -duration,
            )
            duration = 0

        session = self.store.close(session_id, user_id, now, duration, completed)
        if session is None:
            # closed concurrently between our read and the conditional update
            raise InvalidState("Focus session has already ended")

        session_stats.bump("sessions_completed" if completed else "sessions_abandoned")
        logger.info(
            "[%s] Ended session %s after %d min (completed=%s)",
            user_id, session_id, duration, completed,
        )

        result = EndedSession(session=session, clock_anomaly=clock_anomaly)
        if completed and duration >= self.min_streak_minutes:
            try:
                result.streak = self.streaks.update(user_id, ActivityType.FOCUS_SESSION)
            except sqlite3.Error as exc:
                # the close is already committed; report it rather than fail the request
                logger.error(
                    "[%s] Focus streak credit for session %s failed: %s",
                    user_id, session_id, exc,
                )
                result.streak_error = True

            task = self.tasks.get(session.task_id, user_id) if session.task_id else None
            celebrate_safely(
                self.notifier,
                user_id,
                FOCUS_SESSION_COMPLETE,
                {
                    "session_id": session.id,
                    "duration_minutes": duration,
                    "task_name": task.title if task else None,
                    "completed_at": now.isoformat(),
                },
            )
        return result

    def get_active_session(self, user_id: str) -> ActiveSession | None:
        user_id = require_user(user_id)
        session = self.store.find_open(user_id)
        if session is None:
            return None
        return ActiveSession(session=session, elapsed_minutes=self._elapsed(session))

    def get_session(self, user_id: str, session_id: str) -> FocusSession:
        user_id = require_user(user_id)
        session = self.store.get(session_id)
        if session is None or session.user_id != user_id:
            raise NotFound("Focus session not found or you do not have access to it")
        return session

    def list_sessions(
        self,
        user_id: str,
        *,
        task_id: str | None = None,
        completed: bool | None = None,
        start_day: date | None = None,
        end_day: date | None = None,
        sort_by: str = "started_at",
        descending: bool = True,
        page: int = 1,
        limit: int = 20,
    ) -> SessionPage:
        """Page of the user's sessions; start_day..end_day are calendar days in the
        reference timezone, both included."""
        user_id = require_user(user_id)
        if start_day and end_day and end_day < start_day:
            raise ValueError("end_date must not be before start_date.")
        page = max(1, page)
        limit = max(1, limit)
        sessions, total = self.store.query(
            user_id,
            task_id=task_id,
            completed=completed,
            start=day_bounds(start_day, self.tz)[0] if start_day else None,
            end=day_bounds(end_day, self.tz)[1] if end_day else None,
            sort_by=sort_by,
            descending=descending,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return SessionPage(sessions=sessions, page=page, limit=limit, total_count=total)

    def delete_session(self, user_id: str, session_id: str) -> None:
        user_id = require_user(user_id)
        if not self.store.delete(session_id, user_id):
            raise NotFound("Focus session not found or you do not have access to it")
        logger.info("[%s] Deleted session %s", user_id, session_id)

    def today_summary(self, user_id: str) -> TodaySummary:
        user_id = require_user(user_id)
        now = self.clock.now()
        start, end = day_bounds(local_date(now, self.tz), self.tz)
        sessions = self.store.completed_between(user_id, start, end)
        sessions.reverse()  # newest first

        return TodaySummary(
            sessions=sessions,
            total_minutes=sum(s.duration_minutes or 0 for s in sessions),
            goal_minutes=self.daily_goal_minutes,
            active=self.get_active_session(user_id),
        )

    # ------------------------------------------------------------------ #
    # helpers
    # ------------------------------------------------------------------ #

    def _elapsed(self, session: FocusSession) -> int:
        minutes = elapsed_minutes(session.started_at, self.clock.now())
        if minutes < 0:
            session_stats.bump("clock_anomalies")
            logger.warning(
                "[%s] %s: open session %s starts in the future",
                session.user_id, ErrorKind.CLOCK_ANOMALY.value, session.id,
            )
            return 0
        return minutes
