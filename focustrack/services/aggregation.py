"""Windowed rollups, comparisons and insight helpers for the dashboard.

Facts are bucketed by calendar date in the reference timezone. Only
completed sessions count towards focus minutes and session counts. Reads are
plain (unlocked) reads and may trail in-flight lifecycle writes slightly.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable

from focustrack.errors import require_user
from focustrack.services.clock import Clock, day_bounds, local_date, round_half_up
from focustrack.services.scoring import (
    DEFAULT_TREND_THRESHOLD,
    ProductivityTrend,
    ScoreBreakdown,
    ScoreInputs,
    compute_score,
    compute_trend,
)
from focustrack.services.session_store import FocusSession, SessionStore
from focustrack.services.streaks import ActivityType, StreakStatus, StreakTracker, run_length
from focustrack.services.task_directory import TaskDirectory

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}
FOCUS_PERIOD_DAYS = {"week": 7, "month": 30, "year": 365, "all": None}
INSIGHT_PERIOD_DAYS = {"week": 7, "month": 30}
GRANULARITIES = ("day", "week", "month")
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


# ─────────────────────────────────────────────────────────────────────────────
#  Data models
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class MetricTotals:
    tasks_completed: int = 0
    focus_minutes: int = 0
    sessions: int = 0
    notes_created: int = 0


@dataclass
class Change:
    delta: int
    percentage_delta: int


@dataclass
class AggregateStats:
    period: str
    current: MetricTotals
    previous: MetricTotals
    changes: dict[str, Change]


@dataclass
class RollupBucket:
    start: date
    totals: MetricTotals = field(default_factory=MetricTotals)


@dataclass
class Productivity:
    breakdown: ScoreBreakdown
    trend: ProductivityTrend
    inputs: ScoreInputs
    previous_inputs: ScoreInputs


@dataclass
class LongestSession:
    duration_minutes: int
    started_at: datetime
    task_name: str


@dataclass
class FocusStats:
    period: str
    total_sessions: int
    total_minutes: int
    average_duration: int
    longest_session: LongestSession | None
    current_streak: int
    longest_streak: int
    sessions_by_date: dict[str, MetricTotals]
    hourly_minutes: dict[int, int]
    most_productive_hour: int | None
    average_sessions_per_day: float

    @property
    def total_hours(self) -> float:
        return round_half_up(self.total_minutes / 60 * 100) / 100


@dataclass
class Insights:
    period: str
    completion_rate: int
    total_focus_minutes: int
    average_session_length: int
    overdue_tasks: int
    best_focus_hour: int | None
    most_productive_days: list[str]
    streaks: list[StreakStatus]
    recommendations: list[str]


# ─────────────────────────────────────────────────────────────────────────────
#  Pure helpers
# ─────────────────────────────────────────────────────────────────────────────

def compare(current: int, previous: int) -> Change:
    """Absolute and percentage change; percentage is 0 when there is no baseline."""
    delta = current - previous
    percentage = round_half_up(delta / previous * 100) if previous > 0 else 0
    return Change(delta=delta, percentage_delta=percentage)


def hourly_minutes(sessions: Iterable[FocusSession], tz: tzinfo) -> dict[int, int]:
    """Focus minutes per start hour (0–23) in *tz*; hours with no focus are omitted."""
    buckets: dict[int, int] = defaultdict(int)
    for s in sessions:
        buckets[s.started_at.astimezone(tz).hour] += s.duration_minutes or 0
    return dict(sorted(buckets.items()))


def most_productive_hour(sessions: Iterable[FocusSession], tz: tzinfo) -> int | None:
    """Hour with the most focus minutes; ties go to the earliest hour."""
    buckets = hourly_minutes(sessions, tz)
    if not buckets:
        return None
    return min(buckets, key=lambda hour: (-buckets[hour], hour))


def bucket_start(day: date, granularity: str) -> date:
    if granularity == "day":
        return day
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    if granularity == "month":
        return day.replace(day=1)
    raise ValueError(f"Unknown granularity '{granularity}'. Expected one of {', '.join(GRANULARITIES)}.")


def most_productive_days(sessions: Iterable[FocusSession], tz: tzinfo, top: int = 3) -> list[str]:
    minutes_by_day: dict[int, int] = defaultdict(int)
    for s in sessions:
        minutes_by_day[s.started_at.astimezone(tz).weekday()] += s.duration_minutes or 0
    ranked = sorted(minutes_by_day.items(), key=lambda item: (-item[1], item[0]))
    return [WEEKDAY_NAMES[day] for day, _ in ranked[:top]]


def recommendations(
    completion_rate: int,
    focus_minutes: int,
    overdue_tasks: int,
    best_hour: int | None,
    focus_streak: StreakStatus | None,
) -> list[str]:
    tips: list[str] = []

    if completion_rate < 70:
        tips.append("Try breaking large tasks into smaller, manageable steps to improve completion rate")
    if focus_minutes < 120:
        tips.append("Aim for at least 2 hours of focused work daily - start with 25-minute sessions")
    if overdue_tasks > 5:
        tips.append("Schedule a 30-minute session to tackle overdue tasks and prevent buildup")

    if best_hour is not None and 9 <= best_hour <= 11:
        tips.append("You're most productive in the morning - schedule important tasks between 9-11 AM")
    elif best_hour is not None and 14 <= best_hour <= 16:
        tips.append("Your peak focus time is afternoon - block 2-4 PM for deep work")

    if focus_streak is not None and focus_streak.last_credited is not None and not focus_streak.alive:
        tips.append("Start a focus session today to rebuild your productivity streak!")

    if not tips:
        tips.append("You're doing great! Keep maintaining your productive habits")
    return tips


# ─────────────────────────────────────────────────────────────────────────────
#  Reporter
# ─────────────────────────────────────────────────────────────────────────────

class AggregationReporter:
    def __init__(
        self,
        store: SessionStore,
        tasks: TaskDirectory,
        streaks: StreakTracker,
        clock: Clock,
        tz: tzinfo,
        min_streak_minutes: int = 15,
        trend_threshold: int = DEFAULT_TREND_THRESHOLD,
    ) -> None:
        self.store = store
        self.tasks = tasks
        self.streaks = streaks
        self.clock = clock
        self.tz = tz
        self.min_streak_minutes = min_streak_minutes
        self.trend_threshold = trend_threshold

    # ── Totals and comparisons ──────────────────────────────────────────

    def totals(self, user_id: str, start: datetime, end: datetime) -> MetricTotals:
        """Metric totals for facts in [start, end)."""
        sessions = self.store.completed_between(user_id, start, end)
        return MetricTotals(
            tasks_completed=sum(
                1 for t in self.tasks.tasks_for_user(user_id)
                if t.completed_at is not None and start <= t.completed_at < end
            ),
            focus_minutes=sum(s.duration_minutes or 0 for s in sessions),
            sessions=len(sessions),
            notes_created=len(self.tasks.note_times(user_id, start, end)),
        )

    def get_aggregate_stats(self, user_id: str, period: str = "week") -> AggregateStats:
        user_id = require_user(user_id)
        if period not in PERIOD_DAYS:
            raise ValueError(f"Unknown period '{period}'. Expected one of {', '.join(PERIOD_DAYS)}.")

        now = self.clock.now()
        span = timedelta(days=PERIOD_DAYS[period])
        current = self.totals(user_id, now - span, now)
        previous = self.totals(user_id, now - 2 * span, now - span)

        return AggregateStats(
            period=period,
            current=current,
            previous=previous,
            changes={
                "tasks": compare(current.tasks_completed, previous.tasks_completed),
                "focus": compare(current.focus_minutes, previous.focus_minutes),
                "sessions": compare(current.sessions, previous.sessions),
                "notes": compare(current.notes_created, previous.notes_created),
            },
        )

    def rollup(
        self,
        user_id: str,
        granularity: str,
        start_day: date,
        end_day: date,
    ) -> list[RollupBucket]:
        """Dense day/week/month buckets covering the calendar days start_day..end_day."""
        user_id = require_user(user_id)
        if granularity not in GRANULARITIES:
            raise ValueError(f"Unknown granularity '{granularity}'. Expected one of {', '.join(GRANULARITIES)}.")
        if end_day < start_day:
            raise ValueError("end_day must not be before start_day.")

        buckets: dict[date, RollupBucket] = {}
        day = start_day
        while day <= end_day:
            key = bucket_start(day, granularity)
            buckets.setdefault(key, RollupBucket(start=key))
            day += timedelta(days=1)

        window_start = day_bounds(start_day, self.tz)[0]
        window_end = day_bounds(end_day, self.tz)[1]

        def bucket_for(moment: datetime) -> MetricTotals:
            return buckets[bucket_start(local_date(moment, self.tz), granularity)].totals

        for s in self.store.completed_between(user_id, window_start, window_end):
            totals = bucket_for(s.started_at)
            totals.sessions += 1
            totals.focus_minutes += s.duration_minutes or 0

        for t in self.tasks.tasks_for_user(user_id):
            if t.completed_at is not None and window_start <= t.completed_at < window_end:
                bucket_for(t.completed_at).tasks_completed += 1

        for created in self.tasks.note_times(user_id, window_start, window_end):
            bucket_for(created).notes_created += 1

        return list(buckets.values())

    # ── Productivity score ──────────────────────────────────────────────

    def score_inputs(self, user_id: str, as_of: datetime, focus_streak: int) -> ScoreInputs:
        """Score inputs as they stood at *as_of*."""
        tasks = [t for t in self.tasks.tasks_for_user(user_id) if t.created_at <= as_of]
        day_start, _ = day_bounds(local_date(as_of, self.tz), self.tz)
        today = self.store.completed_between(user_id, day_start, as_of)
        week = self.store.completed_between(user_id, as_of - timedelta(days=7), as_of)

        return ScoreInputs(
            completed_tasks=sum(1 for t in tasks if t.completed_by(as_of)),
            total_tasks=len(tasks),
            today_focus_minutes=sum(s.duration_minutes or 0 for s in today),
            weekly_focus_minutes=sum(s.duration_minutes or 0 for s in week),
            overdue_count=sum(1 for t in tasks if t.overdue_at(as_of)),
            current_focus_streak=focus_streak,
        )

    def focus_streak_at(self, user_id: str, as_of: datetime) -> int:
        """Focus streak rebuilt from session history, as the counter read at *as_of*."""
        qualifying = {
            local_date(s.started_at, self.tz)
            for s in self.store.completed_between(user_id, None, as_of)
            if (s.duration_minutes or 0) >= self.min_streak_minutes
        }
        return run_length(qualifying, local_date(as_of, self.tz))

    def productivity(self, user_id: str) -> Productivity:
        user_id = require_user(user_id)
        now = self.clock.now()
        week_ago = now - timedelta(days=7)

        streak = self.streaks.status(user_id, ActivityType.FOCUS_SESSION)
        current = self.score_inputs(user_id, now, streak.current_count)
        previous = self.score_inputs(user_id, week_ago, self.focus_streak_at(user_id, week_ago))

        trend = compute_trend(current, previous, self.trend_threshold)
        logger.info(
            "[%s] Productivity score %d (previous %d, %s)",
            user_id, trend.score, trend.previous_score, trend.trend.value,
        )
        return Productivity(
            breakdown=compute_score(current),
            trend=trend,
            inputs=current,
            previous_inputs=previous,
        )

    # ── Focus statistics and insights ───────────────────────────────────

    def focus_stats(self, user_id: str, period: str = "week") -> FocusStats:
        user_id = require_user(user_id)
        if period not in FOCUS_PERIOD_DAYS:
            raise ValueError(f"Unknown period '{period}'. Expected one of {', '.join(FOCUS_PERIOD_DAYS)}.")

        now = self.clock.now()
        days = FOCUS_PERIOD_DAYS[period]
        start = now - timedelta(days=days) if days is not None else None
        sessions = self.store.completed_between(user_id, start, now)

        total_minutes = sum(s.duration_minutes or 0 for s in sessions)
        by_date: dict[str, MetricTotals] = {}
        for s in sessions:
            key = local_date(s.started_at, self.tz).isoformat()
            bucket = by_date.setdefault(key, MetricTotals())
            bucket.sessions += 1
            bucket.focus_minutes += s.duration_minutes or 0

        longest = None
        if sessions:
            top = max(sessions, key=lambda s: s.duration_minutes or 0)
            task = self.tasks.get(top.task_id, user_id) if top.task_id else None
            longest = LongestSession(
                duration_minutes=top.duration_minutes or 0,
                started_at=top.started_at,
                task_name=task.title if task else "No task",
            )

        per_day = 0.0
        if days is not None:
            span_days = max(1, math.ceil((now - start).total_seconds() / 86400))
            per_day = round_half_up(len(sessions) / span_days * 100) / 100

        streak = self.streaks.status(user_id, ActivityType.FOCUS_SESSION)
        return FocusStats(
            period=period,
            total_sessions=len(sessions),
            total_minutes=total_minutes,
            average_duration=round_half_up(total_minutes / len(sessions)) if sessions else 0,
            longest_session=longest,
            current_streak=streak.current_count,
            longest_streak=streak.longest_count,
            sessions_by_date=by_date,
            hourly_minutes=hourly_minutes(sessions, self.tz),
            most_productive_hour=most_productive_hour(sessions, self.tz),
            average_sessions_per_day=per_day,
        )

    def insights(self, user_id: str, period: str = "week") -> Insights:
        user_id = require_user(user_id)
        if period not in INSIGHT_PERIOD_DAYS:
            raise ValueError(f"Unknown period '{period}'. Expected one of {', '.join(INSIGHT_PERIOD_DAYS)}.")

        now = self.clock.now()
        start = now - timedelta(days=INSIGHT_PERIOD_DAYS[period])
        tasks = self.tasks.tasks_for_user(user_id)
        sessions = self.store.completed_between(user_id, start, now)

        created = sum(1 for t in tasks if t.created_at >= start)
        completed = sum(1 for t in tasks if t.completed_at is not None and t.completed_at >= start)
        completion_rate = round_half_up(completed / created * 100) if created > 0 else 0
        focus_minutes = sum(s.duration_minutes or 0 for s in sessions)
        overdue = sum(1 for t in tasks if t.overdue_at(now))
        best_hour = most_productive_hour(sessions, self.tz)
        streaks = self.streaks.all_status(user_id)
        focus_streak = next(s for s in streaks if s.activity_type is ActivityType.FOCUS_SESSION)

        return Insights(
            period=period,
            completion_rate=completion_rate,
            total_focus_minutes=focus_minutes,
            average_session_length=round_half_up(focus_minutes / len(sessions)) if sessions else 0,
            overdue_tasks=overdue,
            best_focus_hour=best_hour,
            most_productive_days=most_productive_days(sessions, self.tz),
            streaks=streaks,
            recommendations=recommendations(
                completion_rate, focus_minutes, overdue, best_hour, focus_streak,
            ),
        )
