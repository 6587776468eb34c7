"""Per-user, per-activity day streaks.

A streak is credited at most once per calendar day (reference timezone):

  gap == 0  → already credited today, nothing changes
  gap == 1  → current + 1, longest raised if exceeded
  gap  > 1  → broken, current restarts at 1 (longest kept)
  gap  < 0  → clock went backwards; logged and ignored, counters untouched
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta, tzinfo
from enum import Enum
from typing import Iterable, Sequence

from focustrack.database import Database
from focustrack.errors import ErrorKind, require_user
from focustrack.services.clock import Clock, local_date
from focustrack.services.notifier import STREAK_MILESTONE, Notifier, celebrate_safely
from focustrack.services.session_stats import stats as session_stats

logger = logging.getLogger(__name__)

DEFAULT_MILESTONES = (7, 14, 30, 50, 100)


class ActivityType(str, Enum):
    TASK_COMPLETION = "task_completion"
    FOCUS_SESSION = "focus_session"


class StreakOutcome(str, Enum):
    CREATED = "created"
    UNCHANGED = "unchanged"
    INCREMENTED = "incremented"
    RESET = "reset"
    ANOMALY = "anomaly"


@dataclass
class Streak:
    id: str
    user_id: str
    activity_type: ActivityType
    current_count: int
    longest_count: int
    last_credited: date


@dataclass
class StreakUpdate:
    streak: Streak
    outcome: StreakOutcome


@dataclass
class StreakStatus:
    user_id: str
    activity_type: ActivityType
    current_count: int = 0
    longest_count: int = 0
    last_credited: date | None = None
    alive: bool = False


def run_length(days: Iterable[date], as_of: date) -> int:
    """Length of the latest run of consecutive days on or before *as_of*.

    Mirrors what a stored streak counter would read on *as_of*: the counter
    keeps its last value until the next credit.
    """
    eligible = {d for d in days if d <= as_of}
    if not eligible:
        return 0
    day = max(eligible)
    count = 0
    while day in eligible:
        count += 1
        day -= timedelta(days=1)
    return count


class StreakTracker:
    def __init__(
        self,
        db: Database,
        clock: Clock,
        tz: tzinfo,
        notifier: Notifier | None = None,
        milestones: Sequence[int] = DEFAULT_MILESTONES,
    ) -> None:
        self.db = db
        self.clock = clock
        self.tz = tz
        self.notifier = notifier
        self.milestones = frozenset(milestones)

    def update(self, user_id: str, activity_type: ActivityType) -> StreakUpdate:
        user_id = require_user(user_id)
        activity_type = ActivityType(activity_type)
        today = local_date(self.clock.now(), self.tz)

        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM streaks WHERE user_id = ? AND activity_type = ?",
                (user_id, activity_type.value),
            ).fetchone()

            if row is None:
                streak = Streak(
                    id=uuid.uuid4().hex,
                    user_id=user_id,
                    activity_type=activity_type,
                    current_count=1,
                    longest_count=1,
                    last_credited=today,
                )
                conn.execute(
                    """
                    INSERT INTO streaks (
                        id, user_id, activity_type,
                        current_count, longest_count, last_credited
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        streak.id,
                        user_id,
                        activity_type.value,
                        1,
                        1,
                        today.isoformat(),
                    ),
                )
                outcome = StreakOutcome.CREATED
            else:
                streak = Streak(
                    id=row["id"],
                    user_id=user_id,
                    activity_type=activity_type,
                    current_count=row["current_count"],
                    longest_count=row["longest_count"],
                    last_credited=date.fromisoformat(row["last_credited"]),
                )
                gap = (today - streak.last_credited).days

                if gap == 0:
                    outcome = StreakOutcome.UNCHANGED
                elif gap < 0:
                    outcome = StreakOutcome.ANOMALY
                else:
                    if gap == 1:
                        streak.current_count += 1
                        streak.longest_count = max(streak.longest_count, streak.current_count)
                        outcome = StreakOutcome.INCREMENTED
                    else:
                        streak.current_count = 1
                        outcome = StreakOutcome.RESET
                    streak.last_credited = today
                    conn.execute(
                        """
                        UPDATE streaks
                        SET current_count = ?, longest_count = ?, last_credited = ?
                        WHERE id = ?
                        """,
                        (
                            streak.current_count,
                            streak.longest_count,
                            today.isoformat(),
                            streak.id,
                        ),
                    )

        if outcome is StreakOutcome.ANOMALY:
            session_stats.bump("clock_anomalies")
            logger.warning(
                "[%s] %s: %s streak last credited %s is after today %s; left unchanged",
                user_id, ErrorKind.CLOCK_ANOMALY.value, activity_type.value,
                streak.last_credited, today,
            )
        elif outcome is not StreakOutcome.UNCHANGED:
            logger.info(
                "[%s] %s streak %s → %d (longest %d)",
                user_id, activity_type.value, outcome.value,
                streak.current_count, streak.longest_count,
            )

        if (
            outcome is StreakOutcome.INCREMENTED
            and streak.current_count in self.milestones
            and self.notifier is not None
        ):
            celebrate_safely(
                self.notifier,
                user_id,
                STREAK_MILESTONE,
                {
                    "streak_type": activity_type.value,
                    "count": streak.current_count,
                    "milestone": True,
                },
            )

        return StreakUpdate(streak=streak, outcome=outcome)

    def status(self, user_id: str, activity_type: ActivityType) -> StreakStatus:
        user_id = require_user(user_id)
        activity_type = ActivityType(activity_type)

        with self.db.read() as conn:
            row = conn.execute(
                "SELECT * FROM streaks WHERE user_id = ? AND activity_type = ?",
                (user_id, activity_type.value),
            ).fetchone()

        if row is None:
            return StreakStatus(user_id=user_id, activity_type=activity_type)

        last = date.fromisoformat(row["last_credited"])
        gap = (local_date(self.clock.now(), self.tz) - last).days
        return StreakStatus(
            user_id=user_id,
            activity_type=activity_type,
            current_count=row["current_count"],
            longest_count=row["longest_count"],
            last_credited=last,
            alive=0 <= gap <= 1,
        )

    def all_status(self, user_id: str) -> list[StreakStatus]:
        return [self.status(user_id, kind) for kind in ActivityType]
