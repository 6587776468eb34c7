"""Productivity score (0–100) and week-over-week trend.

  completion = completed / total * 35            (0 when there are no tasks)
  focus      = min(25, floor(today_focus / 6))   one point per 6 minutes today
  weekly     = min(20, floor(weekly_focus / 30)) one point per 30 minutes this week
  streak     = min(15, focus_streak * 1.5)
  penalty    = min(20, overdue * 2.5)

  score = clamp(round(completion + focus + weekly + streak - penalty), 0, 100)

The weights are tuning policy; dashboards and tests depend on the exact
values, so change them only together with those consumers.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from focustrack.services.clock import round_half_up

COMPLETION_WEIGHT = 35
FOCUS_CAP = 25
FOCUS_MINUTES_PER_POINT = 6
WEEKLY_CAP = 20
WEEKLY_MINUTES_PER_POINT = 30
STREAK_CAP = 15
STREAK_POINTS_PER_DAY = 1.5
OVERDUE_CAP = 20
OVERDUE_POINTS_PER_TASK = 2.5

DEFAULT_TREND_THRESHOLD = 5


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass(frozen=True)
class ScoreInputs:
    completed_tasks: int = 0
    total_tasks: int = 0
    today_focus_minutes: int = 0
    weekly_focus_minutes: int = 0
    overdue_count: int = 0
    current_focus_streak: int = 0


@dataclass(frozen=True)
class ScoreBreakdown:
    completion: float
    focus: int
    weekly: int
    streak_bonus: float
    overdue_penalty: float
    raw: float
    score: int


@dataclass(frozen=True)
class ProductivityTrend:
    score: int
    previous_score: int
    delta: int
    trend: Trend


def compute_score(inputs: ScoreInputs) -> ScoreBreakdown:
    completion = (
        inputs.completed_tasks / inputs.total_tasks * COMPLETION_WEIGHT
        if inputs.total_tasks > 0
        else 0
    )
    focus = min(FOCUS_CAP, math.floor(inputs.today_focus_minutes / FOCUS_MINUTES_PER_POINT))
    weekly = min(WEEKLY_CAP, math.floor(inputs.weekly_focus_minutes / WEEKLY_MINUTES_PER_POINT))
    streak_bonus = min(STREAK_CAP, inputs.current_focus_streak * STREAK_POINTS_PER_DAY)
    overdue_penalty = min(OVERDUE_CAP, inputs.overdue_count * OVERDUE_POINTS_PER_TASK)

    raw = completion + focus + weekly + streak_bonus - overdue_penalty
    score = max(0, min(100, round_half_up(raw)))

    return ScoreBreakdown(
        completion=completion,
        focus=focus,
        weekly=weekly,
        streak_bonus=streak_bonus,
        overdue_penalty=overdue_penalty,
        raw=raw,
        score=score,
    )


def classify_trend(delta: int, threshold: int = DEFAULT_TREND_THRESHOLD) -> Trend:
    if delta > threshold:
        return Trend.UP
    if delta < -threshold:
        return Trend.DOWN
    return Trend.STABLE


def compute_trend(
    current: ScoreInputs,
    previous: ScoreInputs,
    threshold: int = DEFAULT_TREND_THRESHOLD,
) -> ProductivityTrend:
    """Score both snapshots with the same formula and compare them."""
    score = compute_score(current).score
    previous_score = compute_score(previous).score
    delta = score - previous_score
    return ProductivityTrend(
        score=score,
        previous_score=previous_score,
        delta=delta,
        trend=classify_trend(delta, threshold),
    )
