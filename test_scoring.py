"""Productivity score formula and trend classification."""
from __future__ import annotations

import pytest

from focustrack.services.scoring import (
    ScoreInputs,
    Trend,
    classify_trend,
    compute_score,
    compute_trend,
)


def test_reference_inputs_score_56():
    breakdown = compute_score(
        ScoreInputs(
            completed_tasks=8,
            total_tasks=10,
            today_focus_minutes=90,
            weekly_focus_minutes=300,
            overdue_count=2,
            current_focus_streak=5,
        )
    )

    assert breakdown.completion == pytest.approx(28)
    assert breakdown.focus == 15
    assert breakdown.weekly == 10
    assert breakdown.streak_bonus == pytest.approx(7.5)
    assert breakdown.overdue_penalty == pytest.approx(5)
    assert breakdown.raw == pytest.approx(55.5)
    assert breakdown.score == 56


def test_no_tasks_gives_no_completion_points():
    breakdown = compute_score(ScoreInputs(total_tasks=0, today_focus_minutes=60))
    assert breakdown.completion == 0
    assert breakdown.score == 10


def test_every_component_is_capped():
    breakdown = compute_score(
        ScoreInputs(
            completed_tasks=10,
            total_tasks=10,
            today_focus_minutes=600,
            weekly_focus_minutes=3000,
            current_focus_streak=40,
        )
    )

    assert breakdown.focus == 25
    assert breakdown.weekly == 20
    assert breakdown.streak_bonus == 15
    assert breakdown.score == 95


def test_overdue_penalty_is_capped_and_score_never_negative():
    breakdown = compute_score(ScoreInputs(overdue_count=30))
    assert breakdown.overdue_penalty == 20
    assert breakdown.raw == -20
    assert breakdown.score == 0


def test_partial_minutes_floor_to_whole_points():
    breakdown = compute_score(ScoreInputs(today_focus_minutes=11, weekly_focus_minutes=59))
    assert breakdown.focus == 1
    assert breakdown.weekly == 1


def test_half_points_round_up():
    # 6 min today + 1-day streak: 1 + 1.5 = 2.5
    breakdown = compute_score(ScoreInputs(today_focus_minutes=6, current_focus_streak=1))
    assert breakdown.raw == pytest.approx(2.5)
    assert breakdown.score == 3


@pytest.mark.parametrize(
    "delta, expected",
    [
        (6, Trend.UP),
        (5, Trend.STABLE),
        (0, Trend.STABLE),
        (-5, Trend.STABLE),
        (-6, Trend.DOWN),
    ],
)
def test_trend_threshold(delta, expected):
    assert classify_trend(delta) is expected


def test_trend_compares_both_snapshots():
    current = ScoreInputs(today_focus_minutes=90, current_focus_streak=2)
    previous = ScoreInputs(today_focus_minutes=30)

    trend = compute_trend(current, previous)

    assert trend.score == 18
    assert trend.previous_score == 5
    assert trend.delta == 13
    assert trend.trend is Trend.UP
