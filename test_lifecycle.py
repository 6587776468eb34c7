"""Focus-session lifecycle: start guard, stale reconciliation, close semantics."""
from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from conftest import UTC, FailingNotifier, add_session, add_task
from focustrack.errors import Conflict, InvalidState, NotFound, Unauthorized
from focustrack.services.lifecycle import SessionLifecycleManager
from focustrack.services.session_store import FocusSession, OpenSessionExists
from focustrack.services.streaks import ActivityType, StreakOutcome


# ---------------------------------------------------------------------------
# start_session
# ---------------------------------------------------------------------------


def test_start_creates_open_session(lifecycle, clock):
    started = lifecycle.start_session("alice", planned_minutes=50)

    session = started.session
    assert session.is_open
    assert session.started_at == clock.now()
    assert session.planned_minutes == 50
    assert session.duration_minutes is None
    assert started.reconciled == []


def test_second_start_conflicts_with_active_session(lifecycle):
    first = lifecycle.start_session("alice").session

    with pytest.raises(Conflict) as excinfo:
        lifecycle.start_session("alice")

    assert excinfo.value.active_session_id == first.id
    assert excinfo.value.to_detail()["active_session_id"] == first.id


def test_users_do_not_block_each_other(lifecycle):
    lifecycle.start_session("alice")
    bob = lifecycle.start_session("bob").session
    assert bob.user_id == "bob"


def test_stale_session_is_force_closed_before_new_start(lifecycle, store, clock):
    stale = lifecycle.start_session("alice").session
    clock.advance(hours=25)

    started = lifecycle.start_session("alice")

    assert [s.id for s in started.reconciled] == [stale.id]
    closed = store.get(stale.id)
    assert closed.completed is False
    assert closed.duration_minutes == 25 * 60
    assert closed.ended_at == clock.now()
    assert started.session.is_open
    assert store.find_open("alice").id == started.session.id


def test_session_from_yesterday_still_blocks_until_stale(lifecycle, clock):
    clock.set(datetime(2024, 3, 11, 23, 50, tzinfo=UTC))
    late = lifecycle.start_session("alice").session

    clock.set(datetime(2024, 3, 12, 0, 10, tzinfo=UTC))
    with pytest.raises(Conflict) as excinfo:
        lifecycle.start_session("alice")
    assert excinfo.value.active_session_id == late.id

    clock.set(datetime(2024, 3, 13, 0, 0, tzinfo=UTC))
    started = lifecycle.start_session("alice")
    assert [s.id for s in started.reconciled] == [late.id]


def test_start_rejects_unknown_or_foreign_task(lifecycle, db):
    bobs_task = add_task(db, "bob")

    with pytest.raises(NotFound):
        lifecycle.start_session("alice", task_id="missing")
    with pytest.raises(NotFound):
        lifecycle.start_session("alice", task_id=bobs_task)


def test_start_with_own_task(lifecycle, db):
    task_id = add_task(db, "alice")
    session = lifecycle.start_session("alice", task_id=task_id).session
    assert session.task_id == task_id


def test_start_requires_identity(lifecycle):
    with pytest.raises(Unauthorized):
        lifecycle.start_session("")


def test_start_rejects_non_positive_plan(lifecycle):
    with pytest.raises(ValueError):
        lifecycle.start_session("alice", planned_minutes=0)


def test_conditional_insert_rejects_second_open_row(store, clock):
    first = FocusSession(id="s1", user_id="alice", task_id=None, started_at=clock.now(), planned_minutes=25)
    second = FocusSession(id="s2", user_id="alice", task_id=None, started_at=clock.now(), planned_minutes=25)
    store.insert_open(first)

    with pytest.raises(OpenSessionExists) as excinfo:
        store.insert_open(second)

    assert excinfo.value.session_id == "s1"
    assert store.get("s2") is None


def test_race_lost_at_insert_surfaces_as_conflict(lifecycle, store, clock, monkeypatch):
    winner = lifecycle.start_session("alice").session
    # the guard read happens before the other instance's insert becomes visible
    monkeypatch.setattr(store, "find_open", lambda user_id: None)

    with pytest.raises(Conflict) as excinfo:
        lifecycle.start_session("alice")
    assert excinfo.value.active_session_id == winner.id


# ---------------------------------------------------------------------------
# end_session
# ---------------------------------------------------------------------------


def test_end_completed_session_credits_streak_and_celebrates(lifecycle, streaks, notifier, clock):
    session = lifecycle.start_session("alice").session
    clock.advance(minutes=30)

    ended = lifecycle.end_session("alice", session.id)

    assert ended.session.duration_minutes == 30
    assert ended.session.completed is True
    assert ended.session.ended_at == clock.now()
    assert ended.streak.outcome is StreakOutcome.CREATED
    assert streaks.status("alice", ActivityType.FOCUS_SESSION).current_count == 1
    assert notifier.kinds() == ["focus_session_complete"]
    assert notifier.events[0][2]["duration_minutes"] == 30


def test_second_end_is_invalid_state_and_streak_counted_once(lifecycle, streaks, notifier, clock):
    session = lifecycle.start_session("alice").session
    clock.advance(minutes=20)
    lifecycle.end_session("alice", session.id)

    # a later day would increment the streak if the second close got through
    clock.advance(days=1)
    with pytest.raises(InvalidState):
        lifecycle.end_session("alice", session.id)

    status = streaks.status("alice", ActivityType.FOCUS_SESSION)
    assert status.current_count == 1
    assert status.last_credited == datetime(2024, 3, 11).date()
    assert notifier.kinds() == ["focus_session_complete"]


def test_close_lost_to_concurrent_close_is_invalid_state(lifecycle, store, clock, monkeypatch):
    session = lifecycle.start_session("alice").session
    clock.advance(minutes=20)
    stale_view = store.get(session.id)
    lifecycle.end_session("alice", session.id)
    monkeypatch.setattr(store, "get", lambda session_id: stale_view)

    with pytest.raises(InvalidState):
        lifecycle.end_session("alice", session.id)


def test_short_or_abandoned_sessions_do_not_credit_streak(lifecycle, streaks, notifier, clock):
    short = lifecycle.start_session("alice").session
    clock.advance(minutes=14)
    lifecycle.end_session("alice", short.id)

    abandoned = lifecycle.start_session("alice").session
    clock.advance(minutes=40)
    ended = lifecycle.end_session("alice", abandoned.id, completed=False)

    assert ended.streak is None
    assert ended.session.completed is False
    assert ended.session.duration_minutes == 40
    assert streaks.status("alice", ActivityType.FOCUS_SESSION).current_count == 0
    assert notifier.events == []


def test_exactly_fifteen_minutes_qualifies(lifecycle, clock):
    session = lifecycle.start_session("alice").session
    clock.advance(minutes=15)
    assert lifecycle.end_session("alice", session.id).streak is not None


def test_duration_rounds_half_up(lifecycle, clock):
    session = lifecycle.start_session("alice").session
    clock.advance(minutes=14, seconds=30)
    ended = lifecycle.end_session("alice", session.id)
    assert ended.session.duration_minutes == 15


def test_end_rejects_foreign_and_unknown_sessions(lifecycle):
    session = lifecycle.start_session("alice").session

    with pytest.raises(NotFound):
        lifecycle.end_session("bob", session.id)
    with pytest.raises(NotFound):
        lifecycle.end_session("alice", "nope")
    with pytest.raises(Unauthorized):
        lifecycle.end_session(None, session.id)


def test_clock_moving_backwards_clamps_duration(lifecycle, clock):
    session = lifecycle.start_session("alice").session
    clock.advance(minutes=-10)

    ended = lifecycle.end_session("alice", session.id)

    assert ended.clock_anomaly is True
    assert ended.session.duration_minutes == 0
    assert ended.streak is None


def test_notifier_failure_does_not_fail_close(store, tasks, streaks, clock):
    failing = FailingNotifier()
    manager = SessionLifecycleManager(
        store=store, tasks=tasks, streaks=streaks, clock=clock, notifier=failing, tz=UTC,
    )
    session = manager.start_session("alice").session
    clock.advance(minutes=45)

    ended = manager.end_session("alice", session.id)

    assert failing.calls == 1
    assert ended.session.completed is True
    assert ended.streak.streak.current_count == 1
    assert store.find_open("alice") is None


def test_celebration_includes_task_name(lifecycle, db, notifier, clock):
    task_id = add_task(db, "alice", title="Quarterly review")
    session = lifecycle.start_session("alice", task_id=task_id).session
    clock.advance(minutes=25)

    lifecycle.end_session("alice", session.id)

    assert notifier.events[0][2]["task_name"] == "Quarterly review"


def test_streak_write_failure_keeps_the_close(lifecycle, store, streaks, notifier, clock, monkeypatch):
    session = lifecycle.start_session("alice").session
    clock.advance(minutes=30)

    def locked(user_id, activity_type):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(streaks, "update", locked)

    ended = lifecycle.end_session("alice", session.id)

    assert ended.streak is None
    assert ended.streak_error is True
    assert ended.session.completed is True
    assert store.find_open("alice") is None
    assert notifier.kinds() == ["focus_session_complete"]


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------


def test_active_session_reports_elapsed_minutes(lifecycle, clock):
    assert lifecycle.get_active_session("alice") is None

    session = lifecycle.start_session("alice").session
    clock.advance(minutes=12, seconds=40)

    active = lifecycle.get_active_session("alice")
    assert active.session.id == session.id
    assert active.elapsed_minutes == 13


def test_get_session_is_owner_only(lifecycle):
    session = lifecycle.start_session("alice").session
    assert lifecycle.get_session("alice", session.id).id == session.id
    with pytest.raises(NotFound):
        lifecycle.get_session("bob", session.id)


def test_list_sessions_filters_and_paginates(lifecycle, db, clock):
    task_id = add_task(db, "alice")
    for day in range(5):
        add_session(db, "alice", clock.now() - timedelta(days=day + 1), 20 + day, task_id=task_id if day % 2 else None)
    add_session(db, "alice", clock.now() - timedelta(days=9), 10, completed=False)
    add_session(db, "bob", clock.now() - timedelta(days=1), 30)

    page = lifecycle.list_sessions("alice", completed=True, page=1, limit=2)
    assert page.total_count == 5
    assert page.total_pages == 3
    assert page.has_next and not page.has_prev
    assert [s.duration_minutes for s in page.sessions] == [20, 21]

    longest_first = lifecycle.list_sessions("alice", sort_by="duration_minutes", descending=True, limit=1)
    assert longest_first.sessions[0].duration_minutes == 24

    by_task = lifecycle.list_sessions("alice", task_id=task_id)
    assert by_task.total_count == 2


def test_delete_session(lifecycle, store):
    session = lifecycle.start_session("alice").session

    with pytest.raises(NotFound):
        lifecycle.delete_session("bob", session.id)
    lifecycle.delete_session("alice", session.id)

    assert store.get(session.id) is None
    with pytest.raises(NotFound):
        lifecycle.delete_session("alice", session.id)


def test_today_summary(lifecycle, db, clock):
    add_session(db, "alice", datetime(2024, 3, 11, 7, 0, tzinfo=UTC), 50)
    add_session(db, "alice", datetime(2024, 3, 11, 8, 30, tzinfo=UTC), 40)
    add_session(db, "alice", datetime(2024, 3, 10, 20, 0, tzinfo=UTC), 90)
    add_session(db, "alice", datetime(2024, 3, 11, 9, 0, tzinfo=UTC), 5, completed=False)
    lifecycle.start_session("alice")
    clock.advance(minutes=10)

    summary = lifecycle.today_summary("alice")

    assert summary.sessions_completed == 2
    assert summary.total_minutes == 90
    assert summary.total_hours == 1.5
    assert summary.goal_progress == 38
    assert summary.active.elapsed_minutes == 10
    assert summary.sessions[0].started_at.hour == 8


def test_list_sessions_by_calendar_days(lifecycle, db):
    add_session(db, "alice", datetime(2024, 3, 1, 12, 0, tzinfo=UTC), 20)
    add_session(db, "alice", datetime(2024, 3, 5, 23, 30, tzinfo=UTC), 20)
    add_session(db, "alice", datetime(2024, 3, 6, 0, 30, tzinfo=UTC), 20)
    add_session(db, "alice", datetime(2024, 3, 10, 9, 0, tzinfo=UTC), 20)

    # the end day is included in full
    single_day = lifecycle.list_sessions("alice", start_day=date(2024, 3, 5), end_day=date(2024, 3, 5))
    assert [s.started_at.hour for s in single_day.sessions] == [23]

    span = lifecycle.list_sessions("alice", start_day=date(2024, 3, 5), end_day=date(2024, 3, 10))
    assert span.total_count == 3

    since = lifecycle.list_sessions("alice", start_day=date(2024, 3, 6))
    assert since.total_count == 2

    with pytest.raises(ValueError):
        lifecycle.list_sessions("alice", start_day=date(2024, 3, 10), end_day=date(2024, 3, 1))


def test_list_sessions_days_follow_reference_timezone(store, tasks, streaks, clock, notifier, db):
    manager = SessionLifecycleManager(
        store=store, tasks=tasks, streaks=streaks, clock=clock, notifier=notifier,
        tz=ZoneInfo("America/New_York"),
    )
    # 19:30 on Mar 5 in New York
    add_session(db, "alice", datetime(2024, 3, 6, 0, 30, tzinfo=UTC), 20)

    page = manager.list_sessions("alice", start_day=date(2024, 3, 5), end_day=date(2024, 3, 5))
    assert page.total_count == 1
    assert manager.list_sessions("alice", start_day=date(2024, 3, 6)).total_count == 0
