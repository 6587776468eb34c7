"""
Focus-session endpoints (caller identity in the X-User-Id header):

  POST   /api/focus/sessions              start a session (201)
  POST   /api/focus/sessions/{id}/end     end a session
  GET    /api/focus/sessions/active       current open session, if any
  GET    /api/focus/sessions              filtered, paginated history
  GET    /api/focus/sessions/{id}         one session
  DELETE /api/focus/sessions/{id}         delete a session
  GET    /api/focus/today                 today's summary and goal progress
  GET    /api/focus/stats?period=         focus statistics (week|month|year|all)
"""
import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException

from focustrack.config import Settings, get_settings
from focustrack.dependencies import current_user, get_lifecycle, get_reporter
from focustrack.errors import FocusTrackError
from focustrack.routes.common import (
    active_out,
    http_error,
    session_out,
    streak_update_out,
    totals_out,
)
from focustrack.schemas.response import (
    ActiveSessionResponse,
    EndSessionRequest,
    EndSessionResponse,
    FocusStatsResponse,
    LongestSessionOut,
    MessageResponse,
    Pagination,
    SessionListResponse,
    SessionResponse,
    StartSessionRequest,
    StartSessionResponse,
    TodayGoal,
    TodaySummaryResponse,
)
from focustrack.services.aggregation import AggregationReporter
from focustrack.services.lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/focus", tags=["focus"])


# ─────────────────────────────────────────────────────────────────────────────
#  Lifecycle
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/sessions", response_model=StartSessionResponse, status_code=201)
def start_session(
    body: StartSessionRequest,
    user_id: str = Depends(current_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
) -> StartSessionResponse:
    """Open a focus session, closing any stale one first."""
    planned = body.planned_minutes or settings.default_planned_minutes
    try:
        started = lifecycle.start_session(user_id, body.task_id, planned)
    except FocusTrackError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        logger.warning("[%s] Rejected session start: %s", user_id, exc)
        raise HTTPException(status_code=400, detail=str(exc))

    return StartSessionResponse(
        message=f"Focus session started! Time to get in the zone for {planned} minutes!",
        session=session_out(started.session),
        reconciled_session_ids=[s.id for s in started.reconciled],
    )


@router.post("/sessions/{session_id}/end", response_model=EndSessionResponse)
def end_session(
    session_id: str,
    body: EndSessionRequest | None = None,
    user_id: str = Depends(current_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> EndSessionResponse:
    """Close an open session and credit the focus streak when it qualifies."""
    completed = body.completed if body is not None else True
    try:
        ended = lifecycle.end_session(user_id, session_id, completed)
    except FocusTrackError as exc:
        raise http_error(exc) from exc

    minutes = ended.session.duration_minutes
    message = (
        f"Focus session completed! You focused for {minutes} minutes!"
        if completed
        else f"Focus session ended after {minutes} minutes."
    )
    return EndSessionResponse(
        message=message,
        session=session_out(ended.session),
        streak=streak_update_out(ended.streak),
        clock_anomaly=ended.clock_anomaly,
        streak_error=ended.streak_error,
    )


@router.get("/sessions/active", response_model=ActiveSessionResponse)
def get_active_session(
    user_id: str = Depends(current_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> ActiveSessionResponse:
    try:
        active = lifecycle.get_active_session(user_id)
    except FocusTrackError as exc:
        raise http_error(exc) from exc

    if active is None:
        return ActiveSessionResponse(message="No active focus session", session=None)
    return ActiveSessionResponse(message="Active focus session found", session=active_out(active))


# ─────────────────────────────────────────────────────────────────────────────
#  History
# ─────────────────────────────────────────────────────────────────────────────
@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    task_id: str | None = None,
    completed: bool | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    limit: int = 20,
    sort_by: Literal["started_at", "ended_at", "duration_minutes"] = "started_at",
    sort_order: Literal["asc", "desc"] = "desc",
    user_id: str = Depends(current_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> SessionListResponse:
    try:
        result = lifecycle.list_sessions(
            user_id,
            task_id=task_id,
            completed=completed,
            start_day=start_date,
            end_day=end_date,
            sort_by=sort_by,
            descending=sort_order == "desc",
            page=page,
            limit=limit,
        )
    except FocusTrackError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        logger.warning("[%s] Rejected session query: %s", user_id, exc)
        raise HTTPException(status_code=400, detail=str(exc))

    return SessionListResponse(
        sessions=[session_out(s) for s in result.sessions],
        pagination=Pagination(
            current_page=result.page,
            total_pages=result.total_pages,
            total_count=result.total_count,
            has_next=result.has_next,
            has_prev=result.has_prev,
        ),
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: str,
    user_id: str = Depends(current_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> SessionResponse:
    try:
        session = lifecycle.get_session(user_id, session_id)
    except FocusTrackError as exc:
        raise http_error(exc) from exc
    return SessionResponse(message="Focus session retrieved successfully", session=session_out(session))


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
def delete_session(
    session_id: str,
    user_id: str = Depends(current_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> MessageResponse:
    try:
        lifecycle.delete_session(user_id, session_id)
    except FocusTrackError as exc:
        raise http_error(exc) from exc
    return MessageResponse(message="Focus session deleted successfully!")


# ─────────────────────────────────────────────────────────────────────────────
#  Summaries
# ─────────────────────────────────────────────────────────────────────────────
@router.get("/today", response_model=TodaySummaryResponse)
def today_summary(
    user_id: str = Depends(current_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
) -> TodaySummaryResponse:
    try:
        summary = lifecycle.today_summary(user_id)
    except FocusTrackError as exc:
        raise http_error(exc) from exc

    return TodaySummaryResponse(
        sessions_completed=summary.sessions_completed,
        total_minutes=summary.total_minutes,
        total_hours=summary.total_hours,
        active_session=active_out(summary.active),
        sessions=[session_out(s) for s in summary.sessions],
        goal=TodayGoal(target=summary.goal_minutes, progress=summary.goal_progress),
    )


@router.get("/stats", response_model=FocusStatsResponse)
def focus_stats(
    period: Literal["week", "month", "year", "all"] = "week",
    user_id: str = Depends(current_user),
    reporter: AggregationReporter = Depends(get_reporter),
) -> FocusStatsResponse:
    try:
        stats = reporter.focus_stats(user_id, period)
    except FocusTrackError as exc:
        raise http_error(exc) from exc

    longest = stats.longest_session
    return FocusStatsResponse(
        period=stats.period,
        total_sessions=stats.total_sessions,
        total_minutes=stats.total_minutes,
        total_hours=stats.total_hours,
        average_duration=stats.average_duration,
        longest_session=LongestSessionOut(
            duration_minutes=longest.duration_minutes,
            started_at=longest.started_at,
            task_name=longest.task_name,
        ) if longest else None,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        sessions_by_date={day: totals_out(t) for day, t in stats.sessions_by_date.items()},
        hourly_minutes=stats.hourly_minutes,
        most_productive_hour=stats.most_productive_hour,
        average_sessions_per_day=stats.average_sessions_per_day,
    )
