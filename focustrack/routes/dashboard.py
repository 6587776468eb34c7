"""
Dashboard endpoints:

  GET  /api/dashboard                   service health and live activity counters
  GET  /api/dashboard/productivity      productivity score, breakdown and weekly trend
  POST /api/dashboard/score             score an explicit snapshot of inputs
  GET  /api/dashboard/stats?period=     current vs previous window (day|week|month|year)
  GET  /api/dashboard/rollup            day/week/month buckets over the last N days
  GET  /api/dashboard/insights?period=  patterns and recommendations (week|month)
"""
import logging
from dataclasses import asdict
from datetime import timedelta
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from focustrack.config import Settings, get_settings
from focustrack.dependencies import current_user, get_clock, get_reporter
from focustrack.errors import FocusTrackError
from focustrack.routes.common import http_error, streak_status_out, totals_out
from focustrack.schemas.response import (
    AggregateStatsResponse,
    ChangeOut,
    DashboardResponse,
    DashboardStats,
    InsightsResponse,
    ProductivityResponse,
    RollupBucketOut,
    RollupResponse,
    ScoreBreakdownOut,
    ScoreInputsIn,
    ServiceStatus,
)
from focustrack.services.aggregation import AggregationReporter
from focustrack.services.clock import Clock, local_date
from focustrack.services.scoring import ScoreInputs, compute_score
from focustrack.services.session_stats import stats as session_stats

APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
def get_dashboard(settings: Settings = Depends(get_settings)) -> DashboardResponse:
    """Return service health, collaborator configuration and activity counters."""
    services = [
        ServiceStatus(
            name="database",
            configured=bool(settings.database_path),
            label=f"SQLite session store ({settings.database_path})",
        ),
        ServiceStatus(
            name="notifier",
            configured=bool(settings.notifier_webhook_url),
            label="Celebration webhook" if settings.notifier_webhook_url else "Celebrations logged only",
        ),
    ]

    return DashboardResponse(
        version=APP_VERSION,
        reference_timezone=settings.reference_timezone,
        services=services,
        stats=DashboardStats(
            sessions_started=session_stats.sessions_started,
            sessions_completed=session_stats.sessions_completed,
            sessions_abandoned=session_stats.sessions_abandoned,
            stale_reconciled=session_stats.stale_reconciled,
            clock_anomalies=session_stats.clock_anomalies,
            uptime_seconds=session_stats.uptime_seconds,
        ),
    )


@router.get("/productivity", response_model=ProductivityResponse)
def get_productivity(
    user_id: str = Depends(current_user),
    reporter: AggregationReporter = Depends(get_reporter),
) -> ProductivityResponse:
    try:
        result = reporter.productivity(user_id)
    except FocusTrackError as exc:
        raise http_error(exc) from exc

    return ProductivityResponse(
        score=result.trend.score,
        previous_score=result.trend.previous_score,
        weekly_comparison=result.trend.delta,
        trend=result.trend.trend.value,
        breakdown=ScoreBreakdownOut(**asdict(result.breakdown)),
        inputs=ScoreInputsIn(**asdict(result.inputs)),
        previous_inputs=ScoreInputsIn(**asdict(result.previous_inputs)),
    )


@router.post("/score", response_model=ScoreBreakdownOut)
def score_snapshot(body: ScoreInputsIn) -> ScoreBreakdownOut:
    """Pure score computation for a caller-supplied snapshot."""
    breakdown = compute_score(ScoreInputs(**body.model_dump()))
    return ScoreBreakdownOut(**asdict(breakdown))


@router.get("/stats", response_model=AggregateStatsResponse)
def get_aggregate_stats(
    period: Literal["day", "week", "month", "year"] = "week",
    user_id: str = Depends(current_user),
    reporter: AggregationReporter = Depends(get_reporter),
) -> AggregateStatsResponse:
    try:
        stats = reporter.get_aggregate_stats(user_id, period)
    except FocusTrackError as exc:
        raise http_error(exc) from exc

    return AggregateStatsResponse(
        period=stats.period,
        current=totals_out(stats.current),
        previous=totals_out(stats.previous),
        changes={
            name: ChangeOut(delta=c.delta, percentage_delta=c.percentage_delta)
            for name, c in stats.changes.items()
        },
    )


@router.get("/rollup", response_model=RollupResponse)
def get_rollup(
    granularity: Literal["day", "week", "month"] = "day",
    days: int = Query(default=30, ge=1, le=366),
    user_id: str = Depends(current_user),
    reporter: AggregationReporter = Depends(get_reporter),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> RollupResponse:
    """Buckets for the last *days* calendar days, today included."""
    end_day = local_date(clock.now(), settings.tz)
    start_day = end_day - timedelta(days=days - 1)
    try:
        buckets = reporter.rollup(user_id, granularity, start_day, end_day)
    except FocusTrackError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        logger.warning("[%s] Rejected rollup: %s", user_id, exc)
        raise HTTPException(status_code=400, detail=str(exc))

    return RollupResponse(
        granularity=granularity,
        buckets=[RollupBucketOut(start=b.start, totals=totals_out(b.totals)) for b in buckets],
    )


@router.get("/insights", response_model=InsightsResponse)
def get_insights(
    period: Literal["week", "month"] = "week",
    user_id: str = Depends(current_user),
    reporter: AggregationReporter = Depends(get_reporter),
) -> InsightsResponse:
    try:
        insights = reporter.insights(user_id, period)
    except FocusTrackError as exc:
        raise http_error(exc) from exc

    return InsightsResponse(
        period=insights.period,
        completion_rate=insights.completion_rate,
        total_focus_minutes=insights.total_focus_minutes,
        average_session_length=insights.average_session_length,
        overdue_tasks=insights.overdue_tasks,
        best_focus_hour=insights.best_focus_hour,
        most_productive_days=insights.most_productive_days,
        streaks=[streak_status_out(s) for s in insights.streaks],
        recommendations=insights.recommendations,
    )
