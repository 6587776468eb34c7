from datetime import date, datetime

from pydantic import BaseModel, Field


# ── Focus sessions ───────────────────────────────────────────────────────────
class StartSessionRequest(BaseModel):
    task_id: str | None = None
    planned_minutes: int | None = Field(default=None, gt=0)


class EndSessionRequest(BaseModel):
    completed: bool = True


class SessionOut(BaseModel):
    id: str
    user_id: str
    task_id: str | None = None
    started_at: datetime
    ended_at: datetime | None = None
    planned_minutes: int
    duration_minutes: int | None = None
    completed: bool


class ActiveSessionOut(SessionOut):
    elapsed_minutes: int


class StartSessionResponse(BaseModel):
    message: str
    session: SessionOut
    reconciled_session_ids: list[str] = []


class ActiveSessionResponse(BaseModel):
    message: str
    session: ActiveSessionOut | None = None


class SessionResponse(BaseModel):
    message: str
    session: SessionOut


class MessageResponse(BaseModel):
    message: str


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class SessionListResponse(BaseModel):
    sessions: list[SessionOut]
    pagination: Pagination


class TodayGoal(BaseModel):
    target: int
    progress: int


class TodaySummaryResponse(BaseModel):
    sessions_completed: int
    total_minutes: int
    total_hours: float
    active_session: ActiveSessionOut | None = None
    sessions: list[SessionOut]
    goal: TodayGoal


# ── Streaks ──────────────────────────────────────────────────────────────────
class StreakOut(BaseModel):
    activity_type: str
    current_count: int
    longest_count: int
    last_credited: date | None = None
    alive: bool


class StreakUpdateOut(BaseModel):
    outcome: str
    streak: StreakOut


class EndSessionResponse(BaseModel):
    message: str
    session: SessionOut
    streak: StreakUpdateOut | None = None
    clock_anomaly: bool = False
    streak_error: bool = False


# ── Metrics ──────────────────────────────────────────────────────────────────
class MetricTotalsOut(BaseModel):
    tasks_completed: int
    focus_minutes: int
    sessions: int
    notes_created: int


class ChangeOut(BaseModel):
    delta: int
    percentage_delta: int


class AggregateStatsResponse(BaseModel):
    period: str
    current: MetricTotalsOut
    previous: MetricTotalsOut
    changes: dict[str, ChangeOut]


class RollupBucketOut(BaseModel):
    start: date
    totals: MetricTotalsOut


class RollupResponse(BaseModel):
    granularity: str
    buckets: list[RollupBucketOut]


class ScoreInputsIn(BaseModel):
    completed_tasks: int = Field(default=0, ge=0)
    total_tasks: int = Field(default=0, ge=0)
    today_focus_minutes: int = Field(default=0, ge=0)
    weekly_focus_minutes: int = Field(default=0, ge=0)
    overdue_count: int = Field(default=0, ge=0)
    current_focus_streak: int = Field(default=0, ge=0)


class ScoreBreakdownOut(BaseModel):
    completion: float
    focus: int
    weekly: int
    streak_bonus: float
    overdue_penalty: float
    raw: float
    score: int


class ProductivityResponse(BaseModel):
    score: int
    previous_score: int
    weekly_comparison: int
    trend: str
    breakdown: ScoreBreakdownOut
    inputs: ScoreInputsIn
    previous_inputs: ScoreInputsIn


class LongestSessionOut(BaseModel):
    duration_minutes: int
    started_at: datetime
    task_name: str


class FocusStatsResponse(BaseModel):
    period: str
    total_sessions: int
    total_minutes: int
    total_hours: float
    average_duration: int
    longest_session: LongestSessionOut | None = None
    current_streak: int
    longest_streak: int
    sessions_by_date: dict[str, MetricTotalsOut]
    hourly_minutes: dict[int, int]
    most_productive_hour: int | None = None
    average_sessions_per_day: float


class InsightsResponse(BaseModel):
    period: str
    completion_rate: int
    total_focus_minutes: int
    average_session_length: int
    overdue_tasks: int
    best_focus_hour: int | None = None
    most_productive_days: list[str]
    streaks: list[StreakOut]
    recommendations: list[str]


# ── Service dashboard ────────────────────────────────────────────────────────
class ServiceStatus(BaseModel):
    name: str
    configured: bool
    label: str


class DashboardStats(BaseModel):
    sessions_started: int
    sessions_completed: int
    sessions_abandoned: int
    stale_reconciled: int
    clock_anomalies: int
    uptime_seconds: int


class DashboardResponse(BaseModel):
    status: str = "ok"
    version: str
    reference_timezone: str
    services: list[ServiceStatus]
    stats: DashboardStats
