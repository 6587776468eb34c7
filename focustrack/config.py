from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # ── Storage ─────────────────────────────────────────────────────────
    database_path: str = "focustrack.db"
    # Upper bound a store call waits on a locked database (seconds)
    sqlite_busy_timeout_seconds: float = 5.0

    # ── Calendar ────────────────────────────────────────────────────────
    # Every day boundary (streaks, rollups, "today") is computed here,
    # never in server-local time.
    reference_timezone: str = "UTC"

    # ── Session lifecycle ───────────────────────────────────────────────
    stale_session_hours: int = Field(default=24, gt=0)
    min_streak_minutes: int = 15
    default_planned_minutes: int = 25
    daily_focus_goal_minutes: int = 240

    # ── Scoring / streaks ───────────────────────────────────────────────
    trend_threshold: int = 5
    streak_milestones: list[int] = [7, 14, 30, 50, 100]

    # ── Notifier ────────────────────────────────────────────────────────
    # Empty URL → celebrations are only logged
    notifier_webhook_url: str = ""
    notifier_timeout_seconds: float = 3.0

    # ── General ─────────────────────────────────────────────────────────
    log_level: str = "INFO"

    @field_validator("reference_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.reference_timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings()
