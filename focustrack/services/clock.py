"""Time source and calendar helpers shared by the lifecycle, streak and
aggregation services.

All instants are timezone-aware UTC datetimes; calendar dates are derived in
the configured reference timezone.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    """Round .5 away from negative infinity (2.5 → 3, -2.5 → -2)."""
    return int(math.floor(value + 0.5))


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, rounded half up. May be negative."""
    return round_half_up((end - start).total_seconds() / 60)


def local_date(moment: datetime, tz: tzinfo) -> date:
    return moment.astimezone(tz).date()


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """[start, end) of a calendar day in *tz*, as UTC instants."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        raise ValueError("naive datetime; pass a timezone-aware value")
    return moment.astimezone(timezone.utc)


def to_storage(moment: datetime) -> str:
    # Fixed-width UTC text so SQL string comparison orders chronologically
    return to_utc(moment).isoformat(timespec="microseconds")


def from_storage(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    return datetime.fromisoformat(raw)
