"""Next-run computation for recurring task schedules.

All arithmetic is done in UTC. `day_of_week` counts from Sunday = 0 (Monday = 1).
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

DEFAULT_TIME = "09:00"
DEFAULT_INTERVAL_MINUTES = 60


class ScheduleType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    INTERVAL = "interval"


def _parse_time(raw: object) -> tuple[int, int]:
    text = str(raw or DEFAULT_TIME).strip()
    try:
        hours_s, minutes_s = text.split(":", 1)
        hours, minutes = int(hours_s), int(minutes_s)
    except ValueError:
        raise ValueError(f"time must be HH:MM, got {text!r}") from None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"time out of range: {text!r}")
    return hours, minutes


def _int_option(config: Mapping[str, Any], key: str, default: int) -> int:
    value = config.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def _add_month(value: datetime, day: int) -> datetime:
    year, month = (value.year + 1, 1) if value.month == 12 else (value.year, value.month + 1)
    last = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(day, last))


def calculate_next_run(
    schedule_type: str | ScheduleType | None,
    config: Mapping[str, Any] | None,
    now: datetime,
) -> datetime:
    """Return the first run time strictly after `now` for the given schedule.

    - daily: today at `time` (default 09:00), or tomorrow if that has passed
    - weekly: the next `day_of_week` (default Monday) at `time`; the same weekday
      always rolls to next week
    - monthly: `day_of_month` (default 1, clamped to the month's length) at `time`,
      this month or next
    - interval: `interval_minutes` (default 60) after `now`
    - anything else: one hour after `now`
    """

    config = config or {}
    try:
        kind = ScheduleType(schedule_type) if schedule_type is not None else None
    except ValueError:
        kind = None

    if kind is ScheduleType.DAILY:
        hours, minutes = _parse_time(config.get("time"))
        candidate = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if kind is ScheduleType.WEEKLY:
        hours, minutes = _parse_time(config.get("time"))
        target_day = _int_option(config, "day_of_week", 1)
        if not 0 <= target_day <= 6:
            raise ValueError(f"day_of_week must be 0..6, got {target_day}")
        today = (now.weekday() + 1) % 7
        days_ahead = (target_day - today + 7) % 7 or 7
        candidate = now + timedelta(days=days_ahead)
        return candidate.replace(hour=hours, minute=minutes, second=0, microsecond=0)

    if kind is ScheduleType.MONTHLY:
        hours, minutes = _parse_time(config.get("time"))
        day = _int_option(config, "day_of_month", 1)
        if not 1 <= day <= 31:
            raise ValueError(f"day_of_month must be 1..31, got {day}")
        last = calendar.monthrange(now.year, now.month)[1]
        candidate = now.replace(
            day=min(day, last), hour=hours, minute=minutes, second=0, microsecond=0
        )
        if candidate <= now:
            candidate = _add_month(candidate, day)
        return candidate

    if kind is ScheduleType.INTERVAL:
        interval = _int_option(config, "interval_minutes", DEFAULT_INTERVAL_MINUTES)
        if interval < 1:
            raise ValueError(f"interval_minutes must be positive, got {interval}")
        return now + timedelta(minutes=interval)

    return now + timedelta(hours=1)
