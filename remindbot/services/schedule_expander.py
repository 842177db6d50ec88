"""Expansion of recurring schedules into concrete (date, time) occurrences.

Pure functions only: persistence of the produced occurrences lives in
``crud.upsert_reminder`` and is driven by the scheduler.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Iterable

from remindbot.utils import parse_hhmm


class ScheduleConfigError(ValueError):
    """A schedule definition that can never be expanded. Not retried."""


@dataclass(frozen=True, order=True)
class Occurrence:
    date: dt.date
    time: dt.time


def _coerce_time(value, field_name: str) -> dt.time | None:
    if value is None or isinstance(value, dt.time):
        return value
    parsed = parse_hhmm(str(value))
    if parsed is None:
        raise ScheduleConfigError(f"{field_name} must be HH:MM, got {value!r}")
    return parsed


def _extra_times(schedule) -> list[dt.time]:
    raw = getattr(schedule, "extra_times", None) or []
    if not isinstance(raw, (list, tuple)):
        raise ScheduleConfigError("extra_times must be a list of HH:MM values")
    return [_coerce_time(v, "extra_times") for v in raw]


def _custom_days(schedule) -> set[int]:
    raw = getattr(schedule, "custom_days", None) or []
    if not isinstance(raw, (list, tuple)):
        raise ScheduleConfigError("custom_days must be a list of weekdays 1..7")
    days = set()
    for value in raw:
        try:
            day = int(value)
        except (TypeError, ValueError):
            raise ScheduleConfigError(f"custom_days contains a non-integer value: {value!r}")
        if not 1 <= day <= 7:
            raise ScheduleConfigError(f"custom_days values must be within 1..7, got {day}")
        days.add(day)
    return days


def times_for_date(schedule, day: dt.date) -> list[dt.time]:
    """Times at which ``schedule`` fires on ``day`` (empty if it does not)."""
    pattern = (getattr(schedule, "pattern", None) or "").strip().lower()
    weekday_time = _coerce_time(getattr(schedule, "time_weekdays", None), "time_weekdays")
    weekend_time = _coerce_time(getattr(schedule, "time_weekends", None), "time_weekends")
    end_date = getattr(schedule, "end_date", None)

    if pattern not in ("daily", "weekdays", "custom"):
        raise ScheduleConfigError(f"Unknown schedule pattern: {pattern!r}")
    if weekday_time is None:
        raise ScheduleConfigError("time_weekdays is required")

    if end_date is not None and day > end_date:
        return []

    iso_weekday = day.isoweekday()
    if pattern == "daily":
        times = [weekday_time, *_extra_times(schedule)]
    elif pattern == "weekdays":
        if iso_weekday <= 5:
            times = [weekday_time]
        else:
            times = [weekend_time or weekday_time]
    else:
        if iso_weekday not in _custom_days(schedule):
            return []
        times = [weekday_time, *_extra_times(schedule)]

    return sorted(set(times))


def expand_schedule(schedule, start: dt.date, days: int) -> list[Occurrence]:
    if days < 0:
        raise ValueError("days must be >= 0")
    out: list[Occurrence] = []
    for offset in range(days):
        day = start + dt.timedelta(days=offset)
        out.extend(Occurrence(day, t) for t in times_for_date(schedule, day))
    return out


def expand_schedules(schedules: Iterable, start: dt.date, days: int) -> list[Occurrence]:
    """Union of several schedules of one routine, ordered and de-duplicated."""
    merged: set[Occurrence] = set()
    for schedule in schedules:
        merged.update(expand_schedule(schedule, start, days))
    return sorted(merged)
