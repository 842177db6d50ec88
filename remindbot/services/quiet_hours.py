from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from remindbot.utils import parse_hhmm


@dataclass(frozen=True)
class QuietWindow:
    start: dt.time
    end: dt.time


def _minute(t: dt.time) -> dt.time:
    return t.replace(second=0, microsecond=0)


def is_quiet(local_time: dt.time, window_start: dt.time, window_end: dt.time) -> bool:
    t = _minute(local_time)
    start = _minute(window_start)
    end = _minute(window_end)
    if start <= end:
        return start <= t <= end
    # window wraps midnight
    return t >= start or t <= end


def next_eligible(now: dt.datetime, window_end: dt.time) -> dt.datetime:
    """Next local datetime at or after ``window_end``; tomorrow once it has passed today."""
    candidate = dt.datetime.combine(now.date(), _minute(window_end))
    if candidate < now.replace(second=0, microsecond=0):
        candidate += dt.timedelta(days=1)
    return candidate


def user_quiet_window(user) -> QuietWindow | None:
    start = parse_hhmm(getattr(user, "quiet_hours_start", None))
    end = parse_hhmm(getattr(user, "quiet_hours_end", None))
    if start is None or end is None:
        return None
    return QuietWindow(start, end)


def release_time(now_local: dt.datetime, window: QuietWindow) -> dt.datetime:
    """First local minute after the window (the end minute itself is still quiet)."""
    return next_eligible(now_local, window.end) + dt.timedelta(minutes=1)
