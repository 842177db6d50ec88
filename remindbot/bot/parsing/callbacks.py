from __future__ import annotations

from dataclasses import dataclass

COMPLETE = "ok"
SKIP = "skip"
POSTPONE = "p"


@dataclass(frozen=True)
class ReminderCallback:
    action: str
    reminder_id: int
    minutes: int | None = None


def parse_reminder_callback(data: str | None) -> ReminderCallback | None:
    """Parse ``rem:ok:<id>``, ``rem:skip:<id>`` and ``rem:p:<id>:<minutes>``."""
    if not data:
        return None
    parts = data.strip().split(":")
    if len(parts) < 3 or parts[0] != "rem":
        return None
    action = parts[1]
    try:
        reminder_id = int(parts[2])
    except ValueError:
        return None
    if reminder_id <= 0:
        return None
    if action in (COMPLETE, SKIP) and len(parts) == 3:
        return ReminderCallback(action, reminder_id)
    if action == POSTPONE and len(parts) == 4:
        try:
            minutes = int(parts[3])
        except ValueError:
            return None
        if 1 <= minutes <= 24 * 60:
            return ReminderCallback(action, reminder_id, minutes)
    return None
