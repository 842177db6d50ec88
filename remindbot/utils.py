import datetime as dt
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> dt.datetime:
    """Naive UTC, the representation every DateTime column uses."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None, microsecond=0)


def parse_hhmm(value: str | None) -> dt.time | None:
    if not value:
        return None
    try:
        hh, mm = value.strip().split(":", 1)
        return dt.time(int(hh), int(mm))
    except ValueError:
        return None


def get_zone(name: str | None, default: str = "UTC") -> ZoneInfo:
    try:
        return ZoneInfo(name or default)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(default)


def local_to_utc(day: dt.date, at: dt.time, tz: ZoneInfo) -> dt.datetime:
    local = dt.datetime.combine(day, at).replace(tzinfo=tz)
    return local.astimezone(dt.timezone.utc).replace(tzinfo=None)


def utc_to_local(value: dt.datetime, tz: ZoneInfo) -> dt.datetime:
    return value.replace(tzinfo=dt.timezone.utc).astimezone(tz).replace(tzinfo=None)
