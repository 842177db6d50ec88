import datetime as dt
from types import SimpleNamespace

import pytest

from remindbot.services.schedule_expander import (
    Occurrence,
    ScheduleConfigError,
    expand_schedule,
    expand_schedules,
    times_for_date,
)

MONDAY = dt.date(2026, 3, 2)
SATURDAY = dt.date(2026, 3, 7)


def _schedule(**kwargs):
    base = dict(
        pattern="daily",
        time_weekdays=dt.time(9, 0),
        time_weekends=None,
        custom_days=None,
        extra_times=None,
        end_date=None,
    )
    base.update(kwargs)
    return SimpleNamespace(**base)


def test_daily_includes_extra_times_sorted():
    schedule = _schedule(extra_times=["21:00", "13:00"])
    assert times_for_date(schedule, MONDAY) == [dt.time(9, 0), dt.time(13, 0), dt.time(21, 0)]


def test_weekdays_uses_weekend_time_on_saturday():
    schedule = _schedule(pattern="weekdays", time_weekdays=dt.time(7, 30), time_weekends=dt.time(10, 0))
    assert times_for_date(schedule, MONDAY) == [dt.time(7, 30)]
    assert times_for_date(schedule, SATURDAY) == [dt.time(10, 0)]


def test_weekdays_without_weekend_time_falls_back():
    schedule = _schedule(pattern="weekdays", time_weekdays=dt.time(7, 30))
    assert times_for_date(schedule, SATURDAY) == [dt.time(7, 30)]


def test_custom_days_only():
    schedule = _schedule(pattern="custom", custom_days=[1, 3, 5])
    occurrences = expand_schedule(schedule, MONDAY, 7)
    assert [o.date.isoweekday() for o in occurrences] == [1, 3, 5]


def test_end_date_is_inclusive():
    schedule = _schedule(end_date=MONDAY + dt.timedelta(days=2))
    occurrences = expand_schedule(schedule, MONDAY, 30)
    assert [o.date for o in occurrences] == [MONDAY + dt.timedelta(days=i) for i in range(3)]


def test_expansion_is_deterministic_and_deduplicated():
    morning = _schedule(time_weekdays=dt.time(9, 0))
    overlapping = _schedule(time_weekdays=dt.time(9, 0), extra_times=["20:00"])

    first = expand_schedules([morning, overlapping], MONDAY, 2)
    second = expand_schedules([overlapping, morning], MONDAY, 2)

    assert first == second
    assert first == [
        Occurrence(MONDAY, dt.time(9, 0)),
        Occurrence(MONDAY, dt.time(20, 0)),
        Occurrence(MONDAY + dt.timedelta(days=1), dt.time(9, 0)),
        Occurrence(MONDAY + dt.timedelta(days=1), dt.time(20, 0)),
    ]


def test_zero_days_yields_nothing():
    assert expand_schedule(_schedule(), MONDAY, 0) == []


@pytest.mark.parametrize(
    "kwargs",
    [
        {"pattern": "hourly"},
        {"time_weekdays": None},
        {"time_weekdays": "25:99"},
        {"pattern": "custom", "custom_days": [0, 8]},
        {"extra_times": "09:00"},
    ],
)
def test_invalid_schedules_raise_config_error(kwargs):
    with pytest.raises(ScheduleConfigError):
        times_for_date(_schedule(**kwargs), MONDAY)


def test_weekday_split_over_one_week():
    schedule = _schedule(pattern="weekdays", time_weekdays=dt.time(7, 0), time_weekends=dt.time(9, 0))

    times = [o.time for o in expand_schedule(schedule, MONDAY, 7)]

    assert times.count(dt.time(7, 0)) == 5
    assert times.count(dt.time(9, 0)) == 2
