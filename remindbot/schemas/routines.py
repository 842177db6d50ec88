from __future__ import annotations

import datetime as dt
from pydantic import BaseModel, Field, field_validator, model_validator


ROUTINE_CATEGORY_VALUES = {"habit", "medication", "task"}
SCHEDULE_PATTERN_VALUES = {"daily", "weekdays", "custom"}


def _validate_enum_str(value: str, allowed: set[str], field_name: str) -> str:
    v = value.strip().lower()
    if v not in allowed:
        raise ValueError(f"{field_name} must be one of: {sorted(allowed)}")
    return v


class ScheduleIn(BaseModel):
    pattern: str = Field(default="daily", description="daily|weekdays|custom")
    time_weekdays: dt.time
    time_weekends: dt.time | None = None
    custom_days: list[int] | None = None
    extra_times: list[dt.time] = Field(default_factory=list, max_length=8)
    end_date: dt.date | None = None

    @field_validator("pattern")
    @classmethod
    def _pattern(cls, v: str) -> str:
        return _validate_enum_str(v, SCHEDULE_PATTERN_VALUES, "pattern")

    @field_validator("custom_days")
    @classmethod
    def _custom_days(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            return v
        if any(day < 1 or day > 7 for day in v):
            raise ValueError("custom_days values must be within 1..7 (1=Mon)")
        return sorted(set(v))

    @model_validator(mode="after")
    def _validate_pattern_fields(self) -> "ScheduleIn":
        if self.pattern == "custom" and not self.custom_days:
            raise ValueError("custom_days is required for the custom pattern")
        return self


class RoutineCreate(BaseModel):
    user_id: int
    category: str = Field(default="habit", description="habit|medication|task")
    title: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    icon: str | None = Field(default=None, max_length=10)
    dosage: str | None = Field(default=None, max_length=50)
    grace_period_min: int | None = Field(default=None, ge=0, le=24 * 60)
    priority: int | None = Field(default=None, ge=1, le=3)
    schedules: list[ScheduleIn] = Field(min_length=1)

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v

    @field_validator("category")
    @classmethod
    def _category(cls, v: str) -> str:
        return _validate_enum_str(v, ROUTINE_CATEGORY_VALUES, "category")


class ScheduleOut(BaseModel):
    id: int
    pattern: str
    time_weekdays: dt.time | None
    time_weekends: dt.time | None
    custom_days: list[int] | None
    extra_times: list[str] | None
    end_date: dt.date | None

    class Config:
        from_attributes = True


class RoutineOut(BaseModel):
    id: int
    user_id: int
    category: str
    title: str
    icon: str | None
    dosage: str | None
    is_active: bool
    grace_period_min: int
    priority: int
    schedules: list[ScheduleOut]

    class Config:
        from_attributes = True


class GenerationOut(BaseModel):
    routine_id: int
    created: int
    enqueued: int
