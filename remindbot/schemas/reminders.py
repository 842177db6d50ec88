from __future__ import annotations

import datetime as dt
from pydantic import BaseModel, Field


class ReminderOut(BaseModel):
    id: int
    routine_id: int
    user_id: int
    scheduled_date: dt.date
    scheduled_time: dt.time
    status: str
    postpone_count: int
    max_postpones: int
    escalation_level: int
    sent_at: dt.datetime | None
    completed_at: dt.datetime | None
    postponed_until: dt.datetime | None
    confirmation_source: str | None

    class Config:
        from_attributes = True


class ActionIn(BaseModel):
    user_id: int | None = None


class PostponeIn(ActionIn):
    minutes: int = Field(default=15, ge=1, le=24 * 60)


class ActionOut(BaseModel):
    outcome: str
    reminder_id: int
    status: str | None = None
    postpones_remaining: int | None = None
