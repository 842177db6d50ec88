from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from remindbot import crud
from remindbot.api.deps import get_scheduler, raise_for_outcome, require_api_key
from remindbot.db import get_db
from remindbot.schemas.reminders import ActionIn, ActionOut, PostponeIn, ReminderOut
from remindbot.services.scheduler import ActionResult, ReminderScheduler
from remindbot.settings import settings
from remindbot.utils import get_zone, utc_to_local, utcnow

router = APIRouter(prefix="/reminders", tags=["reminders"], dependencies=[Depends(require_api_key)])


def _action_out(result: ActionResult) -> ActionOut:
    raise_for_outcome(result)
    return ActionOut(
        outcome=result.outcome.value,
        reminder_id=result.reminder_id,
        status=result.status,
        postpones_remaining=result.postpones_remaining,
    )


@router.get("/today", response_model=list[ReminderOut])
def list_today(
    user_id: int = Query(...),
    date: dt.date | None = Query(None, description="YYYY-MM-DD, defaults to the user's local today"),
    db: Session = Depends(get_db),
):
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    day = date or utc_to_local(utcnow(), get_zone(user.timezone, settings.TZ)).date()
    return crud.list_reminders_for_day(db, user_id, day)


@router.post("/{reminder_id}/complete", response_model=ActionOut)
def complete(
    reminder_id: int,
    payload: ActionIn | None = None,
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    user_id = payload.user_id if payload else None
    return _action_out(scheduler.complete(reminder_id, user_id=user_id, source="api"))


@router.post("/{reminder_id}/skip", response_model=ActionOut)
def skip(
    reminder_id: int,
    payload: ActionIn | None = None,
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    user_id = payload.user_id if payload else None
    return _action_out(scheduler.skip(reminder_id, user_id=user_id, source="api"))


@router.post("/{reminder_id}/postpone", response_model=ActionOut)
def postpone(
    reminder_id: int,
    payload: PostponeIn | None = None,
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    payload = payload or PostponeIn()
    return _action_out(
        scheduler.postpone(reminder_id, payload.minutes, user_id=payload.user_id, source="api")
    )
