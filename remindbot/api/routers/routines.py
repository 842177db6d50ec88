from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from remindbot import crud
from remindbot.api.deps import get_scheduler, require_api_key
from remindbot.db import get_db
from remindbot.schemas.routines import GenerationOut, RoutineCreate, RoutineOut
from remindbot.services.schedule_expander import ScheduleConfigError
from remindbot.services.scheduler import ReminderScheduler

router = APIRouter(prefix="/routines", tags=["routines"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=RoutineOut)
def create_routine(
    payload: RoutineCreate,
    db: Session = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    if not crud.get_user(db, payload.user_id):
        raise HTTPException(status_code=404, detail="User not found")
    routine = crud.create_routine(db, payload.user_id, payload)
    scheduler.request_generation(routine.user_id, routine.id)
    return routine


@router.get("", response_model=list[RoutineOut])
def list_routines(
    user_id: int = Query(...),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    return crud.list_routines(db, user_id, active_only=not include_inactive)


@router.delete("/{routine_id}")
def delete_routine(
    routine_id: int,
    user_id: int | None = Query(None),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    cancelled = scheduler.deactivate_routine(routine_id, user_id=user_id)
    if cancelled is None:
        raise HTTPException(status_code=404, detail="Routine not found")
    return {"ok": True, "cancelled": cancelled}


@router.post("/{routine_id}/generate", response_model=GenerationOut)
def generate(
    routine_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    routine = crud.get_routine(db, routine_id, user_id=user_id)
    if not routine or not routine.is_active:
        raise HTTPException(status_code=404, detail="Routine not found")
    try:
        result = scheduler.generate_reminders(user_id, routine_id)
    except ScheduleConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return GenerationOut(routine_id=result.routine_id, created=result.created, enqueued=result.enqueued)
