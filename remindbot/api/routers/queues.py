from __future__ import annotations

from fastapi import APIRouter, Depends

from remindbot.api.deps import get_scheduler, require_api_key
from remindbot.services.scheduler import ReminderScheduler

router = APIRouter(prefix="/queues", tags=["queues"], dependencies=[Depends(require_api_key)])


@router.get("/stats")
def queue_stats(scheduler: ReminderScheduler = Depends(get_scheduler)):
    return scheduler.queue_stats()
