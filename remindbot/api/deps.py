from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from remindbot.bot.telegram import get_bot
from remindbot.db import SessionLocal
from remindbot.services.content import CatalogContentProvider
from remindbot.services.delivery import DeliveryClient
from remindbot.services.scheduler import ActionOutcome, ActionResult, ReminderScheduler
from remindbot.settings import settings
from remindbot.worker import build_queues


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY and x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


@lru_cache
def get_scheduler() -> ReminderScheduler:
    # the API only changes state; delivery happens in the worker
    messenger = get_bot() if settings.TELEGRAM_BOT_TOKEN else None
    return ReminderScheduler(
        SessionLocal,
        build_queues(),
        DeliveryClient(messenger),
        CatalogContentProvider(),
    )


_OUTCOME_ERRORS = {
    ActionOutcome.NOT_FOUND: (404, "Reminder not found"),
    ActionOutcome.ALREADY_TERMINAL: (409, "Reminder is already closed"),
    ActionOutcome.LIMIT_REACHED: (409, "Postpone limit reached"),
}


def raise_for_outcome(result: ActionResult) -> None:
    if result.ok:
        return
    status_code, detail = _OUTCOME_ERRORS[result.outcome]
    raise HTTPException(status_code=status_code, detail={"outcome": result.outcome.value, "message": detail})
