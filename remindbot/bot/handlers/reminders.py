from __future__ import annotations

import logging

from telegram import Update
from telegram.ext import ContextTypes

from remindbot.bot.context import get_db_session, get_user
from remindbot.bot.parsing.callbacks import COMPLETE, POSTPONE, SKIP, parse_reminder_callback
from remindbot.i18n.core import t
from remindbot.services.scheduler import ActionOutcome, ActionResult, ReminderScheduler
from remindbot.settings import settings

logger = logging.getLogger("remindbot.bot")

SCHEDULER_KEY = "scheduler"


def _reply_text(result: ActionResult, action: str, minutes: int | None, locale: str) -> str:
    if result.outcome is not ActionOutcome.OK:
        return t(f"action.{result.outcome.value}", locale)
    if action == POSTPONE:
        return t("action.postponed", locale, minutes=minutes, remaining=result.postpones_remaining or 0)
    return t("action.completed" if action == COMPLETE else "action.skipped", locale)


def apply_reminder_action(scheduler: ReminderScheduler, user_id: int, data: str | None) -> tuple[ActionResult, str, int | None] | None:
    callback = parse_reminder_callback(data)
    if callback is None:
        return None
    if callback.action == COMPLETE:
        result = scheduler.complete(callback.reminder_id, user_id=user_id, source="bot")
    elif callback.action == SKIP:
        result = scheduler.skip(callback.reminder_id, user_id=user_id, source="bot")
    else:
        result = scheduler.postpone(callback.reminder_id, callback.minutes, user_id=user_id, source="bot")
    return result, callback.action, callback.minutes


async def handle_reminder_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not query or not update.effective_chat:
        return
    scheduler: ReminderScheduler = context.bot_data[SCHEDULER_KEY]

    with get_db_session() as db:
        user_id = get_user(update, db).id

    applied = apply_reminder_action(scheduler, user_id, query.data)
    if applied is None:
        logger.debug("Ignoring unknown callback data %r", query.data)
        await query.answer()
        return

    result, action, minutes = applied
    await query.answer(_reply_text(result, action, minutes, settings.LOCALE))
    if result.outcome in (ActionOutcome.OK, ActionOutcome.ALREADY_TERMINAL, ActionOutcome.NOT_FOUND):
        # buttons of a closed or postponed reminder are stale
        await query.edit_message_reply_markup(reply_markup=None)
