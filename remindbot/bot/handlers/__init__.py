from telegram.ext import Application, CallbackQueryHandler

from remindbot.bot.handlers.reminders import SCHEDULER_KEY, handle_reminder_callback
from remindbot.services.scheduler import ReminderScheduler


def register_handlers(app: Application, scheduler: ReminderScheduler) -> None:
    app.bot_data[SCHEDULER_KEY] = scheduler
    app.add_handler(CallbackQueryHandler(handle_reminder_callback, pattern=r"^rem:"))
