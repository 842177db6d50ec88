from __future__ import annotations

import logging
from pathlib import Path

from telegram.ext import Application

from remindbot.bot.handlers import register_handlers
from remindbot.db import SessionLocal
from remindbot.logging_utils import configure_logging
from remindbot.services.content import CatalogContentProvider
from remindbot.services.delivery import DeliveryClient
from remindbot.services.scheduler import ReminderScheduler
from remindbot.settings import settings
from remindbot.worker import build_queues

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_PATH = PROJECT_ROOT / ".env"


def build_application() -> Application:
    token = settings.TELEGRAM_BOT_TOKEN
    if not token:
        hint = (
            "TELEGRAM_BOT_TOKEN is missing.\n"
            f"Looked for .env at: {ENV_PATH}\n"
            f"Current working directory: {Path.cwd()}\n"
            "Fix: add TELEGRAM_BOT_TOKEN=... to .env and restart the bot\n"
        )
        raise RuntimeError(hint)

    app = Application.builder().token(token).build()
    scheduler = ReminderScheduler(
        SessionLocal,
        build_queues(),
        DeliveryClient(app.bot),
        CatalogContentProvider(),
    )
    register_handlers(app, scheduler)
    return app


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("remindbot.bot")
    app = build_application()
    logger.info("Bot started")
    app.run_polling(close_loop=False)


__all__ = ["build_application", "main"]
