from telegram import Bot
from telegram.request import HTTPXRequest

from remindbot.settings import settings


def get_bot() -> Bot:
    """Bot whose HTTP pool fits the delivery client's in-flight limit."""
    token = settings.TELEGRAM_BOT_TOKEN
    if not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is missing.")
    timeout = settings.DELIVERY_TIMEOUT_SEC
    request = HTTPXRequest(
        connection_pool_size=max(1, settings.DELIVERY_MAX_CONCURRENT),
        read_timeout=timeout,
        write_timeout=timeout,
    )
    return Bot(token=token, request=request)
