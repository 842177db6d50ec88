"""Rate-limited, retrying delivery of reminder content to Telegram."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from telegram.error import BadRequest, NetworkError, RetryAfter, TelegramError, TimedOut

from remindbot.bot.rendering.keyboard import reminder_keyboard
from remindbot.services.content import ReminderContent
from remindbot.settings import settings

logger = logging.getLogger("remindbot.delivery")


class Messenger(Protocol):
    async def send_message(self, chat_id: Any, text: str, **kwargs: Any) -> Any: ...


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    reason: str | None = None
    message_id: int | None = None
    attempts: int = 0


def _retry_after_seconds(exc: RetryAfter) -> float:
    value = exc.retry_after
    if isinstance(value, dt.timedelta):
        return value.total_seconds()
    return float(value)


class DeliveryClient:
    """Sends at most ``rate_per_sec`` requests per second with at most
    ``max_concurrent`` in flight. Callers over the limit wait for a slot.

    Rate-limit responses, timeouts and network errors are retried with
    exponential backoff; any other Telegram error fails immediately.
    """

    def __init__(
        self,
        messenger: Messenger,
        *,
        rate_per_sec: float | None = None,
        max_concurrent: int | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._messenger = messenger
        rate = settings.DELIVERY_RATE_PER_SEC if rate_per_sec is None else rate_per_sec
        self._interval = 1.0 / rate if rate > 0 else 0.0
        self._max_concurrent = max_concurrent or settings.DELIVERY_MAX_CONCURRENT
        self._timeout = timeout or settings.DELIVERY_TIMEOUT_SEC
        self._max_attempts = max(1, max_attempts or settings.DELIVERY_MAX_ATTEMPTS)
        self._backoff_base = settings.DELIVERY_BACKOFF_BASE_SEC if backoff_base is None else backoff_base
        self._sleep = sleep
        self._monotonic = monotonic
        self._next_slot = 0.0
        self._slot_lock: asyncio.Lock | None = None
        self._semaphore: asyncio.Semaphore | None = None

    def _primitives(self) -> tuple[asyncio.Lock, asyncio.Semaphore]:
        # created lazily so the client can be built outside a running loop
        if self._slot_lock is None:
            self._slot_lock = asyncio.Lock()
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
        return self._slot_lock, self._semaphore

    async def _wait_for_slot(self) -> None:
        slot_lock, _ = self._primitives()
        async with slot_lock:
            now = self._monotonic()
            start = max(now, self._next_slot)
            self._next_slot = start + self._interval
        if start > now:
            await self._sleep(start - now)

    async def _send_once(self, chat_id: Any, content: ReminderContent) -> Any:
        _, semaphore = self._primitives()
        await self._wait_for_slot()
        async with semaphore:
            return await asyncio.wait_for(
                self._messenger.send_message(
                    chat_id=chat_id,
                    text=content.text,
                    reply_markup=reminder_keyboard(content),
                ),
                timeout=self._timeout,
            )

    def _backoff(self, attempt: int) -> float:
        return self._backoff_base * (2 ** (attempt - 1))

    async def send(self, chat_id: Any, content: ReminderContent) -> DeliveryResult:
        reason = "unknown"
        for attempt in range(1, self._max_attempts + 1):
            try:
                message = await self._send_once(chat_id, content)
            except RetryAfter as exc:
                reason = "rate_limited"
                delay = max(self._backoff(attempt), _retry_after_seconds(exc))
            except BadRequest as exc:
                # a NetworkError subclass, but never transient
                logger.warning("Delivery to chat %s rejected: %s", chat_id, exc)
                return DeliveryResult(False, reason=f"rejected: {exc}", attempts=attempt)
            except (TimedOut, asyncio.TimeoutError):
                reason = "timeout"
                delay = self._backoff(attempt)
            except NetworkError:
                reason = "network"
                delay = self._backoff(attempt)
            except TelegramError as exc:
                logger.warning("Delivery to chat %s rejected: %s", chat_id, exc)
                return DeliveryResult(False, reason=f"rejected: {exc}", attempts=attempt)
            else:
                return DeliveryResult(True, message_id=getattr(message, "message_id", None), attempts=attempt)

            if attempt < self._max_attempts:
                logger.warning(
                    "Delivery to chat %s failed (%s), retry %s/%s in %.1fs",
                    chat_id, reason, attempt, self._max_attempts - 1, delay,
                )
                await self._sleep(delay)

        logger.error("Delivery to chat %s failed after %s attempts (%s)", chat_id, self._max_attempts, reason)
        return DeliveryResult(False, reason=reason, attempts=self._max_attempts)


def chat_id_for(user) -> Any:
    try:
        return int(user.telegram_chat_id)
    except ValueError:
        return user.telegram_chat_id
