from __future__ import annotations

import asyncio
import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from remindbot.bot.telegram import get_bot
from remindbot.db import SessionLocal
from remindbot.logging_utils import configure_logging
from remindbot.services.content import CatalogContentProvider, ContentMissingError
from remindbot.services.delivery import DeliveryClient
from remindbot.services.job_queue import (
    BACKGROUND_QUEUE,
    DELIVER_QUEUE,
    ESCALATE_QUEUE,
    Job,
    get_job_queue,
)
from remindbot.services.schedule_expander import ScheduleConfigError
from remindbot.services.scheduler import JobQueues, ReminderScheduler
from remindbot.settings import settings

logger = logging.getLogger("remindbot.worker")

JobHandler = Callable[[Job], Awaitable[object]]

# configuration problems: retrying cannot help
NON_RETRYABLE = (ContentMissingError, ScheduleConfigError, KeyError, ValueError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay: float
    exponential: bool = True

    def delay(self, attempt: int) -> float:
        if self.exponential:
            return self.base_delay * (2 ** (attempt - 1))
        return self.base_delay


RETRY_POLICIES = {
    DELIVER_QUEUE: RetryPolicy(max_attempts=3, base_delay=5.0),
    ESCALATE_QUEUE: RetryPolicy(max_attempts=2, base_delay=10.0, exponential=False),
    BACKGROUND_QUEUE: RetryPolicy(max_attempts=3, base_delay=5.0),
}


class QueueConsumer:
    """Claims due jobs from one queue and runs them with bounded concurrency."""

    def __init__(
        self,
        queue,
        handler: JobHandler,
        *,
        concurrency: int,
        policy: RetryPolicy,
        batch_size: int | None = None,
    ) -> None:
        self.queue = queue
        self._handler = handler
        self._concurrency = max(1, concurrency)
        self._policy = policy
        self._batch_size = batch_size or settings.WORKER_BATCH_SIZE
        self._semaphore: asyncio.Semaphore | None = None

    async def _run_job(self, job: Job) -> None:
        async with self._semaphore:
            try:
                await self._handler(job)
            except NON_RETRYABLE as exc:
                logger.error("Job %s:%s failed permanently: %s", job.queue, job.key, exc)
                self.queue.ack(job)
            except Exception as exc:  # noqa: BLE001
                if job.attempt < self._policy.max_attempts:
                    delay = self._policy.delay(job.attempt)
                    logger.warning(
                        "Job %s:%s attempt %s failed (%s), retry in %.0fs",
                        job.queue, job.key, job.attempt, exc, delay,
                    )
                    self.queue.retry(job, delay)
                else:
                    logger.error(
                        "Job %s:%s failed after %s attempts: %s", job.queue, job.key, job.attempt, exc
                    )
                    self.queue.ack(job)
            else:
                self.queue.ack(job)

    async def run_once(self) -> int:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._concurrency)
        jobs = self.queue.claim_due(self._batch_size)
        if not jobs:
            return 0
        jobs.sort(key=lambda job: int(job.payload.get("priority") or 0), reverse=True)
        await asyncio.gather(*(self._run_job(job) for job in jobs))
        return len(jobs)


def job_handlers(scheduler: ReminderScheduler) -> dict[str, JobHandler]:
    async def deliver(job: Job):
        return await scheduler.handle_deliver(int(job.payload["reminder_id"]))

    async def escalate(job: Job):
        return await scheduler.handle_escalate(
            int(job.payload["reminder_id"]),
            int(job.payload["level"]),
            dt.datetime.fromisoformat(job.payload["sent_at"]),
        )

    async def generate(job: Job):
        return await scheduler.handle_generate(int(job.payload["user_id"]), int(job.payload["routine_id"]))

    return {DELIVER_QUEUE: deliver, ESCALATE_QUEUE: escalate, BACKGROUND_QUEUE: generate}


def build_queues() -> JobQueues:
    return JobQueues(
        deliver=get_job_queue(DELIVER_QUEUE),
        escalate=get_job_queue(ESCALATE_QUEUE),
        background=get_job_queue(BACKGROUND_QUEUE),
    )


def build_scheduler(messenger=None, queues: JobQueues | None = None) -> ReminderScheduler:
    return ReminderScheduler(
        SessionLocal,
        queues or build_queues(),
        DeliveryClient(messenger or get_bot()),
        CatalogContentProvider(),
    )


class Worker:
    def __init__(self, scheduler: ReminderScheduler, queues: JobQueues) -> None:
        self.scheduler = scheduler
        handlers = job_handlers(scheduler)
        concurrency = {
            DELIVER_QUEUE: settings.WORKER_DELIVER_CONCURRENCY,
            ESCALATE_QUEUE: settings.WORKER_ESCALATE_CONCURRENCY,
            BACKGROUND_QUEUE: settings.WORKER_BACKGROUND_CONCURRENCY,
        }
        self.consumers = [
            QueueConsumer(
                getattr(queues, name),
                handlers[name],
                concurrency=concurrency[name],
                policy=RETRY_POLICIES[name],
            )
            for name in (DELIVER_QUEUE, ESCALATE_QUEUE, BACKGROUND_QUEUE)
        ]

    async def run_once(self) -> int:
        for consumer in self.consumers:
            recovered = consumer.queue.recover_expired()
            if recovered:
                logger.warning("Recovered %s expired jobs on %s", recovered, consumer.queue.name)
        counts = await asyncio.gather(*(consumer.run_once() for consumer in self.consumers))
        return sum(counts)

    async def run_loop(self, stop: asyncio.Event | None = None) -> None:
        logger.info("Reminder worker started")
        last_refresh = 0.0
        tick = 0
        while stop is None or not stop.is_set():
            try:
                if time.monotonic() - last_refresh >= settings.HORIZON_REFRESH_SEC:
                    self.scheduler.extend_horizons()
                    last_refresh = time.monotonic()
                processed = await self.run_once()
                tick += 1
                if tick % 60 == 0:
                    logger.info("Reminder worker heartbeat (processed=%s)", processed)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Reminder worker error: %s", exc)
            await asyncio.sleep(settings.WORKER_POLL_INTERVAL_SEC)


async def run_worker() -> None:
    bot = get_bot()
    queues = build_queues()
    async with bot:
        worker = Worker(build_scheduler(bot, queues), queues)
        await worker.run_loop()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
