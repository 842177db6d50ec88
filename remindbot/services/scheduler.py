"""Reminder lifecycle: generation, delivery, escalation and user actions.

Every transition is a single conditional UPDATE on the reminder's status
(see ``crud.update_reminder_status``); the affected row count decides which of
several racing callers wins. Queue jobs can run more than once, so each
handler re-reads the reminder and does nothing unless it is still in the state
the job was created for.

Delivery and escalation claim the row (pending -> sent, level n-1 -> n)
before the network call and roll the claim back when delivery fails, so a
message is sent at most once per reminder and escalation level.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from remindbot import crud
from remindbot.models.reminder import (
    CANCELLED,
    COMPLETED,
    OPEN_STATUSES,
    PENDING,
    SENT,
    SKIPPED,
    Reminder,
)
from remindbot.services.content import ContentMissingError, ContentProvider, MessageKind
from remindbot.services.delivery import DeliveryClient, chat_id_for
from remindbot.services.job_queue import deliver_key, escalate_key, generate_key
from remindbot.services.quiet_hours import is_quiet, release_time, user_quiet_window
from remindbot.services.schedule_expander import expand_schedules
from remindbot.settings import settings
from remindbot.utils import get_zone, local_to_utc, utc_to_local, utcnow

logger = logging.getLogger("remindbot.scheduler")

MAX_ESCALATION_LEVEL = 3


class ActionOutcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ALREADY_TERMINAL = "already_terminal"
    LIMIT_REACHED = "limit_reached"


@dataclass(frozen=True)
class ActionResult:
    outcome: ActionOutcome
    reminder_id: int
    status: str | None = None
    postpones_remaining: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is ActionOutcome.OK


@dataclass(frozen=True)
class GenerationResult:
    routine_id: int
    created: int
    enqueued: int


class DeliveryFailed(RuntimeError):
    """Delivery client gave up; the queue's own retry policy takes over."""

    def __init__(self, reminder_id: int, reason: str | None) -> None:
        super().__init__(f"delivery of reminder {reminder_id} failed: {reason}")
        self.reminder_id = reminder_id
        self.reason = reason


@dataclass(frozen=True)
class JobQueues:
    deliver: object
    escalate: object
    background: object


def _result(outcome: ActionOutcome, reminder: Reminder | None, reminder_id: int) -> ActionResult:
    if reminder is None:
        return ActionResult(outcome, reminder_id)
    return ActionResult(outcome, reminder_id, reminder.status, reminder.postpones_remaining)


class ReminderScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        queues: JobQueues,
        delivery: DeliveryClient,
        content: ContentProvider,
        *,
        clock: Callable[[], dt.datetime] = utcnow,
        escalation_offsets_min: Iterable[int] | None = None,
        horizon_days: int | None = None,
        listeners: Iterable[Callable] = (),
    ) -> None:
        self._session_factory = session_factory
        self._queues = queues
        self._delivery = delivery
        self._content = content
        self._clock = clock
        offsets = list(escalation_offsets_min or settings.ESCALATION_OFFSETS_MIN)
        if len(offsets) != MAX_ESCALATION_LEVEL or any(b <= a for a, b in zip(offsets, offsets[1:])):
            raise ValueError("escalation offsets must be 3 strictly increasing values")
        self._offsets = [dt.timedelta(minutes=m) for m in offsets]
        self._horizon_days = horizon_days or settings.REMINDER_HORIZON_DAYS
        self._listeners = list(listeners)

    # helpers

    def _delay(self, fire_at: dt.datetime, now: dt.datetime) -> float:
        return max(0.0, (fire_at - now).total_seconds())

    @staticmethod
    def _fire_at(reminder: Reminder, tz) -> dt.datetime:
        if reminder.postponed_until is not None:
            return reminder.postponed_until
        return local_to_utc(reminder.scheduled_date, reminder.scheduled_time, tz)

    @staticmethod
    def _deliver_payload(reminder: Reminder, fire_at: dt.datetime, priority: int) -> dict:
        return {"reminder_id": reminder.id, "fire_at": fire_at.isoformat(), "priority": priority}

    def _escalation_fire_at(self, sent_at: dt.datetime, level: int) -> dt.datetime:
        return sent_at + self._offsets[level - 1]

    def _schedule_escalation(self, reminder_id: int, level: int, sent_at: dt.datetime, now: dt.datetime) -> bool:
        fire_at = self._escalation_fire_at(sent_at, level)
        return self._queues.escalate.enqueue(
            escalate_key(reminder_id, level),
            {
                "reminder_id": reminder_id,
                "level": level,
                "sent_at": sent_at.isoformat(),
                "fire_at": fire_at.isoformat(),
            },
            self._delay(fire_at, now),
        )

    def _cancel_escalations(self, reminder_id: int) -> None:
        for level in range(1, MAX_ESCALATION_LEVEL + 1):
            self._queues.escalate.cancel(escalate_key(reminder_id, level))

    def _cancel_jobs(self, reminder_id: int) -> None:
        self._queues.deliver.cancel(deliver_key(reminder_id))
        self._cancel_escalations(reminder_id)

    def _notify(self, event) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Event listener failed for %s event %s", event.event_type, event.id)

    def queue_stats(self) -> dict[str, dict[str, int]]:
        return {
            "deliver": self._queues.deliver.stats(),
            "escalate": self._queues.escalate.stats(),
            "background": self._queues.background.stats(),
        }

    # generation

    def generate_reminders(self, user_id: int, routine_id: int) -> GenerationResult:
        """Expand the routine over the horizon and queue delivery of its pending reminders.

        Safe to repeat: existing occurrences are not touched and delivery jobs
        are keyed per reminder.
        """
        with self._session_factory() as db:
            routine = crud.get_routine(db, routine_id, user_id=user_id)
            if routine is None or not routine.is_active:
                logger.info("Skipping generation for missing or inactive routine %s", routine_id)
                return GenerationResult(routine_id, 0, 0)

            tz = get_zone(routine.user.timezone, settings.TZ)
            now = self._clock()
            today = utc_to_local(now, tz).date()
            occurrences = expand_schedules(routine.schedules, today, self._horizon_days)

            created = 0
            for occ in occurrences:
                if crud.upsert_reminder(
                    db,
                    routine_id=routine.id,
                    user_id=routine.user_id,
                    scheduled_date=occ.date,
                    scheduled_time=occ.time,
                    commit=False,
                ):
                    created += 1
            db.commit()

            grace = dt.timedelta(minutes=routine.grace_period_min or 0)
            enqueued = 0
            pending = crud.list_routine_reminders(
                db, routine.id, start=today - dt.timedelta(days=1), statuses=[PENDING]
            )
            for reminder in pending:
                fire_at = self._fire_at(reminder, tz)
                if fire_at + grace < now:
                    continue
                if self._queues.deliver.enqueue(
                    deliver_key(reminder.id),
                    self._deliver_payload(reminder, fire_at, routine.priority),
                    self._delay(fire_at, now),
                ):
                    enqueued += 1

        logger.info(
            "Generated reminders for routine %s (user %s): created=%s enqueued=%s",
            routine_id, user_id, created, enqueued,
        )
        return GenerationResult(routine_id, created, enqueued)

    def request_generation(self, user_id: int, routine_id: int) -> bool:
        return self._queues.background.enqueue(
            generate_key(routine_id), {"user_id": user_id, "routine_id": routine_id}, 0
        )

    def extend_horizons(self) -> int:
        with self._session_factory() as db:
            routines = [(r.user_id, r.id) for r in crud.list_active_routines(db)]
        requested = sum(1 for user_id, routine_id in routines if self.request_generation(user_id, routine_id))
        logger.info("Horizon refresh requested for %s of %s routines", requested, len(routines))
        return requested

    def deactivate_routine(self, routine_id: int, *, user_id: int | None = None, source: str = "api") -> int | None:
        """Soft-delete a routine and cancel its upcoming pending reminders.

        Returns the number of cancelled reminders, or None if the routine is unknown.
        """
        with self._session_factory() as db:
            routine = crud.get_routine(db, routine_id, user_id=user_id)
            if routine is None:
                return None
            tz = get_zone(routine.user.timezone, settings.TZ)
            today = utc_to_local(self._clock(), tz).date()
            crud.deactivate_routine(db, routine_id)
            self._queues.background.cancel(generate_key(routine_id))

            cancelled = 0
            for reminder in crud.list_routine_reminders(db, routine_id, start=today, statuses=[PENDING]):
                self._cancel_jobs(reminder.id)
                if crud.update_reminder_status(db, reminder.id, [PENDING], commit=False, status=CANCELLED):
                    crud.record_event(db, reminder, "cancelled", source, commit=False)
                    cancelled += 1
            db.commit()

        logger.info("Routine %s deactivated, %s reminders cancelled", routine_id, cancelled)
        return cancelled

    # user actions

    def _close(self, reminder_id: int, new_status: str, event_type: str, user_id: int | None, source: str) -> ActionResult:
        with self._session_factory() as db:
            reminder = crud.get_reminder(db, reminder_id)
            if reminder is None or (user_id is not None and reminder.user_id != user_id):
                return ActionResult(ActionOutcome.NOT_FOUND, reminder_id)
            if reminder.is_terminal:
                return _result(ActionOutcome.ALREADY_TERMINAL, reminder, reminder_id)

            # jobs go first so a late escalation finds nothing to run
            self._cancel_jobs(reminder_id)

            values = {"status": new_status, "confirmation_source": source}
            if new_status == COMPLETED:
                values["completed_at"] = self._clock()
            if not crud.update_reminder_status(db, reminder_id, OPEN_STATUSES, commit=False, **values):
                db.rollback()
                logger.debug("Reminder %s already closed, %s ignored", reminder_id, event_type)
                db.refresh(reminder)
                return _result(ActionOutcome.ALREADY_TERMINAL, reminder, reminder_id)

            event = crud.record_event(db, reminder, event_type, source)
            db.refresh(reminder)
            result = _result(ActionOutcome.OK, reminder, reminder_id)

        self._notify(event)
        return result

    def complete(self, reminder_id: int, *, user_id: int | None = None, source: str = "bot") -> ActionResult:
        return self._close(reminder_id, COMPLETED, "completed", user_id, source)

    def skip(self, reminder_id: int, *, user_id: int | None = None, source: str = "bot") -> ActionResult:
        return self._close(reminder_id, SKIPPED, "skipped", user_id, source)

    def postpone(
        self,
        reminder_id: int,
        minutes: int | None = None,
        *,
        user_id: int | None = None,
        source: str = "bot",
    ) -> ActionResult:
        if minutes is None:
            minutes = settings.DEFAULT_POSTPONE_MIN
        if minutes <= 0:
            raise ValueError("minutes must be positive")

        with self._session_factory() as db:
            for _ in range(3):
                reminder = crud.get_reminder(db, reminder_id)
                if reminder is None or (user_id is not None and reminder.user_id != user_id):
                    return ActionResult(ActionOutcome.NOT_FOUND, reminder_id)
                if reminder.is_terminal:
                    return _result(ActionOutcome.ALREADY_TERMINAL, reminder, reminder_id)
                if reminder.postpone_count >= reminder.max_postpones:
                    return _result(ActionOutcome.LIMIT_REACHED, reminder, reminder_id)

                self._cancel_escalations(reminder_id)
                now = self._clock()
                until = now + dt.timedelta(minutes=minutes)
                applied = crud.update_reminder_status(
                    db,
                    reminder_id,
                    OPEN_STATUSES,
                    where=[Reminder.postpone_count == reminder.postpone_count],
                    commit=False,
                    status=PENDING,
                    postpone_count=reminder.postpone_count + 1,
                    postponed_until=until,
                    escalation_level=0,
                )
                if applied:
                    break
                db.rollback()
                db.expire_all()
                logger.debug("Postpone of reminder %s raced with another update, re-reading", reminder_id)
            else:
                db.refresh(reminder)
                return _result(ActionOutcome.ALREADY_TERMINAL, reminder, reminder_id)

            event = crud.record_event(
                db, reminder, "postponed", source, metadata={"minutes": minutes, "until": until.isoformat()}
            )
            db.refresh(reminder)
            priority = reminder.routine.priority if reminder.routine else 1
            self._queues.deliver.reschedule(
                deliver_key(reminder_id),
                self._deliver_payload(reminder, until, priority),
                self._delay(until, now),
            )
            result = _result(ActionOutcome.OK, reminder, reminder_id)

        self._notify(event)
        return result

    # queue handlers

    async def handle_deliver(self, reminder_id: int) -> str:
        with self._session_factory() as db:
            reminder = crud.get_reminder(db, reminder_id)
            if reminder is None:
                logger.debug("Deliver job for unknown reminder %s", reminder_id)
                return "missing"
            if reminder.status != PENDING:
                logger.debug("Reminder %s is %s, delivery skipped", reminder_id, reminder.status)
                return "noop"
            routine = reminder.routine
            if routine is None or not routine.is_active:
                return "noop"
            user = routine.user
            tz = get_zone(user.timezone, settings.TZ)
            now = self._clock()

            window = user_quiet_window(user)
            local_now = utc_to_local(now, tz)
            if window is not None and is_quiet(local_now.time(), window.start, window.end):
                release_local = release_time(local_now, window)
                release_at = local_to_utc(release_local.date(), release_local.time(), tz)
                self._queues.deliver.reschedule(
                    deliver_key(reminder_id),
                    self._deliver_payload(reminder, release_at, routine.priority),
                    self._delay(release_at, now),
                )
                logger.info("Quiet hours for user %s, reminder %s deferred to %s", user.id, reminder_id, release_at)
                return "deferred"

            content = self._content.render(MessageKind.INITIAL, routine, reminder)
            if content is None:
                raise ContentMissingError(f"no initial content for category {routine.category!r}")

            claimed = crud.update_reminder_status(
                db,
                reminder_id,
                [PENDING],
                where=[Reminder.postpone_count == reminder.postpone_count],
                status=SENT,
                sent_at=now,
                escalation_level=0,
                last_error=None,
            )
            if not claimed:
                logger.debug("Reminder %s changed before delivery, skipped", reminder_id)
                return "noop"
            self._schedule_escalation(reminder_id, 1, now, now)
            chat_id = chat_id_for(user)
            owner_id = user.id

        result = await self._delivery.send(chat_id, content)
        if result.delivered:
            logger.info("Reminder %s delivered to user %s", reminder_id, owner_id)
            return "sent"

        self._queues.escalate.cancel(escalate_key(reminder_id, 1))
        with self._session_factory() as db:
            crud.update_reminder_status(
                db,
                reminder_id,
                [SENT],
                where=[Reminder.escalation_level == 0, Reminder.sent_at == now],
                status=PENDING,
                sent_at=None,
                last_error=(result.reason or "delivery failed")[:400],
            )
        raise DeliveryFailed(reminder_id, result.reason)

    async def handle_escalate(self, reminder_id: int, level: int, sent_at: dt.datetime) -> str:
        """Escalate the send cycle that started at `sent_at`.

        A job left over from an earlier cycle (the reminder was postponed and
        delivered again since) matches no row and does nothing.
        """
        if not 1 <= level <= MAX_ESCALATION_LEVEL:
            raise ValueError(f"escalation level out of range: {level}")

        with self._session_factory() as db:
            reminder = crud.get_reminder(db, reminder_id)
            if reminder is None:
                return "missing"
            if reminder.status != SENT or reminder.sent_at != sent_at or reminder.escalation_level >= level:
                logger.debug(
                    "Escalation %s of reminder %s skipped (status=%s level=%s)",
                    level, reminder_id, reminder.status, reminder.escalation_level,
                )
                return "noop"
            routine = reminder.routine
            user = routine.user
            content = self._content.render(MessageKind.escalation(level), routine, reminder)

            if content is None and level >= MAX_ESCALATION_LEVEL:
                return await self._auto_skip(db, reminder, routine, user, sent_at)

            claimed = crud.update_reminder_status(
                db,
                reminder_id,
                [SENT],
                where=[Reminder.escalation_level < level, Reminder.sent_at == sent_at],
                escalation_level=level,
            )
            if not claimed:
                return "noop"
            now = self._clock()
            if level < MAX_ESCALATION_LEVEL:
                self._schedule_escalation(reminder_id, level + 1, sent_at, now)
            chat_id = chat_id_for(user)

        if content is None:
            logger.info("No content for escalation %s of reminder %s, moving on", level, reminder_id)
            return "escalated"

        result = await self._delivery.send(chat_id, content)
        if result.delivered:
            logger.info("Reminder %s escalated to level %s", reminder_id, level)
            return "escalated"

        if level < MAX_ESCALATION_LEVEL:
            self._queues.escalate.cancel(escalate_key(reminder_id, level + 1))
        with self._session_factory() as db:
            crud.update_reminder_status(
                db,
                reminder_id,
                [SENT],
                where=[Reminder.escalation_level == level, Reminder.sent_at == sent_at],
                escalation_level=level - 1,
                last_error=(result.reason or "delivery failed")[:400],
            )
        raise DeliveryFailed(reminder_id, result.reason)

    async def _auto_skip(self, db: Session, reminder: Reminder, routine, user, sent_at: dt.datetime) -> str:
        applied = crud.update_reminder_status(
            db,
            reminder.id,
            [SENT],
            where=[Reminder.sent_at == sent_at],
            commit=False,
            status=SKIPPED,
            escalation_level=MAX_ESCALATION_LEVEL,
            confirmation_source="auto",
        )
        if not applied:
            db.rollback()
            return "noop"
        event = crud.record_event(db, reminder, "auto_skipped", "system")
        self._cancel_jobs(reminder.id)
        db.refresh(reminder)
        notice = self._content.render(MessageKind.AUTO_SKIP, routine, reminder)
        chat_id = chat_id_for(user)
        db.close()

        self._notify(event)
        logger.info("Reminder %s auto-skipped", reminder.id)
        if notice is not None:
            result = await self._delivery.send(chat_id, notice)
            if not result.delivered:
                # status is terminal already; the notice is not retried
                logger.warning("Auto-skip notice for reminder %s not delivered: %s", reminder.id, result.reason)
        return "auto_skipped"

    async def handle_generate(self, user_id: int, routine_id: int) -> GenerationResult:
        return self.generate_reminders(user_id, routine_id)
