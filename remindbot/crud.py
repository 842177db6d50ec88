from __future__ import annotations

import datetime as dt
from typing import Iterable

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from remindbot.models.event import ReminderEvent
from remindbot.models.reminder import PENDING, Reminder
from remindbot.models.routine import Routine, Schedule
from remindbot.models.user import User
from remindbot.schemas.routines import RoutineCreate
from remindbot.settings import settings
from remindbot.utils import utcnow


CATEGORY_PRIORITY = {"medication": 3, "habit": 1, "task": 1}


def get_or_create_user_by_chat_id(db: Session, chat_id: str, timezone: str | None = None) -> User:
    user = db.execute(select(User).where(User.telegram_chat_id == str(chat_id))).scalar_one_or_none()
    if user:
        return user
    user = User(
        telegram_chat_id=str(chat_id),
        timezone=timezone or settings.TZ,
        quiet_hours_start=settings.DEFAULT_QUIET_START,
        quiet_hours_end=settings.DEFAULT_QUIET_END,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def create_routine(db: Session, user_id: int, data: RoutineCreate) -> Routine:
    routine = Routine(
        user_id=user_id,
        category=data.category,
        title=data.title,
        description=data.description,
        icon=data.icon,
        dosage=data.dosage,
        grace_period_min=data.grace_period_min or settings.GRACE_PERIOD_MIN,
        priority=data.priority or CATEGORY_PRIORITY.get(data.category, 1),
    )
    for item in data.schedules:
        routine.schedules.append(
            Schedule(
                pattern=item.pattern,
                time_weekdays=item.time_weekdays,
                time_weekends=item.time_weekends,
                custom_days=item.custom_days,
                extra_times=[t.strftime("%H:%M") for t in item.extra_times] or None,
                end_date=item.end_date,
            )
        )
    db.add(routine)
    db.commit()
    db.refresh(routine)
    return routine


def get_routine(db: Session, routine_id: int, user_id: int | None = None) -> Routine | None:
    stmt = select(Routine).where(Routine.id == routine_id)
    if user_id is not None:
        stmt = stmt.where(Routine.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def list_routines(db: Session, user_id: int, active_only: bool = True) -> list[Routine]:
    stmt = select(Routine).where(Routine.user_id == user_id)
    if active_only:
        stmt = stmt.where(Routine.is_active.is_(True))
    return list(db.execute(stmt.order_by(Routine.priority.desc(), Routine.id.asc())).scalars())


def list_active_routines(db: Session) -> list[Routine]:
    return list(
        db.execute(
            select(Routine).where(Routine.is_active.is_(True)).order_by(Routine.id.asc())
        ).scalars()
    )


def deactivate_routine(db: Session, routine_id: int) -> Routine | None:
    routine = db.get(Routine, routine_id)
    if not routine:
        return None
    if routine.is_active:
        routine.is_active = False
        routine.deleted_at = utcnow()
        db.add(routine)
        db.commit()
        db.refresh(routine)
    return routine


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect for reminder upsert: {dialect}")
    return insert


def upsert_reminder(
    db: Session,
    *,
    routine_id: int,
    user_id: int,
    scheduled_date: dt.date,
    scheduled_time: dt.time,
    max_postpones: int | None = None,
    commit: bool = True,
) -> bool:
    """Insert one occurrence; an existing (routine, date, time) row is left untouched.

    Returns True when a row was created.
    """
    insert = _insert_for(db)
    now = utcnow()
    stmt = (
        insert(Reminder)
        .values(
            routine_id=routine_id,
            user_id=user_id,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            status=PENDING,
            postpone_count=0,
            max_postpones=settings.MAX_POSTPONES if max_postpones is None else max_postpones,
            escalation_level=0,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["routine_id", "scheduled_date", "scheduled_time"])
    )
    result = db.execute(stmt)
    if commit:
        db.commit()
    return bool(result.rowcount)


def get_reminder(db: Session, reminder_id: int) -> Reminder | None:
    return db.execute(select(Reminder).where(Reminder.id == reminder_id)).scalar_one_or_none()


def list_routine_reminders(
    db: Session,
    routine_id: int,
    start: dt.date | None = None,
    end: dt.date | None = None,
    statuses: Iterable[str] | None = None,
) -> list[Reminder]:
    stmt = select(Reminder).where(Reminder.routine_id == routine_id)
    if start is not None:
        stmt = stmt.where(Reminder.scheduled_date >= start)
    if end is not None:
        stmt = stmt.where(Reminder.scheduled_date <= end)
    if statuses is not None:
        stmt = stmt.where(Reminder.status.in_(list(statuses)))
    stmt = stmt.order_by(Reminder.scheduled_date.asc(), Reminder.scheduled_time.asc())
    return list(db.execute(stmt).scalars())


def list_reminders_for_day(db: Session, user_id: int, day: dt.date) -> list[Reminder]:
    return list(
        db.execute(
            select(Reminder)
            .where(and_(Reminder.user_id == user_id, Reminder.scheduled_date == day))
            .order_by(Reminder.scheduled_time.asc(), Reminder.id.asc())
        ).scalars()
    )


def update_reminder_status(
    db: Session,
    reminder_id: int,
    expected_statuses: Iterable[str],
    *,
    where: Iterable = (),
    commit: bool = True,
    **values,
) -> bool:
    """Compare-and-swap on status: applies ``values`` only while the row is in
    one of ``expected_statuses`` (and matches ``where``). Returns whether the
    row was updated.
    """
    values.setdefault("updated_at", utcnow())
    stmt = (
        update(Reminder)
        .where(Reminder.id == reminder_id, Reminder.status.in_(list(expected_statuses)), *where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if commit:
        db.commit()
    return result.rowcount == 1


def record_event(
    db: Session,
    reminder: Reminder,
    event_type: str,
    source: str = "bot",
    metadata: dict | None = None,
    commit: bool = True,
) -> ReminderEvent:
    event = ReminderEvent(
        reminder_id=reminder.id,
        user_id=reminder.user_id,
        routine_id=reminder.routine_id,
        event_type=event_type,
        event_source=source,
        metadata_json=metadata,
    )
    db.add(event)
    if commit:
        db.commit()
        db.refresh(event)
    return event


def list_events(db: Session, reminder_id: int, event_type: str | None = None) -> list[ReminderEvent]:
    stmt = select(ReminderEvent).where(ReminderEvent.reminder_id == reminder_id)
    if event_type:
        stmt = stmt.where(ReminderEvent.event_type == event_type)
    return list(db.execute(stmt.order_by(ReminderEvent.id.asc())).scalars())
