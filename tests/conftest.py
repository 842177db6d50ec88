import datetime as dt
import itertools
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from remindbot import crud
from remindbot.api.deps import get_scheduler
from remindbot.db import get_db
from remindbot.main import create_app
from remindbot.models import Base
from remindbot.schemas.routines import RoutineCreate, ScheduleIn
from remindbot.services.content import CatalogContentProvider
from remindbot.services.delivery import DeliveryClient
from remindbot.services.job_queue import InMemoryJobQueue
from remindbot.services.scheduler import JobQueues, ReminderScheduler
from remindbot.settings import settings

# Monday
START = dt.datetime(2026, 3, 2, 8, 30)


class FakeClock:
    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += dt.timedelta(**kwargs)

    def timestamp(self) -> float:
        return self.now.replace(tzinfo=dt.timezone.utc).timestamp()


class FakeMessenger:
    def __init__(self) -> None:
        self.sent = []
        self.errors = []

    async def send_message(self, chat_id, text, **kwargs):
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append(SimpleNamespace(chat_id=chat_id, text=text, **kwargs))
        return SimpleNamespace(message_id=len(self.sent))


async def no_sleep(_seconds):
    return None


def ts(value: dt.datetime) -> float:
    return value.replace(tzinfo=dt.timezone.utc).timestamp()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def clock():
    return FakeClock(START)


@pytest.fixture()
def queues(clock):
    return JobQueues(
        deliver=InMemoryJobQueue("deliver", clock=clock.timestamp),
        escalate=InMemoryJobQueue("escalate", clock=clock.timestamp),
        background=InMemoryJobQueue("background", clock=clock.timestamp),
    )


@pytest.fixture()
def messenger():
    return FakeMessenger()


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def scheduler(session_factory, queues, messenger, clock, events):
    delivery = DeliveryClient(
        messenger,
        rate_per_sec=1000,
        max_concurrent=5,
        timeout=5,
        max_attempts=3,
        backoff_base=0,
        sleep=no_sleep,
    )
    return ReminderScheduler(
        session_factory,
        queues,
        delivery,
        CatalogContentProvider(locale="en"),
        clock=clock,
        escalation_offsets_min=[15, 45, 60],
        horizon_days=30,
        listeners=[events.append],
    )


@pytest.fixture()
def make_routine(session_factory):
    chat_ids = itertools.count(100)

    def _make(
        *,
        category="habit",
        pattern="daily",
        time_weekdays=dt.time(9, 0),
        time_weekends=None,
        custom_days=None,
        extra_times=(),
        end_date=None,
        timezone="UTC",
        user_id=None,
    ):
        with session_factory() as db:
            if user_id is None:
                user_id = crud.get_or_create_user_by_chat_id(db, chat_id=str(next(chat_ids)), timezone=timezone).id
            payload = RoutineCreate(
                user_id=user_id,
                category=category,
                title="Vitamin D",
                schedules=[
                    ScheduleIn(
                        pattern=pattern,
                        time_weekdays=time_weekdays,
                        time_weekends=time_weekends,
                        custom_days=custom_days,
                        extra_times=list(extra_times),
                        end_date=end_date,
                    )
                ],
            )
            routine = crud.create_routine(db, user_id, payload)
            return user_id, routine.id

    return _make


@pytest.fixture()
def test_app(session_factory, scheduler):
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    return app


@pytest.fixture()
def client(test_app, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", None)
    return TestClient(test_app)
