import asyncio
import contextlib
import datetime as dt
from types import SimpleNamespace

import pytest

from remindbot import crud
from remindbot.bot.handlers import reminders as reminder_handlers
from remindbot.bot.parsing.callbacks import ReminderCallback, parse_reminder_callback
from remindbot.bot.telegram import get_bot
from remindbot.models.reminder import COMPLETED
from remindbot.settings import settings


@pytest.mark.parametrize(
    "data, expected",
    [
        ("rem:ok:12", ReminderCallback("ok", 12)),
        ("rem:skip:12", ReminderCallback("skip", 12)),
        ("rem:p:12:30", ReminderCallback("p", 12, 30)),
        ("rem:p:12", None),
        ("rem:p:12:0", None),
        ("rem:ok:abc", None),
        ("rem:ok:-1", None),
        ("task:ok:12", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_reminder_callback(data, expected):
    assert parse_reminder_callback(data) == expected


class FakeQuery:
    def __init__(self, data):
        self.data = data
        self.answers = []
        self.markup_cleared = False

    async def answer(self, text=None, **kwargs):
        self.answers.append(text)

    async def edit_message_reply_markup(self, reply_markup=None, **kwargs):
        self.markup_cleared = reply_markup is None


@pytest.fixture()
def sent_reminder(scheduler, session_factory, make_routine, clock, monkeypatch):
    monkeypatch.setattr(reminder_handlers, "get_db_session", lambda: contextlib.closing(session_factory()))
    user_id, routine_id = make_routine()
    scheduler.generate_reminders(user_id, routine_id)
    with session_factory() as db:
        reminder_id = crud.list_routine_reminders(db, routine_id)[0].id
    clock.now = dt.datetime(2026, 3, 2, 9, 0)
    asyncio.run(scheduler.handle_deliver(reminder_id))
    return reminder_id


def _press(scheduler, data, chat_id=100):
    query = FakeQuery(data)
    update = SimpleNamespace(callback_query=query, effective_chat=SimpleNamespace(id=chat_id))
    context = SimpleNamespace(bot_data={reminder_handlers.SCHEDULER_KEY: scheduler})
    asyncio.run(reminder_handlers.handle_reminder_callback(update, context))
    return query


def test_done_button_completes_reminder(scheduler, session_factory, sent_reminder):
    query = _press(scheduler, f"rem:ok:{sent_reminder}")

    assert query.answers == ["Marked as done."]
    assert query.markup_cleared
    with session_factory() as db:
        assert crud.get_reminder(db, sent_reminder).status == COMPLETED


def test_postpone_button_reports_remaining(scheduler, sent_reminder):
    query = _press(scheduler, f"rem:p:{sent_reminder}:15")

    assert query.answers == ["I'll remind you again in 15 min (1 postpones left)."]


def test_button_from_another_chat_is_not_found(scheduler, sent_reminder):
    query = _press(scheduler, f"rem:skip:{sent_reminder}", chat_id=555)

    assert query.answers == ["This reminder no longer exists."]


def test_unknown_callback_is_acknowledged(scheduler, sent_reminder):
    query = _press(scheduler, "rem:zzz:1")

    assert query.answers == [None]
    assert not query.markup_cleared


def test_get_bot_requires_token(monkeypatch):
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", None)
    with pytest.raises(RuntimeError):
        get_bot()

    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "123:abc")
    assert get_bot().token == "123:abc"
