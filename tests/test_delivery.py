import asyncio
from types import SimpleNamespace

from telegram.error import BadRequest, Forbidden, NetworkError, RetryAfter, TimedOut

from remindbot.services.content import ReminderAction, ReminderContent
from remindbot.services.delivery import DeliveryClient

CONTENT = ReminderContent(text="Take Vitamin D", actions=((ReminderAction("Done", "rem:ok:1"),),))


class ScriptedMessenger:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def send_message(self, chat_id, text, **kwargs):
        self.calls.append((chat_id, text, kwargs))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(message_id=len(self.calls))


class Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(round(seconds, 6))


def _client(messenger, sleeps, **kwargs):
    options = dict(rate_per_sec=1000, max_concurrent=5, timeout=5, max_attempts=3, backoff_base=0.5)
    options.update(kwargs)
    return DeliveryClient(messenger, sleep=sleeps, monotonic=lambda: 0.0, **options)


def test_successful_send_passes_keyboard():
    messenger = ScriptedMessenger()
    result = asyncio.run(_client(messenger, Sleeps()).send(42, CONTENT))

    assert result.delivered
    assert result.attempts == 1
    chat_id, text, kwargs = messenger.calls[0]
    assert (chat_id, text) == (42, "Take Vitamin D")
    assert kwargs["reply_markup"].inline_keyboard[0][0].callback_data == "rem:ok:1"


def test_rate_limit_response_is_retried_after_hint():
    messenger = ScriptedMessenger(RetryAfter(3))
    sleeps = Sleeps()

    result = asyncio.run(_client(messenger, sleeps, rate_per_sec=0).send(42, CONTENT))

    assert result.delivered
    assert result.attempts == 2
    assert sleeps.calls == [3.0]


def test_transient_errors_back_off_exponentially():
    messenger = ScriptedMessenger(NetworkError("reset"), TimedOut(), NetworkError("reset"))
    sleeps = Sleeps()

    result = asyncio.run(_client(messenger, sleeps, rate_per_sec=0).send(42, CONTENT))

    assert not result.delivered
    assert result.reason == "network"
    assert result.attempts == 3
    assert sleeps.calls == [0.5, 1.0]


def test_permanent_error_is_not_retried():
    messenger = ScriptedMessenger(BadRequest("Chat not found"))
    sleeps = Sleeps()

    result = asyncio.run(_client(messenger, sleeps).send(42, CONTENT))

    assert not result.delivered
    assert result.reason.startswith("rejected")
    assert len(messenger.calls) == 1
    assert sleeps.calls == []


def test_blocked_chat_is_not_retried():
    messenger = ScriptedMessenger(Forbidden("Forbidden: bot was blocked by the user"))
    sleeps = Sleeps()

    result = asyncio.run(_client(messenger, sleeps).send(42, CONTENT))

    assert not result.delivered
    assert "blocked" in result.reason
    assert len(messenger.calls) == 1
    assert sleeps.calls == []


def test_request_starts_are_evenly_spaced():
    messenger = ScriptedMessenger()
    sleeps = Sleeps()
    client = _client(messenger, sleeps, rate_per_sec=10)

    async def burst():
        await asyncio.gather(*(client.send(i, CONTENT) for i in range(3)))

    asyncio.run(burst())

    assert len(messenger.calls) == 3
    assert sorted(sleeps.calls) == [0.1, 0.2]


def test_slow_send_times_out():
    class SlowMessenger:
        async def send_message(self, chat_id, text, **kwargs):
            await asyncio.sleep(1)

    result = asyncio.run(
        _client(SlowMessenger(), Sleeps(), rate_per_sec=0, timeout=0.01, max_attempts=2).send(42, CONTENT)
    )

    assert not result.delivered
    assert result.reason == "timeout"
