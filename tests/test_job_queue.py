from remindbot.services.job_queue import (
    InMemoryJobQueue,
    deliver_key,
    escalate_key,
    generate_key,
    get_job_queue,
    reset_job_queues,
)
from remindbot.settings import settings


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _queue(clock, visibility_timeout=60):
    return InMemoryJobQueue("deliver", clock=clock, visibility_timeout=visibility_timeout)


def test_job_keys():
    assert deliver_key(7) == "deliver:7"
    assert escalate_key(7, 2) == "escalate:7:2"
    assert generate_key(3) == "generate:3"


def test_enqueue_is_idempotent_per_key():
    queue = _queue(Clock())

    assert queue.enqueue("deliver:1", {"reminder_id": 1}, delay=30)
    assert not queue.enqueue("deliver:1", {"reminder_id": 1}, delay=5)

    assert queue.due_at("deliver:1") == 1030.0
    assert queue.stats() == {"waiting": 1, "inflight": 0}


def test_claim_returns_only_due_jobs_in_order():
    clock = Clock()
    queue = _queue(clock)
    queue.enqueue("deliver:2", {"reminder_id": 2}, delay=20)
    queue.enqueue("deliver:1", {"reminder_id": 1}, delay=10)
    queue.enqueue("deliver:3", {"reminder_id": 3}, delay=300)

    clock.now += 20
    jobs = queue.claim_due()

    assert [job.key for job in jobs] == ["deliver:1", "deliver:2"]
    assert queue.stats() == {"waiting": 1, "inflight": 2}


def test_inflight_key_is_not_enqueued_twice():
    queue = _queue(Clock())
    queue.enqueue("deliver:1", {"reminder_id": 1})
    (job,) = queue.claim_due()

    assert not queue.enqueue("deliver:1", {"reminder_id": 1})
    queue.ack(job)
    assert queue.enqueue("deliver:1", {"reminder_id": 1})


def test_cancel_and_reschedule():
    clock = Clock()
    queue = _queue(clock)
    queue.enqueue("escalate:1:1", {"reminder_id": 1, "level": 1}, delay=900)

    assert queue.cancel("escalate:1:1")
    assert not queue.cancel("escalate:1:1")

    queue.reschedule("deliver:1", {"reminder_id": 1}, delay=60)
    queue.reschedule("deliver:1", {"reminder_id": 1, "fire_at": "later"}, delay=120)
    assert queue.due_at("deliver:1") == 1120.0
    assert queue.get("deliver:1").payload["fire_at"] == "later"


def test_retry_increments_attempt():
    clock = Clock()
    queue = _queue(clock)
    queue.enqueue("deliver:1", {"reminder_id": 1})
    (job,) = queue.claim_due()

    queue.retry(job, delay=5)

    assert queue.claim_due() == []
    clock.now += 5
    (retried,) = queue.claim_due()
    assert retried.attempt == 2


def test_retry_does_not_override_a_rescheduled_key():
    clock = Clock()
    queue = _queue(clock)
    queue.enqueue("deliver:1", {"reminder_id": 1})
    (job,) = queue.claim_due()
    queue.reschedule("deliver:1", {"reminder_id": 1}, delay=900)

    queue.retry(job, delay=5)

    assert queue.due_at("deliver:1") == 1900.0


def test_expired_inflight_jobs_are_recovered():
    clock = Clock()
    queue = _queue(clock, visibility_timeout=30)
    queue.enqueue("deliver:1", {"reminder_id": 1})
    queue.claim_due()

    assert queue.recover_expired() == 0
    clock.now += 31
    assert queue.recover_expired() == 1
    (job,) = queue.claim_due()
    assert job.attempt == 2


def test_queue_factory_falls_back_to_memory(monkeypatch):
    monkeypatch.setattr(settings, "REDIS_URL", None)
    reset_job_queues()
    try:
        queue = get_job_queue("deliver")
        assert isinstance(queue, InMemoryJobQueue)
        assert get_job_queue("deliver") is queue
    finally:
        reset_job_queues()
