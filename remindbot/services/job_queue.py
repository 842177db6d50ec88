"""Delayed job queue keyed by deterministic job keys.

Two backends share one contract:

* ``enqueue`` is idempotent per key: a key that is waiting or in flight is not
  added a second time.
* ``reschedule`` moves (or re-creates) a key's fire time.
* ``cancel`` removes a waiting key and is a no-op for unknown or fired keys.
* ``claim_due`` hands due jobs to a worker and keeps them in an in-flight set
  until ``ack``/``retry``; in-flight jobs whose visibility timeout expired are
  put back by ``recover_expired`` (at-least-once delivery).
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import redis

from remindbot.settings import settings

logger = logging.getLogger("remindbot.queue")

DELIVER_QUEUE = "deliver"
ESCALATE_QUEUE = "escalate"
BACKGROUND_QUEUE = "background"


def deliver_key(reminder_id: int) -> str:
    return f"deliver:{reminder_id}"


def escalate_key(reminder_id: int, level: int) -> str:
    return f"escalate:{reminder_id}:{level}"


def generate_key(routine_id: int) -> str:
    return f"generate:{routine_id}"


@dataclass(frozen=True)
class Job:
    queue: str
    key: str
    payload: dict = field(default_factory=dict)
    attempt: int = 1


@dataclass
class _Entry:
    due_at: float
    payload: dict
    attempt: int = 1


class InMemoryJobQueue:
    def __init__(
        self,
        name: str,
        *,
        clock: Callable[[], float] = time.time,
        visibility_timeout: float | None = None,
    ) -> None:
        self.name = name
        self._clock = clock
        self._visibility = float(visibility_timeout or settings.JOB_VISIBILITY_TIMEOUT_SEC)
        self._waiting: dict[str, _Entry] = {}
        self._inflight: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def enqueue(self, key: str, payload: dict, delay: float = 0.0) -> bool:
        with self._lock:
            if key in self._waiting or key in self._inflight:
                return False
            self._waiting[key] = _Entry(self._clock() + max(0.0, delay), dict(payload))
        return True

    def reschedule(self, key: str, payload: dict, delay: float = 0.0) -> None:
        with self._lock:
            self._waiting[key] = _Entry(self._clock() + max(0.0, delay), dict(payload))

    def cancel(self, key: str) -> bool:
        with self._lock:
            return self._waiting.pop(key, None) is not None

    def claim_due(self, limit: int = 50) -> list[Job]:
        now = self._clock()
        with self._lock:
            due = sorted(
                (item for item in self._waiting.items() if item[1].due_at <= now),
                key=lambda item: item[1].due_at,
            )[:limit]
            jobs = []
            for key, entry in due:
                del self._waiting[key]
                self._inflight[key] = _Entry(now + self._visibility, entry.payload, entry.attempt)
                jobs.append(Job(self.name, key, dict(entry.payload), entry.attempt))
        return jobs

    def ack(self, job: Job) -> None:
        with self._lock:
            self._inflight.pop(job.key, None)

    def retry(self, job: Job, delay: float) -> None:
        with self._lock:
            self._inflight.pop(job.key, None)
            if job.key not in self._waiting:
                self._waiting[job.key] = _Entry(
                    self._clock() + max(0.0, delay), dict(job.payload), job.attempt + 1
                )

    def recover_expired(self) -> int:
        now = self._clock()
        recovered = 0
        with self._lock:
            for key, entry in list(self._inflight.items()):
                if entry.due_at > now:
                    continue
                del self._inflight[key]
                if key not in self._waiting:
                    self._waiting[key] = _Entry(now, entry.payload, entry.attempt + 1)
                    recovered += 1
        return recovered

    def get(self, key: str) -> Optional[Job]:
        with self._lock:
            entry = self._waiting.get(key)
            if entry is None:
                return None
            return Job(self.name, key, dict(entry.payload), entry.attempt)

    def due_at(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._waiting.get(key)
            return entry.due_at if entry else None

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._waiting)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"waiting": len(self._waiting), "inflight": len(self._inflight)}


_ENQUEUE_NX = """
if redis.call('ZSCORE', KEYS[1], ARGV[1]) or redis.call('ZSCORE', KEYS[3], ARGV[1]) then
  return 0
end
redis.call('ZADD', KEYS[1], ARGV[2], ARGV[1])
redis.call('HSET', KEYS[2], ARGV[1], ARGV[3])
return 1
"""

_CLAIM = """
local members = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
local out = {}
for _, member in ipairs(members) do
  local data = redis.call('HGET', KEYS[2], member)
  redis.call('ZREM', KEYS[1], member)
  redis.call('HDEL', KEYS[2], member)
  redis.call('ZADD', KEYS[3], ARGV[3], member)
  redis.call('HSET', KEYS[4], member, data or '{}')
  table.insert(out, member)
  table.insert(out, data or '{}')
end
return out
"""

_RETRY = """
local data = redis.call('HGET', KEYS[4], ARGV[1])
redis.call('ZREM', KEYS[3], ARGV[1])
redis.call('HDEL', KEYS[4], ARGV[1])
if redis.call('ZSCORE', KEYS[1], ARGV[1]) then
  return 0
end
redis.call('ZADD', KEYS[1], ARGV[2], ARGV[1])
redis.call('HSET', KEYS[2], ARGV[1], ARGV[3])
return 1
"""

_RECOVER = """
local expired = redis.call('ZRANGEBYSCORE', KEYS[3], '-inf', ARGV[1])
local recovered = 0
for _, member in ipairs(expired) do
  local data = redis.call('HGET', KEYS[4], member) or '{}'
  redis.call('ZREM', KEYS[3], member)
  redis.call('HDEL', KEYS[4], member)
  if not redis.call('ZSCORE', KEYS[1], member) then
    local entry = cjson.decode(data)
    entry['attempt'] = (entry['attempt'] or 1) + 1
    redis.call('ZADD', KEYS[1], ARGV[1], member)
    redis.call('HSET', KEYS[2], member, cjson.encode(entry))
    recovered = recovered + 1
  end
end
return recovered
"""


class RedisJobQueue:
    def __init__(
        self,
        name: str,
        url: str | None = None,
        *,
        client: "redis.Redis | None" = None,
        prefix: str | None = None,
        visibility_timeout: float | None = None,
    ) -> None:
        self.name = name
        if client is None:
            if not url:
                raise RuntimeError("REDIS_URL is not configured")
            client = redis.Redis.from_url(url, decode_responses=True)
        self._client = client
        base = f"{prefix or settings.QUEUE_PREFIX}:{name}"
        self._due = f"{base}:due"
        self._data = f"{base}:data"
        self._inflight = f"{base}:inflight"
        self._inflight_data = f"{base}:inflight_data"
        self._visibility = float(visibility_timeout or settings.JOB_VISIBILITY_TIMEOUT_SEC)
        self._enqueue_nx = client.register_script(_ENQUEUE_NX)
        self._claim = client.register_script(_CLAIM)
        self._retry = client.register_script(_RETRY)
        self._recover = client.register_script(_RECOVER)

    @property
    def _all_keys(self) -> list[str]:
        return [self._due, self._data, self._inflight, self._inflight_data]

    @staticmethod
    def _encode(payload: dict, attempt: int = 1) -> str:
        return json.dumps({"payload": payload, "attempt": attempt})

    def enqueue(self, key: str, payload: dict, delay: float = 0.0) -> bool:
        due_at = time.time() + max(0.0, delay)
        added = self._enqueue_nx(keys=self._all_keys, args=[key, due_at, self._encode(payload)])
        return bool(int(added))

    def reschedule(self, key: str, payload: dict, delay: float = 0.0) -> None:
        due_at = time.time() + max(0.0, delay)
        pipe = self._client.pipeline(transaction=True)
        pipe.zadd(self._due, {key: due_at})
        pipe.hset(self._data, key, self._encode(payload))
        pipe.execute()

    def cancel(self, key: str) -> bool:
        pipe = self._client.pipeline(transaction=True)
        pipe.zrem(self._due, key)
        pipe.hdel(self._data, key)
        removed, _ = pipe.execute()
        return bool(removed)

    def claim_due(self, limit: int = 50) -> list[Job]:
        now = time.time()
        flat = self._claim(keys=self._all_keys, args=[now, limit, now + self._visibility])
        jobs = []
        for key, raw in zip(flat[0::2], flat[1::2]):
            try:
                entry = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("Dropping undecodable job %s:%s", self.name, key)
                self.ack(Job(self.name, key))
                continue
            jobs.append(Job(self.name, key, entry.get("payload") or {}, int(entry.get("attempt") or 1)))
        return jobs

    def ack(self, job: Job) -> None:
        pipe = self._client.pipeline(transaction=True)
        pipe.zrem(self._inflight, job.key)
        pipe.hdel(self._inflight_data, job.key)
        pipe.execute()

    def retry(self, job: Job, delay: float) -> None:
        due_at = time.time() + max(0.0, delay)
        self._retry(
            keys=self._all_keys,
            args=[job.key, due_at, self._encode(job.payload, job.attempt + 1)],
        )

    def recover_expired(self) -> int:
        return int(self._recover(keys=self._all_keys, args=[time.time()]))

    def get(self, key: str) -> Optional[Job]:
        raw = self._client.hget(self._data, key)
        if raw is None:
            return None
        entry = json.loads(raw)
        return Job(self.name, key, entry.get("payload") or {}, int(entry.get("attempt") or 1))

    def due_at(self, key: str) -> Optional[float]:
        return self._client.zscore(self._due, key)

    def keys(self) -> list[str]:
        return sorted(self._client.zrange(self._due, 0, -1))

    def stats(self) -> dict[str, int]:
        return {
            "waiting": int(self._client.zcard(self._due)),
            "inflight": int(self._client.zcard(self._inflight)),
        }


_queues: dict[str, object] = {}


def get_job_queue(name: str):
    queue = _queues.get(name)
    if queue is not None:
        return queue
    if settings.REDIS_URL:
        queue = RedisJobQueue(name, settings.REDIS_URL)
    else:
        logger.warning("REDIS_URL is not set; queue %s is process-local", name)
        queue = InMemoryJobQueue(name)
    _queues[name] = queue
    return queue


def reset_job_queues() -> None:
    _queues.clear()
