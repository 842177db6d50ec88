import datetime as dt

from remindbot import crud
from remindbot.settings import settings


def _user(session_factory, chat_id="api-1"):
    with session_factory() as db:
        return crud.get_or_create_user_by_chat_id(db, chat_id=chat_id, timezone="UTC").id


def _routine_payload(user_id, **overrides):
    payload = {
        "user_id": user_id,
        "category": "medication",
        "title": "Vitamin D",
        "dosage": "1 tab",
        "schedules": [{"pattern": "daily", "time_weekdays": "09:00"}],
    }
    payload.update(overrides)
    return payload


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "secret")

    assert client.get("/routines", params={"user_id": 1}).status_code == 401
    resp = client.get("/routines", params={"user_id": 1}, headers={"X-API-Key": "secret"})
    assert resp.status_code == 200


def test_create_routine_requests_generation(client, session_factory, queues):
    user_id = _user(session_factory)

    resp = client.post("/routines", json=_routine_payload(user_id))

    assert resp.status_code == 200
    body = resp.json()
    assert body["priority"] == 3
    assert body["schedules"][0]["time_weekdays"] == "09:00:00"
    assert queues.background.keys() == [f"generate:{body['id']}"]


def test_create_routine_validation(client, session_factory):
    user_id = _user(session_factory)

    bad_pattern = _routine_payload(user_id, schedules=[{"pattern": "hourly", "time_weekdays": "09:00"}])
    custom_without_days = _routine_payload(user_id, schedules=[{"pattern": "custom", "time_weekdays": "09:00"}])

    assert client.post("/routines", json=bad_pattern).status_code == 422
    assert client.post("/routines", json=custom_without_days).status_code == 422
    assert client.post("/routines", json=_routine_payload(999)).status_code == 404


def test_generate_then_act_on_reminders(client, session_factory):
    user_id = _user(session_factory)
    routine_id = client.post("/routines", json=_routine_payload(user_id)).json()["id"]

    generated = client.post(f"/routines/{routine_id}/generate", params={"user_id": user_id}).json()
    assert generated == {"routine_id": routine_id, "created": 30, "enqueued": 30}

    today = client.get("/reminders/today", params={"user_id": user_id, "date": "2026-03-02"}).json()
    assert len(today) == 1
    reminder_id = today[0]["id"]

    postponed = client.post(f"/reminders/{reminder_id}/postpone", json={"minutes": 30, "user_id": user_id})
    assert postponed.status_code == 200
    assert postponed.json()["postpones_remaining"] == 1

    done = client.post(f"/reminders/{reminder_id}/complete", json={"user_id": user_id})
    assert done.json()["status"] == "completed"

    again = client.post(f"/reminders/{reminder_id}/skip", json={"user_id": user_id})
    assert again.status_code == 409
    assert again.json()["detail"]["outcome"] == "already_terminal"


def test_postpone_limit_is_conflict(client, session_factory):
    user_id = _user(session_factory)
    routine_id = client.post("/routines", json=_routine_payload(user_id)).json()["id"]
    client.post(f"/routines/{routine_id}/generate", params={"user_id": user_id})
    reminder_id = client.get(
        "/reminders/today", params={"user_id": user_id, "date": dt.date(2026, 3, 2).isoformat()}
    ).json()[0]["id"]

    codes = [client.post(f"/reminders/{reminder_id}/postpone").status_code for _ in range(3)]

    assert codes == [200, 200, 409]


def test_unknown_reminder_is_404(client):
    resp = client.post("/reminders/12345/complete")
    assert resp.status_code == 404
    assert resp.json()["detail"]["outcome"] == "not_found"


def test_delete_routine_cancels_reminders(client, session_factory):
    user_id = _user(session_factory)
    routine_id = client.post("/routines", json=_routine_payload(user_id)).json()["id"]
    client.post(f"/routines/{routine_id}/generate", params={"user_id": user_id})

    resp = client.delete(f"/routines/{routine_id}", params={"user_id": user_id})

    assert resp.json() == {"ok": True, "cancelled": 30}
    assert client.get("/routines", params={"user_id": user_id}).json() == []
    assert client.delete(f"/routines/{routine_id}", params={"user_id": user_id + 1}).status_code == 404


def test_queue_stats(client):
    stats = client.get("/queues/stats").json()
    assert set(stats) == {"deliver", "escalate", "background"}
    assert stats["deliver"] == {"waiting": 0, "inflight": 0}
