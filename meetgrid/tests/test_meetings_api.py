import asyncio
import json

from meetgrid import state

EVENT = {
    "title": "Team offsite",
    "start_date": "2025-06-01",
    "end_date": "2025-06-02",
    "start_hour": 9,
    "end_hour": 10,
}


def create_event(client, **overrides):
    resp = client.post("/events", json={**EVENT, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def submit(client, event_id, name, slots, **extra):
    body = {"name": name, "availability": [{"date": d, "hour": h} for d, h in slots], **extra}
    return client.post(f"/events/{event_id}/availability", json=body)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "redis": "healthy", "store": "memory"}


def test_create_and_get_event(client):
    event_id = create_event(client, description="  ")
    resp = client.get(f"/events/{event_id}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["event"]["title"] == "Team offsite"
    assert data["event"]["description"] is None
    assert data["grid"] == {"dates": ["2025-06-01", "2025-06-02"], "hours": [9, 10]}
    assert data["participants"] == []
    assert data["heatmap"] == {}
    assert data["best_times"] == []


def test_create_event_from_selected_dates(client):
    resp = client.post(
        "/events",
        json={"title": "Dinner", "selected_dates": ["2025-06-05", "2025-06-03"], "start_hour": 18, "end_hour": 20},
    )
    assert resp.status_code == 201
    event = resp.json()
    assert event["start_date"] == "2025-06-03"
    assert event["end_date"] == "2025-06-05"
    grid = client.get(f"/events/{event['id']}").json()["grid"]
    assert grid["dates"] == ["2025-06-03", "2025-06-05"]
    assert grid["hours"] == [18, 19, 20]


def test_create_event_rejects_bad_input(client):
    assert client.post("/events", json={**EVENT, "title": "   "}).status_code == 422
    assert client.post("/events", json={**EVENT, "end_date": "2025-05-01"}).status_code == 422
    assert client.post("/events", json={**EVENT, "start_hour": 11}).status_code == 422
    assert client.post("/events", json={**EVENT, "end_hour": 24}).status_code == 422
    assert client.post("/events", json={**EVENT, "timezone": "Mars/Olympus"}).status_code == 422
    too_long = client.post("/events", json={**EVENT, "end_date": "2026-06-01"})
    assert too_long.status_code == 400
    assert too_long.json()["error"] == "bad_request"


def test_get_missing_event(client):
    resp = client.get("/events/doesnotexist")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_two_participants_rank_best_time(client):
    event_id = create_event(client)
    resp = submit(client, event_id, "Alice", [("2025-06-01", 9), ("2025-06-01", 10)])
    assert resp.status_code == 200
    assert resp.json()["is_new"] is True
    resp = submit(client, event_id, "Bob", [("2025-06-01", 9), ("2025-06-02", 10)])
    assert resp.status_code == 200

    data = client.get(f"/events/{event_id}").json()
    assert [p["name"] for p in data["participants"]] == ["Alice", "Bob"]
    assert data["heatmap"] == {"2025-06-01-9": 2, "2025-06-01-10": 1, "2025-06-02-10": 1}
    top = data["best_times"][0]
    assert top["slot"]["key"] == "2025-06-01-9"
    assert top["count"] == 2
    assert top["participants"] == ["Alice", "Bob"]


def test_resubmit_replaces_availability(client):
    event_id = create_event(client)
    submit(client, event_id, "Alice", [("2025-06-01", 9)])
    resp = submit(client, event_id, " Alice ", [("2025-06-02", 10), ("2025-06-02", 10)])
    assert resp.json()["is_new"] is False
    participants = client.get(f"/events/{event_id}").json()["participants"]
    assert len(participants) == 1
    assert participants[0]["availability"] == [{"date": "2025-06-02", "hour": 10}]


def test_submit_validation(client):
    event_id = create_event(client)
    resp = submit(client, event_id, "   ", [("2025-06-01", 9)])
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"
    assert submit(client, event_id, "Alice", []).status_code == 422
    resp = submit(client, event_id, "Alice", [("2025-06-01", 9)], lock=True)
    assert resp.status_code == 422
    assert resp.json()["error_code"] == "password_required"


def test_submit_to_missing_event(client):
    assert submit(client, "doesnotexist", "Alice", [("2025-06-01", 9)]).status_code == 404


def test_submit_slot_outside_grid(client):
    event_id = create_event(client)
    resp = submit(client, event_id, "Alice", [("2025-06-01", 9), ("2025-06-01", 11)])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid slot: 2025-06-01-11"
    assert resp.json()["context"]["slots"] == ["2025-06-01-11"]
    assert client.get(f"/events/{event_id}").json()["participants"] == []


def test_locked_name_requires_password(client):
    event_id = create_event(client)
    resp = submit(client, event_id, "Alice", [("2025-06-01", 9)], lock=True, password="secret")
    assert resp.json()["participant"]["locked"] is True

    resp = submit(client, event_id, "Alice", [("2025-06-02", 9)])
    assert resp.status_code == 403
    assert resp.json()["error"] == "name_locked"
    resp = submit(client, event_id, "Alice", [("2025-06-02", 9)], password="wrong")
    assert resp.status_code == 403

    resp = submit(client, event_id, "Alice", [("2025-06-02", 9)], password="secret")
    assert resp.status_code == 200
    participant = resp.json()["participant"]
    assert participant["locked"] is True
    assert participant["availability"] == [{"date": "2025-06-02", "hour": 9}]
    assert "password" not in participant


def test_slot_breakdown(client):
    event_id = create_event(client)
    submit(client, event_id, "Alice", [("2025-06-01", 9)])
    submit(client, event_id, "Bob", [("2025-06-02", 9)])
    resp = client.get(f"/events/{event_id}/slots/2025-06-01-9")
    assert resp.status_code == 200
    data = resp.json()
    assert data["slot"]["key"] == "2025-06-01-9"
    assert data["available"] == ["Alice"]
    assert data["unavailable"] == ["Bob"]
    assert client.get(f"/events/{event_id}/slots/garbage").status_code == 400


def test_submit_publishes_change(client):
    event_id = create_event(client)

    async def read_one():
        pubsub = state.redis_client.pubsub()
        await pubsub.subscribe(f"participants:{event_id}")
        await pubsub.get_message(timeout=1.0)
        return pubsub

    pubsub = client.portal.call(read_one)
    submit(client, event_id, "Alice", [("2025-06-01", 9)])

    async def next_message():
        for _ in range(20):
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
            if message is not None:
                await pubsub.aclose()
                return message
        await pubsub.aclose()
        return None

    message = client.portal.call(next_message)
    assert message is not None
    change = json.loads(message["data"])
    assert change["type"] == "participant_change"
    assert change["event_id"] == event_id
    assert change["event_type"] == "insert"
    assert change["row"]["name"] == "Alice"


def test_push_public_key(client):
    resp = client.get("/push/public-key")
    assert resp.status_code == 200
    assert resp.json() == {"public_key": "BPublicTestKey"}


def test_push_subscribe_and_notify(client):
    event_id = create_event(client)
    body = {
        "event_id": event_id,
        "subscription": {"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "k", "auth": "a"}},
    }
    resp = client.post("/push/subscribe", json=body)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}

    submit(client, event_id, "Alice", [("2025-06-01", 9)])

    async def outbox():
        return await state.redis_client.lrange("push:outbox", 0, -1)

    entries = [json.loads(e) for e in client.portal.call(outbox)]
    assert len(entries) == 1
    assert entries[0]["payload"]["event_id"] == event_id
    assert entries[0]["subscription"]["endpoint"] == "https://push.example.com/abc"

    resp = client.post("/push/unsubscribe", json={"event_id": event_id, "endpoint": "https://push.example.com/abc"})
    assert resp.json() == {"ok": True, "removed": True}
    resp = client.post("/push/unsubscribe", json={"event_id": event_id, "endpoint": "https://push.example.com/abc"})
    assert resp.json() == {"ok": True, "removed": False}


def test_push_subscribe_rejects(client):
    sub = {"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "k", "auth": "a"}}
    assert client.post("/push/subscribe", json={"event_id": "nope", "subscription": sub}).status_code == 404
    event_id = create_event(client)
    insecure = {**sub, "endpoint": "http://push.example.com/abc"}
    assert client.post("/push/subscribe", json={"event_id": event_id, "subscription": insecure}).status_code == 422


def test_websocket_forwards_participant_changes(client, monkeypatch):
    change = {"type": "participant_change", "event_id": "ev1", "event_type": "insert", "row": {"name": "Alice"}}

    class DummyPubSub:
        def __init__(self, data_text: str):
            self._data_text = data_text
            self.channels = []

        async def subscribe(self, channel: str):
            self.channels.append(channel)
            return True

        async def unsubscribe(self, _channel: str):
            return True

        async def aclose(self):
            return True

        async def listen(self):
            yield {"type": "subscribe", "data": 1}
            yield {"type": "message", "data": self._data_text}
            await asyncio.sleep(0)

    pubsub = DummyPubSub(json.dumps(change))
    monkeypatch.setattr(state.redis_client, "pubsub", lambda: pubsub)

    with client.websocket_connect("/ws/events/ev1") as ws:
        received = json.loads(ws.receive_text())
        assert received == change
        ws.send_text("pong")

    assert pubsub.channels == ["participants:ev1"]


def test_metrics_exposed(client):
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
