import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from meetgrid.middleware import HTTPLogMiddleware, event_id_from_path


def test_event_id_from_path():
    assert event_id_from_path("/events/abc123") == "abc123"
    assert event_id_from_path("/events/abc123/slots/2025-06-01-9") == "abc123"
    assert event_id_from_path("/ws/events/abc123") == "abc123"
    assert event_id_from_path("/health") == "-"


def _app(slow_ms):
    app = FastAPI()
    app.add_middleware(HTTPLogMiddleware, slow_ms=slow_ms)

    @app.get("/events/{event_id}")
    async def get_event(event_id: str):
        return {"id": event_id}

    return app


def test_adds_timing_header():
    resp = TestClient(_app(slow_ms=60_000)).get("/events/abc123")
    assert resp.status_code == 200
    assert int(resp.headers["X-Response-Time-Ms"]) >= 0


def test_slow_requests_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="meetgrid.http"):
        TestClient(_app(slow_ms=0)).get("/events/abc123")
    assert any("event_id=abc123" in r.getMessage() for r in caplog.records)
