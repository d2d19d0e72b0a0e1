import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient
from api.main import app
import api.routes as routes
from coach.feedback import SessionFeedbackLog
from coach.models import FeedbackEntryInput
from coach.session import CoachSession

from fakes import DummyOracle, DummySource, DummySpeaker


@pytest.fixture
def built(settings, monkeypatch):
    built = []

    def fake_build_session(s, capture):
        session = CoachSession(
            s,
            oracle=DummyOracle(),
            speaker=DummySpeaker(),
            feedback_log=routes.feedback_log(),
            transcript_source=DummySource(),
        )
        built.append((session, capture))
        return session

    monkeypatch.setattr(routes, "settings", settings)
    monkeypatch.setattr(routes, "build_session", fake_build_session)
    monkeypatch.setattr(routes, "_feedback_logs", {})
    monkeypatch.setitem(routes.live_session, "session", None)
    return built


@pytest.fixture
def client(built):
    with TestClient(app) as c:
        c.built = built
        yield c
        if routes.live_session["session"] is not None:
            c.post("/session/stop")


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_ingestion_without_session_is_conflict(client):
    assert client.post("/session/transcript", json={"text": "hi", "is_final": True}).status_code == 409
    assert client.post("/session/page", json={"page_number": 2}).status_code == 409
    assert client.post("/session/emotion", json={"snapshot": None}).status_code == 409
    assert client.post("/session/deck", json={"page_texts": ["a"]}).status_code == 409
    assert client.get("/session/status").json() == {"running": False}


def test_session_lifecycle(client):
    r = client.post("/session/start")
    assert r.status_code == 200
    assert r.json() == {"status": "started", "warnings": []}
    assert client.post("/session/start").json()["status"] == "already_running"
    assert client.built[0][1] is False

    r = client.post("/session/transcript", json={"text": "we are the uber of", "is_final": False})
    assert r.json() == {"accepted": True, "transcript_chars": 18}
    r = client.post("/session/page", json={"page_number": 3})
    assert r.json()["current_page"] == 3
    snapshot = {"emotions": {"happy": 0.9}, "dominant_emotion": "happy", "confidence": 0.9, "captured_at": 1.0}
    assert client.post("/session/emotion", json={"snapshot": snapshot}).status_code == 200

    body = client.get("/session/status").json()
    assert body["running"] is True
    assert body["current_page"] == 3
    assert body["voice_state"] == "idle"
    assert body["transcript_chars"] == 18

    assert client.post("/session/stop").json() == {"status": "stopped"}
    assert client.post("/session/stop").json() == {"status": "not_running"}


def test_page_number_validated(client):
    client.post("/session/start")
    assert client.post("/session/page", json={"page_number": 0}).status_code == 422


def test_deck_summary_generated_when_missing(client):
    client.post("/session/start")
    r = client.post("/session/deck", json={"page_texts": ["Problem", "Solution"]})
    assert r.json() == {"pages": 2, "summary": "summary of 16 chars"}
    r = client.post("/session/deck", json={"page_texts": ["Problem"], "summary": "given"})
    assert r.json()["summary"] == "given"
    session = routes.live_session["session"]
    assert session.signals.slide_context().deck_summary == "given"


def test_events_websocket(client):
    with client.websocket_connect("/session/events") as ws:
        ws.send_json({"type": "page", "page_number": 2})
        assert ws.receive_json() == {"error": "No active session"}

        client.post("/session/start")
        ws.send_json({"type": "page", "page_number": 2})
        assert ws.receive_json()["current_page"] == 2
        ws.send_json({"type": "transcript", "text": "we are profitable", "is_final": True})
        assert ws.receive_json()["transcript_chars"] == len("we are profitable")
        ws.send_json({"type": "emotion", "snapshot": None})
        assert ws.receive_json()["running"] is True
        ws.send_json({"type": "dance"})
        assert "error" in ws.receive_json()
        ws.send_json({"type": "page", "page_number": 0})
        assert "error" in ws.receive_json()


def test_feedback_endpoints(client, settings):
    log = SessionFeedbackLog(settings.FEEDBACK_LOG_PATH)
    log.append(FeedbackEntryInput(page_number=1, critique="Louder.", page_text="Problem"))
    log.append(FeedbackEntryInput(page_number=3, critique="Which market?", page_text="Market"))

    body = client.get("/feedback").json()
    assert [e["critique"] for e in body["entries"]] == ["Louder.", "Which market?"]

    summary = client.get("/feedback/summary").json()
    assert [s["section_title"] for s in summary["sections"]] == ["Problem", "Market"]
    assert summary["overall"]["total_entries"] == 2

    mapped = client.post(
        "/feedback/summary",
        json={"sections": [{"title": "Everything", "start_page": 1, "end_page": 5}]},
    ).json()
    assert [s["section_title"] for s in mapped["sections"]] == ["Everything"]

    assert client.delete("/feedback").json() == {"status": "cleared"}
    assert client.get("/feedback").json()["entries"] == []


def test_concurrent_starts_share_one_session(built):
    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            first, second = await asyncio.gather(c.post("/session/start"), c.post("/session/start"))
            live = routes.live_session["session"]
            stopped = await c.post("/session/stop")
        return [first.json()["status"], second.json()["status"]], live, stopped.json()

    statuses, live, stopped = asyncio.run(scenario())
    assert sorted(statuses) == ["already_running", "started"]
    assert len(built) == 1
    session = built[0][0]
    assert live is session
    assert stopped == {"status": "stopped"}
    assert session.transcript_source.started
    assert session.transcript_source.stopped
    assert routes.live_session["session"] is None


def test_routes_and_session_share_one_feedback_log(settings, monkeypatch):
    monkeypatch.setattr(routes, "settings", settings)
    monkeypatch.setattr(routes, "_feedback_logs", {})
    log = routes.feedback_log()
    assert routes.feedback_log() is log

    session = routes.build_session(settings, False)
    assert session.feedback is log
