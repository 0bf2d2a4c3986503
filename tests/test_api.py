"""Tests for the FastAPI overlay service.

WHY: The HTTP layer translates JSON into core calls and back. Tests make
sure every endpoint reaches the core with the right arguments and that
errors come back with the documented status codes.

HOW: FastAPI TestClient drives the app in-process. The session store is
cleared before and after each test.

RULES:
- Each test is independent; no shared sessions
- Tests cover happy paths, 404 unknown session, 409 no candidate, 422
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from guided_reader.server.app import app, session_store

VTT = "WEBVTT\n\n00:00:00.000 --> 00:00:02.000\nThe quick\n\n00:00:03.000 --> 00:00:05.000\nfox jumps\n"


@pytest.fixture(autouse=True)
def _reset_session_store():
    """Clear all sessions before each test to ensure isolation."""
    session_store.clear()
    yield
    session_store.clear()


@pytest.fixture
def client():
    return TestClient(app)


def _create(client, **overrides):
    body = {
        "text_id": 3,
        "text": "The quick fox jumps.",
        "annotations": [{"id": 1, "start": 10, "end": 19}],
        "vtt": VTT,
    }
    body.update(overrides)
    resp = client.post("/sessions", json=body)
    assert resp.status_code == 201
    return resp.json()


# ---------------------------------------------------------------------------
# Stateless endpoints
# ---------------------------------------------------------------------------


class TestRender:

    def test_three_runs(self, client):
        resp = client.post("/render", json={
            "text": "The quick fox",
            "annotations": [{"id": 1, "start": 4, "end": 9}],
        })
        assert resp.status_code == 200
        body = resp.json()
        assert [(r["kind"], r["text"]) for r in body["runs"]] == [
            ("plain", "The "),
            ("annotated", "quick"),
            ("plain", " fox"),
        ]
        assert 'id="annotated-text-0"' in body["markup"]

    def test_missing_text(self, client):
        assert client.post("/render", json={"annotations": []}).status_code == 422


class TestCaptionParse:

    def test_parse(self, client):
        resp = client.post("/captions/parse", json={"content": VTT})
        assert resp.status_code == 200
        assert resp.json()["entries"] == [
            {"start": 0, "end": 2, "text": "The quick"},
            {"start": 3, "end": 5, "text": "fox jumps"},
        ]

    def test_garbage(self, client):
        resp = client.post("/captions/parse", json={"content": "not a caption file"})
        assert resp.json()["entries"] == []


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestSessionLifecycle:

    def test_create(self, client):
        body = _create(client)
        assert body["text_id"] == 3
        assert body["selection_state"] == "idle"
        assert body["caption_count"] == 2
        assert [r["kind"] for r in body["runs"]] == ["plain", "annotated", "plain"]
        assert body["text"] == "The quick fox jumps."

    def test_create_with_parsed_captions(self, client):
        body = _create(client, vtt=None, captions=[{"start": 0, "end": 2, "text": "The quick"}])
        assert body["caption_count"] == 1

    def test_get(self, client):
        session_id = _create(client)["id"]
        resp = client.get("/sessions/{}".format(session_id))
        assert resp.status_code == 200
        assert resp.json()["id"] == session_id

    def test_unknown_session(self, client):
        assert client.get("/sessions/nope").status_code == 404
        assert client.post("/sessions/nope/tick", json={"time": 1}).status_code == 404
        assert client.delete("/sessions/nope").status_code == 404

    def test_list(self, client):
        first = _create(client)["id"]
        second = _create(client, text="Another text", annotations=[])["id"]
        resp = client.get("/sessions")
        assert resp.status_code == 200
        assert [s["id"] for s in resp.json()] == [first, second]
        assert resp.json()[1]["text"] == "Another text"

    def test_delete(self, client):
        session_id = _create(client)["id"]
        assert client.delete("/sessions/{}".format(session_id)).status_code == 204
        assert client.get("/sessions/{}".format(session_id)).status_code == 404

    def test_too_many_sessions(self, client, monkeypatch):
        monkeypatch.setattr(session_store, "max_sessions", 1)
        _create(client)
        resp = client.post("/sessions", json={"text": "Another"})
        assert resp.status_code == 429


class TestTick:

    def test_highlight_follows_playback(self, client):
        session_id = _create(client)["id"]

        resp = client.post("/sessions/{}/tick".format(session_id), json={"time": 1.0, "playing": True})
        body = resp.json()
        assert body["changed"] is True
        assert body["active_caption"]["text"] == "The quick"
        assert '<span class="highlighted_text">The quick </span>' in body["markup"]
        assert 'id="annotated-text-0">fox jumps</span>' in body["markup"]

        again = client.post("/sessions/{}/tick".format(session_id), json={"time": 1.5}).json()
        assert again["changed"] is False

    def test_paused(self, client):
        session_id = _create(client)["id"]
        body = client.post(
            "/sessions/{}/tick".format(session_id), json={"time": 1.0, "playing": False}
        ).json()
        assert body["changed"] is False
        assert body["active_caption"] is None


class TestAnnotationsAndCaptions:

    def test_update_annotations_rerenders_and_keeps_highlight(self, client):
        session_id = _create(client, annotations=[])["id"]
        client.post("/sessions/{}/tick".format(session_id), json={"time": 1.0})

        resp = client.put(
            "/sessions/{}/annotations".format(session_id),
            json={"annotations": [{"id": 5, "start": 10, "end": 19}]},
        )
        body = resp.json()
        assert resp.status_code == 200
        assert [r["text"] for r in body["runs"] if r["kind"] == "annotated"] == ["fox jumps"]
        assert "highlighted_text" in body["markup"]

    def test_update_captions(self, client):
        session_id = _create(client, vtt=None)["id"]
        resp = client.put("/sessions/{}/captions".format(session_id), json={"vtt": VTT})
        assert resp.json()["caption_count"] == 2

    def test_update_captions_requires_content(self, client):
        session_id = _create(client)["id"]
        resp = client.put("/sessions/{}/captions".format(session_id), json={})
        assert resp.status_code == 422


class TestSelection:
    """Selections addressed by child-index paths."""

    def _select(self, client, session_id, start, end, **extra):
        body = {"start": start, "end": end, "rect": {"left": 10, "top": 100, "width": 40, "height": 18}}
        body.update(extra)
        return client.post("/sessions/{}/selection".format(session_id), json=body)

    def test_candidate_and_promote(self, client):
        session_id = _create(client, text="The quick fox jumps over", annotations=[])["id"]
        # container > span#plain-text-0 > text
        resp = self._select(
            client, session_id,
            {"path": [0, 0], "offset": 10},
            {"path": [0, 0], "offset": 13},
            scroll_y=50,
        )
        body = resp.json()
        assert body["state"] == "candidate"
        assert body["candidate"] == {"text_id": 3, "text": "fox", "start": 10, "end": 13}
        assert body["anchor_position"] == {"x": 30.0, "y": 120.0}

        promoted = client.post("/sessions/{}/promote".format(session_id))
        assert promoted.status_code == 200
        assert promoted.json()["text"] == "fox"
        assert client.get("/sessions/{}".format(session_id)).json()["selection_state"] == "committed"

    def test_toggle_off(self, client):
        session_id = _create(client, text="The quick fox jumps over", annotations=[])["id"]
        start, end = {"path": [0, 0], "offset": 10}, {"path": [0, 0], "offset": 13}
        assert self._select(client, session_id, start, end).json()["state"] == "candidate"
        assert self._select(client, session_id, start, end).json()["state"] == "idle"

    def test_selection_on_annotation_rejected(self, client):
        session_id = _create(client)["id"]
        # container > span#annotated-text-0 > text
        resp = self._select(client, session_id, {"path": [1, 0], "offset": 0}, {"path": [1, 0], "offset": 3})
        body = resp.json()
        assert body["state"] == "idle"
        assert body["candidate"] is None

    def test_empty_selection(self, client):
        session_id = _create(client)["id"]
        resp = client.post("/sessions/{}/selection".format(session_id), json={})
        assert resp.json()["state"] == "idle"

    def test_unresolvable_path(self, client):
        session_id = _create(client)["id"]
        resp = self._select(client, session_id, {"path": [9, 9], "offset": 0}, {"path": [0, 0], "offset": 2})
        assert resp.json()["state"] == "idle"

    def test_promote_without_candidate(self, client):
        session_id = _create(client)["id"]
        assert client.post("/sessions/{}/promote".format(session_id)).status_code == 409


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["sessions"] == 0
