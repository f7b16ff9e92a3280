"""
Tests for the ProdAssist API

Tests for prodassist/api: arc routes, auth, rate limiting and SSE helpers.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from prodassist.api.main import create_app
from prodassist.api.routers import arcs, sse
from prodassist.store.base import new_arc_document

AUTH = {"Authorization": "Bearer user-1"}
OPEN_BODY = {"series_id": "series-1", "arc_index": 0}


@pytest.fixture
def client(settings, memory_store, generation_client):
    app = create_app(settings, store=memory_store, client=generation_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def opened(client):
    """Client with arc-1 opened and loaded."""
    response = client.post("/api/arcs/arc-1/open", json=OPEN_BODY, headers=AUTH)
    assert response.status_code == 202
    return client


@pytest.fixture
def located(client, memory_store):
    """Client with arc-1 opened on an arc that already has one location group."""
    document = new_arc_document("arc-1", "user-1", "series-1", 0, "The Move", [1, 2])
    document["locations"] = {
        "locationGroups": [
            {
                "id": "locgroup_pier",
                "parentLocationName": "Pier",
                "shootingLocationSuggestions": [
                    {"id": "a", "costBreakdown": {"dayRate": 100, "permitCost": 20, "depositAmount": 10}},
                    {"id": "b", "costBreakdown": {"dayRate": 50, "permitCost": 20, "depositAmount": 10}},
                ],
                "selectedSuggestionId": None,
                "status": "scouted",
            }
        ]
    }
    memory_store.put_arc(document)
    client.post("/api/arcs/arc-1/open", json=OPEN_BODY, headers=AUTH)
    return client


class TestHealth:
    """Tests for service endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "store": "memory"}

    def test_root(self, client):
        assert client.get("/").json()["message"] == "ProdAssist API"


class TestAuth:
    """Tests for the bearer token dependency."""

    def test_missing_header(self, client):
        assert client.get("/api/arcs/arc-1/state").status_code == 422

    def test_bad_scheme(self, client):
        response = client.get("/api/arcs/arc-1/state", headers={"Authorization": "Token user-1"})

        assert response.status_code == 401


class TestArcLifecycle:
    """Tests for opening, inspecting and closing arcs."""

    def test_open_runs_load_sequence(self, opened):
        state = opened.get("/api/arcs/arc-1/state", headers=AUTH).json()

        assert state["phase"] == "ready"
        assert state["episodeNumbers"] == [1, 2]
        assert state["sections"]["casting"] is True
        assert state["sections"]["schedule"] is False
        assert len(state["arc"]["casting"]["cast"]) == 2

    def test_unknown_arc(self, client):
        assert client.get("/api/arcs/arc-9/state", headers=AUTH).status_code == 404

    def test_failed_load_is_reported(self, client):
        client.post("/api/arcs/arc-1/open", json={"series_id": "missing", "arc_index": 0}, headers=AUTH)

        state = client.get("/api/arcs/arc-1/state", headers=AUTH).json()
        response = client.post("/api/arcs/arc-1/refresh", headers=AUTH)

        assert state["phase"] == "error"
        assert "story bible not found" in state["error"]
        assert response.status_code == 409

    def test_invalid_open_body(self, client):
        response = client.post("/api/arcs/arc-1/open", json={"series_id": "series-1", "arc_index": -1}, headers=AUTH)

        assert response.status_code == 422

    def test_refresh(self, opened):
        response = opened.post("/api/arcs/arc-1/refresh", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["updated_sections"] == ["casting", "equipment", "permits"]

    def test_close(self, opened):
        assert opened.delete("/api/arcs/arc-1", headers=AUTH).json() == {"arc_id": "arc-1", "closed": True}
        assert opened.delete("/api/arcs/arc-1", headers=AUTH).status_code == 404


class TestGeneration:
    """Tests for regeneration, questionnaire and cancel routes."""

    def test_regenerate_sections(self, opened, memory_store):
        response = opened.post("/api/arcs/arc-1/regenerate", json={"sections": ["budget"]}, headers=AUTH)

        assert response.status_code == 202
        assert response.json()["message"] == "budget"
        state = opened.get("/api/arcs/arc-1/state", headers=AUTH).json()
        assert state["lastRegeneration"]["success"] is True
        assert state["arc"]["budget"] == {"total": 1000}

    def test_unknown_section(self, opened):
        response = opened.post("/api/arcs/arc-1/regenerate", json={"sections": ["catering"]}, headers=AUTH)

        assert response.status_code == 422

    def test_retry_without_failures(self, opened):
        response = opened.post("/api/arcs/arc-1/regenerate", json={"only_failed": True}, headers=AUTH)

        assert response.status_code == 400

    def test_questionnaire(self, opened):
        response = opened.post("/api/arcs/arc-1/questionnaire", json={"questionnaire_type": "props"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["questionnaire"] == {"questions": [{"id": "q1"}]}

    def test_cancel_when_idle(self, opened):
        assert opened.post("/api/arcs/arc-1/cancel", headers=AUTH).json()["cancelled"] is False

    def test_rate_limit(self, settings, memory_store, generation_client):
        """Test generation routes answer 429 once the limit is used up."""
        settings.rate_limit_enabled = True
        app = create_app(settings, store=memory_store, client=generation_client)
        arcs.limiter.reset()
        try:
            with TestClient(app) as test_client:
                codes = [
                    test_client.post("/api/arcs/arc-9/questionnaire", json={}, headers=AUTH).status_code
                    for _ in range(6)
                ]
        finally:
            arcs.limiter.enabled = False
            arcs.limiter.reset()

        assert codes == [404] * 5 + [429]


class TestLocations:
    """Tests for location routes."""

    def test_cost_rollup(self, located):
        rollup = located.get("/api/arcs/arc-1/cost-rollup", headers=AUTH).json()

        assert rollup["arcTotal"] == 80
        assert rollup["perLocation"][0]["selectedSuggestionId"] == "b"

    def test_select(self, located):
        response = located.post("/api/arcs/arc-1/locations/locgroup_pier/select", json={"suggestion_id": "a"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["costRollup"]["arcTotal"] == 130

    def test_select_errors(self, located):
        bad_suggestion = located.post(
            "/api/arcs/arc-1/locations/locgroup_pier/select", json={"suggestion_id": "z"}, headers=AUTH
        )
        bad_group = located.post(
            "/api/arcs/arc-1/locations/locgroup_none/select", json={"suggestion_id": "a"}, headers=AUTH
        )

        assert bad_suggestion.status_code == 400
        assert bad_group.status_code == 404

    def test_patch_costs(self, located):
        response = located.patch(
            "/api/arcs/arc-1/locations/locgroup_pier",
            json={"status": "quoted", "costs": {"day_rate": 10}, "suggestion_id": "b"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json()["costRollup"]["arcTotal"] == 40

    def test_patch_invalid_status(self, located):
        response = located.patch("/api/arcs/arc-1/locations/locgroup_pier", json={"status": "lost"}, headers=AUTH)

        assert response.status_code == 400


class TestSSE:
    """Tests for the SSE helpers."""

    def test_format_event(self):
        event = sse.SSEEvent(event="progress", data={"percent": 50})

        assert sse.format_event(event) == 'event: progress\ndata: {"percent": 50}\n\n'

    def test_stream_status(self, client):
        assert client.get("/api/arcs/stream-status/arc-1").json() == {"arc_id": "arc-1", "listeners": 0}

    def test_reopen_keeps_stream_open(self, client):
        """Test reopening an arc does not end streams already attached to it."""
        queue = sse.register_queue("arc-1")
        try:
            client.post("/api/arcs/arc-1/open", json=OPEN_BODY, headers=AUTH)
            client.post("/api/arcs/arc-1/open", json=OPEN_BODY, headers=AUTH)
            seen = []
            while not queue.empty():
                seen.append(queue.get_nowait().event)
        finally:
            sse.unregister_queue("arc-1", queue)

        assert "session_closed" not in seen
        assert seen.count("session_ready") == 2

    @pytest.mark.asyncio
    async def test_generator_stops_on_session_closed(self):
        request = MagicMock()
        request.is_disconnected = MagicMock(side_effect=lambda: asyncio.sleep(0, result=False))
        queue = sse.register_queue("arc-sse")

        sse.publish_event("arc-sse", "progress", {"percent": 10})
        sse.publish_event("arc-sse", "session_closed", {})
        chunks = [chunk async for chunk in sse.event_generator("arc-sse", request, queue)]

        assert [chunk.split("\n")[0] for chunk in chunks] == ["event: progress", "event: session_closed"]
        assert json.loads(chunks[0].split("data: ")[1]) == {"percent": 10}
        assert "arc-sse" not in sse._event_queues
