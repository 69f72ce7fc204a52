"""Tests for the FastAPI surface, with no API keys so nothing leaves the process."""

import pytest
from fastapi.testclient import TestClient

from wanderer import deps
from wanderer.api import app
from wanderer.config import Settings

ORIGIN = {"latitude": 10.762622, "longitude": 106.660172}
DESTINATION = {"latitude": 10.771701, "longitude": 106.698059}
WAYPOINT = {"latitude": 10.766, "longitude": 106.673}


@pytest.fixture
def client(monkeypatch):
    cfg = Settings(google_maps_keys=[], ors_keys=[], groq_keys=[], gemini_keys=[], redis_url="")
    monkeypatch.setattr(deps, "settings", cfg)
    deps.reset()
    yield TestClient(app)
    deps.reset()


class TestHealth:

    def test_ok(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["redis"] is False
        assert body["keys"]["google"] == 0


class TestRoutes:

    def test_plan_falls_back_without_keys(self, client):
        r = client.post("/routes/plan", json={"origin": ORIGIN, "destination": DESTINATION, "waypoints": [WAYPOINT]})
        assert r.status_code == 200
        body = r.json()
        assert body["source"] == "fallback"
        assert body["route"]["provider"] == "fallback"
        assert len(body["route"]["steps"]) == 2
        assert len(body["skipped"]) == 2

    def test_unknown_provider(self, client):
        r = client.post("/routes/plan", json={"origin": ORIGIN, "destination": DESTINATION, "provider": "bing"})
        assert r.status_code == 400

    def test_progress(self, client):
        route = client.post("/routes/plan", json={"origin": ORIGIN, "destination": DESTINATION}).json()["route"]
        r = client.post("/routes/progress", json={"route": route, "position": DESTINATION})
        assert r.status_code == 200
        assert r.json()["percent"] == pytest.approx(100.0)
        assert r.json()["off_route"] is False

    def test_progress_rejects_broken_route(self, client):
        route = {"coordinates": [ORIGIN], "distance_m": 0, "duration_s": 0,
                 "bbox": {"min_lon": 0, "min_lat": 0, "max_lon": 0, "max_lat": 0}}
        r = client.post("/routes/progress", json={"route": route, "position": ORIGIN})
        assert r.status_code == 422


class TestStories:

    def test_generate_fallback(self, client):
        checkpoints = [
            {"id": "cp1", "coordinate": WAYPOINT, "title": "Market"},
            {"id": "cp2", "coordinate": DESTINATION, "title": "Opera"},
        ]
        r = client.post("/stories/generate", json={"genre": "comedy", "checkpoints": checkpoints})
        assert r.status_code == 200
        body = r.json()
        assert body["fallback"] is True
        assert body["source"] == "fallback"
        assert [s["checkpoint_id"] for s in body["story"]["segments"]] == ["cp1", "cp2"]

    def test_unknown_story_provider(self, client):
        r = client.post("/stories/generate", json={"provider": "clippy"})
        assert r.status_code == 400


class TestPerRequestServices:

    def test_each_chain_gets_its_own_rotator(self, client):
        a = deps.get_routing_chain("google+ors")
        b = deps.get_routing_chain("google+ors")
        assert a is not b
        assert a.rotator is not b.rotator

    def test_each_generator_gets_its_own_rotator(self, client):
        assert deps.get_story_generator("groq").rotator is not deps.get_story_generator("groq").rotator

    def test_cache_is_shared(self, client):
        assert deps.get_cache() is deps.get_cache()


class TestProgressWithCheckpoints:

    def test_next_checkpoint_located(self, client):
        route = client.post(
            "/routes/plan", json={"origin": ORIGIN, "destination": DESTINATION, "waypoints": [WAYPOINT]}
        ).json()["route"]
        checkpoints = [
            {"id": "cp1", "coordinate": WAYPOINT, "reached": True},
            {"id": "cp2", "coordinate": DESTINATION},
        ]
        r = client.post("/routes/progress", json={"route": route, "position": ORIGIN, "checkpoints": checkpoints})
        assert r.status_code == 200
        nxt = r.json()["next_checkpoint"]
        assert nxt["checkpoint_id"] == "cp2"
        assert nxt["distance_ahead_m"] > 0

    def test_no_checkpoints_no_next(self, client):
        route = client.post("/routes/plan", json={"origin": ORIGIN, "destination": DESTINATION}).json()["route"]
        r = client.post("/routes/progress", json={"route": route, "position": ORIGIN})
        assert r.json()["next_checkpoint"] is None
