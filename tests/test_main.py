"""End-to-end tests for the HTTP boundary."""
import pytest
from fastapi.testclient import TestClient

import spot_locator.main as main_mod
from spot_locator.config import Settings


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(main_mod, "settings", Settings(spots_cache_path=str(tmp_path / "missing.geojson")))
    with TestClient(main_mod.app) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "tracking": "idle", "spots_loaded": 4}


def test_tracking_flow(client):
    r = client.post("/tracking/start")
    assert r.json()["status"] == "awaiting_fix"
    assert r.json()["results"] == []

    r = client.post("/position", json={"latitude": 17.4947, "longitude": 78.3996, "accuracy_m": 15})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "active"
    assert body["position"]["point"] == {"latitude": 17.4947, "longitude": 78.3996}
    assert [res["spot"]["id"] for res in body["results"]] == ["1", "4", "2", "3"]
    assert body["results"][0]["distance_label"] == "0 m"

    r = client.post("/tracking/stop")
    assert r.json()["status"] == "idle"
    assert r.json()["position"] is None


def test_position_error_is_published(client):
    client.post("/tracking/start")
    r = client.post("/position/error", json={"code": "permission_denied"})
    assert r.status_code == 200
    assert r.json()["error"]["code"] == "permission_denied"
    assert r.json()["status"] == "awaiting_fix"


def test_unknown_position_error_code(client):
    r = client.post("/position/error", json={"code": "bogus"})
    assert r.status_code == 422


def test_invalid_fix_is_unavailable(client):
    client.post("/tracking/start")
    r = client.post("/position", json={"latitude": 120.0, "longitude": 0.0})
    assert r.json()["error"]["code"] == "position_unavailable"


def test_recenter_requires_tracking(client):
    assert client.post("/tracking/recenter").status_code == 409
    client.post("/tracking/start")
    assert client.post("/tracking/recenter").status_code == 200


def test_availability_updates(client):
    client.post("/tracking/start")
    client.post("/position", json={"latitude": 17.4947, "longitude": 78.3996})

    r = client.put("/spots/4/availability", json={"available": 0})
    assert r.status_code == 200
    assert r.json()["available"] == 0

    state = client.get("/state").json()
    metro = next(res for res in state["results"] if res["spot"]["id"] == "4")
    assert metro["spot"]["available"] == 0

    assert client.put("/spots/nope/availability", json={"available": 1}).status_code == 404
    assert client.put("/spots/1/availability", json={"available": 999}).status_code == 422
    spots = {s["id"]: s["available"] for s in client.get("/spots").json()}
    assert spots["1"] == 25


def test_nearby(client):
    r = client.post("/spots/nearby", json={"lat": 17.4947, "lon": 78.3996, "k": 2})
    assert r.status_code == 200
    assert [res["spot"]["id"] for res in r.json()] == ["1", "4"]


def test_nearby_rejects_bad_coordinates(client):
    assert client.post("/spots/nearby", json={"lat": 100.0, "lon": 0.0}).status_code == 422


def test_rejected_cache_file_falls_back_to_sample(tmp_path, monkeypatch):
    path = tmp_path / "lots.json"
    # no capacity: readable, but the registry rejects it
    path.write_text('[{"id": "x", "lat": 44.23, "lon": -76.48}]', encoding="utf-8")
    monkeypatch.setattr(main_mod, "settings", Settings(spots_cache_path=str(path)))
    with TestClient(main_mod.app) as c:
        assert c.get("/health").json()["spots_loaded"] == 4
        assert c.get("/state").json()["error"] is None
        assert {s["id"] for s in c.get("/spots").json()} == {"1", "2", "3", "4"}
