"""
API Tests
=========

HTTP and WebSocket control surface, run against mock capture and
inference backends.
"""

import time

import pytest
from fastapi.testclient import TestClient

from sasa_cam import main
from sasa_cam.capture import MockCaptureAdapter
from sasa_cam.config import Settings


@pytest.fixture
def client(monkeypatch):
    settings = Settings.model_validate({
        "capture": {"backend": "mock", "width": 64, "height": 48},
        "inference": {"backend": "mock"},
        "orchestrator": {"tick_interval_sec": 60.0},
        "identities": {"presets": []},
    })
    monkeypatch.setattr(main, "settings", settings)
    with TestClient(main.app) as test_client:
        yield test_client


def add_identity(client, image, name="Me") -> dict:
    response = client.post("/identities", json={"name": name, "image": image})
    assert response.status_code == 201
    return response.json()


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result is not None and result is not False:
            return result
        time.sleep(0.02)
    raise AssertionError("condition not met in time")


class TestServiceEndpoints:
    """Tests for info and probe endpoints."""

    def test_root(self, client):
        data = client.get("/").json()
        assert data["service"] == "SasaCam"
        assert data["capture_backend"] == "mock"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["capture_acquired"] is False

    def test_getters_expose_live_components(self, client):
        controller = main.get_controller()
        assert controller is not None
        assert main.get_store() is controller.store
        assert main.get_orchestrator() is controller.orchestrator

    def test_metrics(self, client):
        data = client.get("/metrics").json()
        assert "swap_loop" in data
        assert data["swap_loop"]["requests"] == 0
        assert data["identities"]["identities"] == 0
        assert data["inference"]["backend"] == "mock"


class TestIdentityEndpoints:
    """Tests for the identity library."""

    def test_add_and_refine(self, client, jpeg_data_url):
        identity = add_identity(client, jpeg_data_url)
        assert identity["embedding_status"] == "processing"

        def refined():
            library = client.get("/identities").json()
            statuses = [item["embedding_status"] for item in library["identities"]]
            return statuses == ["ready"]

        wait_for(refined)

    def test_rejects_local_paths(self, client):
        response = client.post("/identities", json={"image": "/etc/passwd"})
        assert response.status_code == 422

    def test_select_and_deselect(self, client, jpeg_data_url):
        identity = add_identity(client, jpeg_data_url)

        selected = client.post(f"/identities/{identity['id']}/select").json()
        assert selected["active_id"] == identity["id"]

        cleared = client.post("/identities/deselect").json()
        assert cleared["active_id"] is None

    def test_select_unknown_is_404(self, client):
        assert client.post("/identities/missing/select").status_code == 404

    def test_delete(self, client, jpeg_data_url):
        identity = add_identity(client, jpeg_data_url)
        response = client.delete(f"/identities/{identity['id']}")
        assert response.status_code == 200
        assert response.json()["identities"] == []
        assert client.delete(f"/identities/{identity['id']}").status_code == 404


class TestSessionEndpoints:
    """Tests for power, persona and frame endpoints."""

    def test_power_toggle(self, client):
        on = client.post("/session/power").json()
        assert on["status"] == "ACTIVE"
        assert client.get("/ready").json()["capture_acquired"] is True

        off = client.post("/session/power").json()
        assert off["status"] == "INACTIVE"

    def test_power_failure_is_503(self, monkeypatch):
        settings = Settings.model_validate({
            "capture": {"backend": "mock"},
            "inference": {"backend": "mock"},
            "identities": {"presets": []},
        })
        monkeypatch.setattr(main, "settings", settings)
        monkeypatch.setattr(main, "create_capture_adapter", lambda: MockCaptureAdapter(fail=True))

        with TestClient(main.app) as test_client:
            response = test_client.post("/session/power")
            assert response.status_code == 503
            assert response.json()["session"]["status"] == "INACTIVE"

    def test_persona_noop_without_identity(self, client):
        client.post("/session/power")
        data = client.post("/session/persona").json()
        assert data["status"] == "ACTIVE"
        assert data["persona_toggle_enabled"] is False

    def test_frame_empty_before_swap(self, client):
        assert client.get("/session/frame").status_code == 204

    def test_persona_produces_frames(self, client, jpeg_data_url):
        identity = add_identity(client, jpeg_data_url)
        client.post(f"/identities/{identity['id']}/select")
        client.post("/session/power")

        data = client.post("/session/persona").json()
        assert data["status"] == "SWAPPING"

        def latest_frame():
            response = client.get("/session/frame")
            return response if response.status_code == 200 else None

        response = wait_for(latest_frame)
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

        session = client.get("/session").json()
        assert session["phase"] == "SYNCED"
        assert session["anchor_available"] is True

        off = client.post("/session/persona").json()
        assert off["status"] == "ACTIVE"
        assert client.get("/session/frame").status_code == 204

    def test_undecodable_frame_is_502(self, client):
        main.get_controller().context.anchor = "data:image/png;base64,@@not-base64@@"
        response = client.get("/session/frame")
        assert response.status_code == 502
        assert "error" in response.json()


class TestWebSocket:
    """Tests for the session stream."""

    def test_stream_sends_snapshots(self, client, jpeg_data_url):
        add_identity(client, jpeg_data_url)
        with client.websocket_connect("/ws/session") as websocket:
            data = websocket.receive_json()

        assert data["session"]["status"] == "INACTIVE"
        assert len(data["library"]["identities"]) == 1
        assert "image_resource" not in data["library"]["identities"][0]
