"""
API integration tests.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relay.config import settings
from relay.main import app
from relay.services.image_store import IMAGE_PREFIX

API_HEADERS = {"X-API-Key": settings.api_key}


def frame(mac="AA:BB", image="IMG1"):
    return {"X-API-KEY": "", "X-MAC-ADDRESS": mac, "image": image}


@pytest.fixture
def client():
    """Create test client with the app lifespan running."""
    with TestClient(app) as client:
        yield client


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "Parkingo Relay"
    assert data["status"] == "running"


def test_health_endpoint(client):
    """Test health check endpoint."""
    response = client.get("/api/v1/health/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


def test_relay_status(client):
    """Relay status reports counts and a disabled broker."""
    client.post("/api/v1/devices/frames", json=frame(), headers=API_HEADERS)

    response = client.get("/api/v1/health/relay")
    assert response.status_code == 200
    data = response.json()
    assert data["devices"] == 1
    assert data["mqtt_connected"] is False
    assert data["ingest"]["accepted"] == 1


def test_devices_empty(client):
    """No devices before the first frame."""
    response = client.get("/api/v1/devices/")
    assert response.status_code == 200
    assert response.json() == {"status": "success", "count": 0, "devices": []}


def test_ingest_and_query(client):
    """Frames posted over HTTP are queryable."""
    response = client.post("/api/v1/devices/frames", json=frame(), headers=API_HEADERS)
    assert response.status_code == 200
    assert response.json()["duplicate"] is False

    response = client.post("/api/v1/devices/frames", json=frame(), headers=API_HEADERS)
    assert response.json()["duplicate"] is True

    response = client.get("/api/v1/devices/AA:BB")
    assert response.status_code == 200
    assert response.json()["image_data"] == IMAGE_PREFIX + "IMG1"

    response = client.get("/api/v1/devices/")
    assert response.json()["count"] == 1


def test_unknown_device(client):
    """Unknown devices are 404."""
    response = client.get("/api/v1/devices/EE:FF")
    assert response.status_code == 404


def test_ingest_without_api_key(client):
    """Test upload without API key."""
    response = client.post("/api/v1/devices/frames", json=frame())
    assert response.status_code == 401


def test_ingest_malformed(client):
    """Malformed frames are rejected with 422."""
    response = client.post(
        "/api/v1/devices/frames",
        content=b"not json",
        headers=API_HEADERS
    )
    assert response.status_code == 422

    response = client.post("/api/v1/devices/frames", json=frame(mac=""), headers=API_HEADERS)
    assert response.status_code == 422


def test_ingest_wrong_frame_secret(client, monkeypatch):
    """A frame secret mismatch is 401."""
    monkeypatch.setattr(client.app.state.ingestion, "api_key", "frame-secret")

    response = client.post("/api/v1/devices/frames", json=frame(), headers=API_HEADERS)
    assert response.status_code == 401


def test_viewer_token_required(client, monkeypatch):
    """With a viewer token configured, snapshot queries need it."""
    monkeypatch.setattr(settings, "viewer_token", "viewer-secret")

    assert client.get("/api/v1/devices/").status_code == 401
    assert client.get("/api/v1/devices/?token=viewer-secret").status_code == 200
    response = client.get(
        "/api/v1/devices/",
        headers={"Authorization": "Bearer viewer-secret"}
    )
    assert response.status_code == 200


def test_device_stream(client):
    """Device stream sends status, snapshot and live frames."""
    client.post("/api/v1/devices/frames", json=frame(image="IMG1"), headers=API_HEADERS)

    with client.websocket_connect("/ws/device?esp_hmac=AA:BB") as ws:
        status = ws.receive_json()
        assert status["type"] == "connection_status"
        assert status["esp_hmac"] == "AA:BB"

        snapshot = ws.receive_json()
        assert snapshot["image_data"] == IMAGE_PREFIX + "IMG1"

        client.post("/api/v1/devices/frames", json=frame(image="IMG2"), headers=API_HEADERS)
        live = ws.receive_json()
        assert live["image_data"] == IMAGE_PREFIX + "IMG2"
        assert live["timestamp"] > snapshot["timestamp"]


def test_all_devices_stream(client):
    """All-devices stream wraps live frames in an array."""
    with client.websocket_connect("/ws/devices/all") as ws:
        status = ws.receive_json()
        assert status["mode"] == "all_devices"

        client.post("/api/v1/devices/frames", json=frame(mac="CC:DD"), headers=API_HEADERS)
        live = ws.receive_json()
        assert isinstance(live, list)
        assert len(live) == 1
        assert live[0]["esp_hmac"] == "CC:DD"


def test_device_stream_requires_device(client):
    """Device stream without esp_hmac is refused."""
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/device") as ws:
            ws.receive_json()
    assert exc_info.value.code == 1008


def test_stream_requires_viewer_token(client, monkeypatch):
    """Streams are refused without the configured viewer token."""
    monkeypatch.setattr(settings, "viewer_token", "viewer-secret")

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/devices/all") as ws:
            ws.receive_json()
    assert exc_info.value.code == 1008

    with client.websocket_connect("/ws/devices/all?token=viewer-secret") as ws:
        assert ws.receive_json()["type"] == "connection_status"


def test_ingest_runs_off_the_event_loop(client, monkeypatch):
    """HTTP ingestion stores and broadcasts from a worker thread."""
    relay = client.app.state.relay
    original_ingest = relay.ingest
    seen = {}

    def ingest(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            seen['on_loop'] = True
        except RuntimeError:
            seen['on_loop'] = False
        return original_ingest(*args, **kwargs)

    monkeypatch.setattr(relay, "ingest", ingest)

    response = client.post("/api/v1/devices/frames", json=frame(), headers=API_HEADERS)
    assert response.status_code == 200
    assert seen == {'on_loop': False}
