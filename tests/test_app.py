"""
Service Tests
=============

Tests for the FastAPI endpoints and the /ws/encode session protocol.
"""

import base64

import pytest
from fastapi.testclient import TestClient

from samples import RED, solid_rgba
from gifcodec.main import ResultStore, app


PIXELS = base64.b64encode(solid_rgba(2, 2, RED)).decode("ascii")


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def _init(frame_count: int) -> dict:
    return {
        "type": "init",
        "width": 2,
        "height": 2,
        "frame_count": frame_count,
        "frame_delay_ms": 100,
    }


class TestHttp:
    """Tests for the HTTP endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "gifcodec"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_unknown_result(self, client):
        assert client.get("/gifs/does-not-exist").status_code == 404

    def test_metrics(self, client):
        payload = client.get("/metrics").json()

        assert "sessions_started" in payload
        assert "stored_results" in payload


class TestEncodeSocket:
    """Tests for the WebSocket encoding session."""

    def test_encode_and_download(self, client):
        with client.websocket_connect("/ws/encode") as ws:
            ws.send_json(_init(2))
            for i in range(2):
                ws.send_json({"type": "frame", "frame_index": i, "pixels": PIXELS})
            ws.send_json({"type": "finish"})

            messages = [ws.receive_json() for _ in range(3)]

        assert [m["type"] for m in messages] == ["progress", "progress", "complete"]
        assert [m["percent"] for m in messages[:2]] == [50, 100]

        complete = messages[-1]
        assert complete["url"].startswith("/gifs/")
        assert "data" not in complete

        response = client.get(complete["url"])
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert response.content.startswith(b"GIF89a")
        assert len(response.content) == complete["size"]

    def test_out_of_order_frame(self, client):
        with client.websocket_connect("/ws/encode") as ws:
            ws.send_json(_init(3))
            ws.send_json({"type": "frame", "frame_index": 1, "pixels": PIXELS})

            message = ws.receive_json()

        assert message["type"] == "error"
        assert message["frame_index"] == 1

    def test_invalid_request(self, client):
        with client.websocket_connect("/ws/encode") as ws:
            ws.send_text('{"type": "resize"}')

            message = ws.receive_json()

        assert message["type"] == "error"
        assert message["message"].startswith("Invalid request")


class TestResultStore:
    """Tests for the bounded result store."""

    def test_evicts_oldest(self):
        store = ResultStore(max_results=2)
        first = store.put(b"1")
        second = store.put(b"2")
        third = store.put(b"3")

        assert store.get(first) is None
        assert store.get(second) == b"2"
        assert store.get(third) == b"3"
        assert len(store) == 2
        assert store.evicted_count == 1

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            ResultStore(max_results=0)
