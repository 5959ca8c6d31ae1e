"""
API Tests
=========

Tests for the FastAPI service surface.
"""

import base64

import numpy as np
import pytest
from fastapi.testclient import TestClient

from conftest import FakeClock
from counter_scan import main
from counter_scan.decoding import CodeDecoderAdapter
from counter_scan.errors import EngineFailureError
from counter_scan.ocr import MockOcrEngine
from counter_scan.pipeline import ScanOrchestrator
from counter_scan.stream import encode_frame_jpeg_b64
from counter_scan.stream.frame import Frame


READINGS = {
    "primary_display": [("963373", 82.0)],
    "full_center": [("963373", 74.0)],
}


class FailingInitEngine(MockOcrEngine):
    async def initialize(self):
        raise EngineFailureError("tesseract binary not found")


def build_client(monkeypatch, backend, engine):
    orchestrator = ScanOrchestrator(
        engine=engine,
        decoder=CodeDecoderAdapter(backend=backend),
        clock=FakeClock(),
    )
    monkeypatch.setattr(main, "create_orchestrator", lambda config: orchestrator)
    return TestClient(main.app)


def rgba_message(width=64, height=48, **extra):
    pixels = np.full((height, width, 4), 255, dtype=np.uint8).tobytes()
    return {
        "frame_id": 7,
        "width": width,
        "height": height,
        "rgba": base64.b64encode(pixels).decode("ascii"),
        **extra,
    }


class TestServiceEndpoints:
    """Tests for info, health, readiness and metrics."""

    def test_info_and_health(self, monkeypatch, empty_backend):
        with build_client(monkeypatch, empty_backend, MockOcrEngine()) as client:
            info = client.get("/")
            health = client.get("/health")

        assert info.status_code == 200
        assert info.json()["service"] == "CounterScan"
        assert health.json()["status"] == "healthy"

    def test_ready_when_engine_initialized(self, monkeypatch, empty_backend):
        with build_client(monkeypatch, empty_backend, MockOcrEngine()) as client:
            response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["engine_ready"] is True

    def test_not_ready_when_engine_failed(self, monkeypatch, empty_backend):
        with build_client(monkeypatch, empty_backend, FailingInitEngine()) as client:
            response = client.get("/ready")

        assert response.status_code == 503

    def test_metrics(self, monkeypatch, empty_backend):
        with build_client(monkeypatch, empty_backend, MockOcrEngine()) as client:
            body = client.get("/metrics").json()

        assert body["cycles"] == 0
        assert body["engine"]["backend"] == "mock"
        assert body["buffer"]["capacity"] == 3


class TestFrameEndpoint:
    """Tests for POST /frames and GET /result."""

    def test_no_result_yet(self, monkeypatch, empty_backend):
        with build_client(monkeypatch, empty_backend, MockOcrEngine()) as client:
            response = client.get("/result")

        assert response.status_code == 503

    def test_rgba_frame_completes_cycle(self, monkeypatch, code_backend):
        engine = MockOcrEngine(readings=READINGS)
        with build_client(monkeypatch, code_backend, engine) as client:
            outcome = client.post("/frames", json=rgba_message(target="dover-2"))
            last = client.get("/result")

        assert outcome.status_code == 200
        body = outcome.json()
        assert body["status"] == "completed"
        assert body["reason"] == "COUNTER_READ"
        assert body["result"]["counter_value"] == 963373
        assert body["result"]["counter_source"] == "ocr"
        assert body["result"]["code_reading"]["parsed"]["machine_id"] == "DOVER_CH2_HA"
        assert last.status_code == 200
        assert last.json()["scan_id"] == body["result"]["scan_id"]

    def test_second_frame_hits_cooldown(self, monkeypatch, code_backend):
        with build_client(monkeypatch, code_backend, MockOcrEngine(readings=READINGS)) as client:
            client.post("/frames", json=rgba_message())
            second = client.post("/frames", json=rgba_message())

        assert second.json() == {"status": "no_result", "reason": "COOLDOWN_ACTIVE", "result": None}

    def test_encoded_image_frame(self, monkeypatch, code_backend):
        rgba = np.full((48, 64, 4), 255, dtype=np.uint8)
        image = encode_frame_jpeg_b64(Frame.from_array(rgba, timestamp=1.0))

        with build_client(monkeypatch, code_backend, MockOcrEngine()) as client:
            response = client.post("/frames", json={"frame_id": 1, "image": image})

        assert response.status_code == 200
        assert response.json()["reason"] == "COUNTER_READ"
        assert response.json()["result"]["counter_source"] == "code"

    def test_corrupt_payload(self, monkeypatch, empty_backend):
        with build_client(monkeypatch, empty_backend, MockOcrEngine()) as client:
            response = client.post(
                "/frames",
                json={"frame_id": 1, "width": 4, "height": 4, "rgba": "AAAA"},
            )

        assert response.status_code == 422
        assert "Invalid frame" in response.json()["error"]

    @pytest.mark.parametrize(
        "message",
        [
            {"frame_id": 1},
            {"frame_id": 1, "rgba": "AAAA"},
            {"frame_id": 1, "rgba": "AAAA", "width": 1, "height": 1, "image": "AAAA"},
        ],
    )
    def test_invalid_message_schema(self, monkeypatch, empty_backend, message):
        with build_client(monkeypatch, empty_backend, MockOcrEngine()) as client:
            response = client.post("/frames", json=message)

        assert response.status_code == 422
