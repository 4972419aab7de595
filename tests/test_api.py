"""Tests for the FastAPI app using TestClient with overridden dependencies."""

import base64
import io
import json
import time

import cv2
import numpy as np
import pandas as pd
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from shoulder_rom.api.config_endpoints import get_config_manager
from shoulder_rom.api.main import app, get_detector_factory, get_session_manager
from shoulder_rom.config.config_manager import ConfigManager
from shoulder_rom.core.session_manager import SessionManager


class FakeDetector:

    def __init__(self, landmarks):
        self.landmarks = landmarks
        self.closed = False

    def find_pose(self, frame):
        return self.landmarks

    def close(self):
        self.closed = True


@pytest.fixture
def config_manager(tmp_path):
    manager = ConfigManager(str(tmp_path))
    # Admit every frame in streaming tests
    manager.update_section("capture", {"target_fps": 100000})
    return manager


@pytest.fixture
def session_manager():
    return SessionManager()


@pytest.fixture
def detector(frontal_frame):
    return FakeDetector([[p.x, p.y, p.z] for p in frontal_frame])


@pytest.fixture
def client(config_manager, session_manager, detector):
    app.dependency_overrides[get_config_manager] = lambda: config_manager
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.dependency_overrides[get_detector_factory] = lambda: (lambda: detector)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def landmarks_payload(frame):
    return [[p.x, p.y, p.z] for p in frame]


def create_session(client, **body):
    response = client.post("/api/sessions", json=body)
    assert response.status_code == 200
    return response.json()["session_id"]


class TestSessions:

    def test_health_and_modes(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}
        modes = client.get("/api/modes").json()["modes"]
        assert modes["EXTENSION"]["max_angle"] == 50.0

    def test_create_and_get(self, client):
        response = client.post("/api/sessions", json={"side": "RIGHT", "mode": "FLEXION", "alpha": 0.5})
        body = response.json()
        assert body["snapshot"]["state"] == "empty"
        assert body["snapshot"]["current_angle"] is None

        data = client.get(f"/api/sessions/{body['session_id']}").json()
        assert data["side"] == "RIGHT"
        assert data["mode"] == "FLEXION"
        assert data["alpha"] == 0.5

    def test_invalid_enum_and_alpha(self, client):
        assert client.post("/api/sessions", json={"side": "UP"}).status_code == 422
        assert client.post("/api/sessions", json={"alpha": 0}).status_code == 422
        assert client.post("/api/sessions", json={"alpha": 1.5}).status_code == 422

    def test_process_frame(self, client, frontal_frame):
        session_id = create_session(client)

        response = client.post(f"/api/sessions/{session_id}/frames",
                               json={"landmarks": landmarks_payload(frontal_frame), "timestamp": 1000})

        assert response.status_code == 200
        snapshot = response.json()
        assert snapshot["frame_status"] == "measured"
        assert snapshot["quality_ok"] is True
        assert snapshot["current_angle"] == pytest.approx(9.4623, abs=1e-3)
        assert snapshot["sample_count"] == 1

    def test_empty_frame(self, client):
        session_id = create_session(client)
        snapshot = client.post(f"/api/sessions/{session_id}/frames", json={"landmarks": []}).json()
        assert snapshot["frame_status"] == "unmeasurable"
        assert snapshot["current_angle"] is None

    def test_malformed_frame(self, client, frontal_frame):
        session_id = create_session(client)
        response = client.post(f"/api/sessions/{session_id}/frames",
                               json={"landmarks": landmarks_payload(frontal_frame)[:10]})
        assert response.status_code == 422

    def test_non_finite_landmarks_rejected(self, client, frontal_frame):
        session_id = create_session(client, mode="ABDUCTION")
        client.post(f"/api/sessions/{session_id}/frames", json={"landmarks": landmarks_payload(frontal_frame)})
        peak = client.get(f"/api/sessions/{session_id}").json()["peak_angle"]

        landmarks = landmarks_payload(frontal_frame)
        landmarks[13][2] = float("nan")
        response = client.post(f"/api/sessions/{session_id}/frames",
                               content=json.dumps({"landmarks": landmarks}),
                               headers={"Content-Type": "application/json"})

        assert response.status_code == 422
        data = client.get(f"/api/sessions/{session_id}").json()
        assert data["peak_angle"] == peak
        assert data["sample_count"] == 1

    def test_new_sessions_follow_config(self, client, make_frame):
        frame = landmarks_payload(make_frame(right_shoulder=(0.6, 0.5, 0.3)))
        before = create_session(client)
        assert client.put("/api/config/measurement",
                          json={"abduction_max_z_diff": 0.5, "alpha": 0.7}).status_code == 200
        after = create_session(client)

        assert client.post(f"/api/sessions/{before}/frames", json={"landmarks": frame}).json()["frame_status"] == "unmeasurable"
        assert client.post(f"/api/sessions/{after}/frames", json={"landmarks": frame}).json()["frame_status"] == "measured"
        data = client.get(f"/api/sessions/{after}").json()
        assert data["thresholds"]["abduction_max_z_diff"] == 0.5
        assert data["alpha"] == 0.7

    def test_selection(self, client, frontal_frame):
        session_id = create_session(client, side="LEFT", mode="ABDUCTION")
        client.post(f"/api/sessions/{session_id}/frames", json={"landmarks": landmarks_payload(frontal_frame)})

        same = client.put(f"/api/sessions/{session_id}/selection", json={"mode": "ABDUCTION"}).json()
        assert same["reset"] is False
        assert same["snapshot"]["sample_count"] == 1

        changed = client.put(f"/api/sessions/{session_id}/selection", json={"side": "RIGHT"}).json()
        assert changed["reset"] is True
        assert changed["snapshot"]["sample_count"] == 0
        assert changed["snapshot"]["side"] == "RIGHT"

    def test_reset(self, client, frontal_frame):
        session_id = create_session(client)
        client.post(f"/api/sessions/{session_id}/frames", json={"landmarks": landmarks_payload(frontal_frame)})

        snapshot = client.post(f"/api/sessions/{session_id}/reset").json()

        assert snapshot["peak_angle"] is None
        assert snapshot["state"] == "empty"

    def test_samples_and_export(self, client, make_frame):
        session_id = create_session(client, alpha=1.0)
        assert client.get(f"/api/sessions/{session_id}/export.csv").status_code == 404

        for i, elbow in enumerate([(0.5, 0.7, 0.0), (0.3, 0.5, 0.0)]):
            client.post(f"/api/sessions/{session_id}/frames",
                        json={"landmarks": landmarks_payload(make_frame(left_elbow=elbow)), "timestamp": 100 * i})

        samples = client.get(f"/api/sessions/{session_id}/samples").json()
        assert len(samples["samples"]) == 2
        assert samples["summary"]["count"] == 2

        response = client.get(f"/api/sessions/{session_id}/export.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "rom_ABD_L_" in response.headers["content-disposition"]
        df = pd.read_csv(io.StringIO(response.text))
        assert list(df.columns) == ["timestamp", "mode", "side", "angle"]
        assert df["timestamp"].tolist() == [0, 100]

    def test_end_session(self, client):
        session_id = create_session(client)
        assert client.delete(f"/api/sessions/{session_id}").json()["state"] == "empty"
        assert client.get(f"/api/sessions/{session_id}").status_code == 404

    def test_unknown_session(self, client):
        assert client.get("/api/sessions/nope").status_code == 404
        assert client.post("/api/sessions/nope/frames", json={"landmarks": []}).status_code == 404
        assert client.post("/api/sessions/nope/reset").status_code == 404


class TestConfigEndpoints:

    def test_get_config(self, client):
        config = client.get("/api/config/").json()
        assert config["measurement"]["alpha"] == 0.2

    def test_update_section(self, client, config_manager):
        response = client.put("/api/config/measurement", json={"alpha": 0.4})
        assert response.status_code == 200
        assert response.json()["config"]["alpha"] == 0.4
        assert config_manager.get_section("measurement")["alpha"] == 0.4

    def test_empty_update(self, client):
        assert client.put("/api/config/pose", json={}).status_code == 400

    def test_invalid_alpha(self, client):
        assert client.put("/api/config/measurement", json={"alpha": 3.0}).status_code == 400

    def test_reset(self, client):
        client.put("/api/config/visualization", json={"theme": "light"})
        assert client.post("/api/config/reset").status_code == 200
        assert client.get("/api/config/visualization").json()["theme"] == "dark"


class TestMeasureWebSocket:

    @staticmethod
    def encode_frame():
        frame = np.zeros((120, 160, 3), dtype=np.uint8)
        _, buffer = cv2.imencode(".jpg", frame)
        return f"data:image/jpeg;base64,{base64.b64encode(buffer).decode('utf-8')}"

    def test_stream(self, client, session_manager, detector):
        with client.websocket_connect("/api/measure/ABDUCTION/LEFT") as websocket:
            websocket.send_text(self.encode_frame())
            message = websocket.receive_json()

            assert message["snapshot"]["frame_status"] == "measured"
            assert message["snapshot"]["current_angle"] == pytest.approx(9.4623, abs=1e-3)
            assert message["image"].startswith("data:image/jpeg;base64,")

            websocket.send_text('{"command": "reset"}')
            assert websocket.receive_json()["snapshot"]["sample_count"] == 0

            websocket.send_text('{"command": "select", "side": "RIGHT"}')
            assert websocket.receive_json()["snapshot"]["side"] == "RIGHT"

            websocket.send_text('{"command": "jump"}')
            assert "error" in websocket.receive_json()

            websocket.send_text("data:image/jpeg;base64,AAAA")
            assert websocket.receive_json()["error"] == "Could not decode image"

        assert detector.closed
        assert session_manager.active_sessions == {}

    def test_invalid_mode(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/measure/ROTATION/LEFT") as websocket:
                websocket.receive_text()

    def test_slow_frame_times_out(self, config_manager, session_manager, frontal_frame):
        class SlowDetector(FakeDetector):
            def find_pose(self, frame):
                time.sleep(0.3)
                return self.landmarks

        config_manager.update_section("capture", {"frame_timeout": 0.05})
        app.dependency_overrides[get_config_manager] = lambda: config_manager
        app.dependency_overrides[get_session_manager] = lambda: session_manager
        app.dependency_overrides[get_detector_factory] = lambda: (lambda: SlowDetector(landmarks_payload(frontal_frame)))
        try:
            with TestClient(app) as client:
                with client.websocket_connect("/api/measure/ABDUCTION/LEFT") as websocket:
                    websocket.send_text(self.encode_frame())
                    assert websocket.receive_json() == {"error": "Processing timeout"}

                    # The health route still answers while detection runs in a worker thread
                    assert client.get("/api/health").json() == {"status": "ok"}
                    time.sleep(0.4)
        finally:
            app.dependency_overrides.clear()
