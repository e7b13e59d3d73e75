import io
import logging
import zipfile

import numpy as np
from fastapi.testclient import TestClient

from gsu_cloud import main, matrix
from gsu_cloud.config import Settings
from gsu_cloud.main import create_app
from gsu_cloud.storage import CaptureStore

HEARTBEAT = {"turbine_token": "T1", "mode": "Scanning", "current_angle": 45.0, "current_max_temp": 30.0}


def _upload(client, payload: bytes, token: str = "T1", angle: str = "12.5", filename: str = "grid.npy"):
    return client.post(
        "/ingest/upload",
        data={"turbine_token": token, "angle": angle},
        files={"dataset_file": (filename, payload, "application/octet-stream")},
    )


def test_health_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_heartbeat_returns_config_and_marks_online(client):
    resp = client.post("/ingest/heartbeat", json=HEARTBEAT)
    assert resp.status_code == 200
    assert resp.json() == client.get("/api/config").json()

    live = client.get("/api/live").json()
    assert live["is_online"] is True
    assert live["mode"] == "Scanning"
    assert live["turbine_token"] == "T1"
    assert live["current_angle"] == 45.0


def test_live_goes_stale_after_five_seconds(client, clock):
    client.post("/ingest/heartbeat", json=HEARTBEAT)
    clock.advance(6)

    live = client.get("/api/live").json()
    assert live["is_online"] is False
    assert live["mode"] == "Lost Connection"

    client.post("/ingest/heartbeat", json={**HEARTBEAT, "mode": "Returning"})
    live = client.get("/api/live").json()
    assert live["is_online"] is True
    assert live["mode"] == "Returning"


def test_config_round_trip_and_heartbeat_pulls_it(client):
    new_config = {
        "max_temp_trigger": -5.0,
        "scan_wait_time_sec": 2,
        "system_enabled": False,
        "pan_step_degrees": 30.0,
        "api_key": "",
    }
    resp = client.post("/api/config", json=new_config)
    assert resp.status_code == 200

    assert client.get("/api/config").json() == new_config
    assert client.post("/ingest/heartbeat", json=HEARTBEAT).json() == new_config


def test_config_write_requires_token_when_configured(tmp_path):
    client = TestClient(create_app(Settings(storage_dir=str(tmp_path), api_token="secret-token")))
    body = {"max_temp_trigger": 70.0, "scan_wait_time_sec": 5, "system_enabled": True, "pan_step_degrees": 10.0}

    assert client.post("/api/config", json=body).status_code == 401
    bad = client.post("/api/config", json=body, headers={"Authorization": "Bearer wrong"})
    assert bad.status_code == 401

    ok = client.post("/api/config", json=body, headers={"Authorization": "Bearer secret-token"})
    assert ok.status_code == 200
    assert ok.json()["api_key"] is None


def test_upload_2x2_grid_and_read_matrix(client):
    resp = _upload(client, matrix.encode([[1, 2], [3, 4]]))
    assert resp.status_code == 200
    assert resp.json() == "upload_success"

    alerts = client.get("/api/alerts").json()
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert["max_temp"] == 4.0
    assert alert["angle"] == 12.5
    assert alert["turbine_token"] == "T1"

    view = client.get(f"/api/matrix/{alert['dataset_path']}/0")
    assert view.status_code == 200
    assert view.json() == {"width": 2, "height": 2, "min_temp": 1.0, "max_temp": 4.0, "pixels": [1.0, 2.0, 3.0, 4.0]}

    assert client.get(f"/api/matrix/{alert['dataset_path']}/1").status_code == 400

    evolution = client.get(f"/api/evolution/{alert['dataset_path']}")
    assert evolution.status_code == 200
    assert evolution.json() == {"frame_index": 0, "max_temp": 4.0, "avg_temp": 2.5}


def test_matrix_width_follows_columns(client):
    _upload(client, matrix.encode([[1, 2, 3], [4, 5, 6]]))
    name = client.get("/api/alerts").json()[0]["dataset_path"]

    view = client.get(f"/api/matrix/{name}/0").json()
    assert (view["width"], view["height"]) == (3, 2)
    assert view["pixels"] == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]


def test_upload_with_bad_angle_and_bad_payload(client):
    resp = _upload(client, b"definitely not numpy", angle="left")
    assert resp.status_code == 200

    alert = client.get("/api/alerts").json()[0]
    assert alert["angle"] == 0.0
    assert alert["max_temp"] == 0.0

    assert client.get(f"/api/matrix/{alert['dataset_path']}/0").status_code == 500
    assert client.get(f"/api/evolution/{alert['dataset_path']}").status_code == 500


def test_upload_without_file_records_nothing(client):
    resp = client.post("/ingest/upload", data={"turbine_token": "T1", "angle": "5"})
    assert resp.status_code == 200
    assert client.get("/api/alerts").json() == []
    assert client.get("/api/files").json() == []


def test_upload_with_unsafe_token_is_client_error(client):
    resp = _upload(client, matrix.encode([[1.0]]), token="..")
    assert resp.status_code == 400
    assert client.get("/api/alerts").json() == []


def test_alert_history_is_capped(client, clock):
    for n in range(51):
        _upload(client, matrix.encode([[float(n)]]))
        clock.advance(1)

    alerts = client.get("/api/alerts").json()
    assert len(alerts) == 50
    assert alerts[0]["max_temp"] == 50.0
    assert all(a["max_temp"] != 0.0 for a in alerts)


def test_files_listing_and_download(client):
    payload = matrix.encode([[7.0, 8.0]])
    _upload(client, payload, filename="frame.npz")

    files = client.get("/api/files").json()
    assert len(files) == 1
    entry = files[0]
    assert entry["name"].startswith("capture_T1_") and entry["name"].endswith(".npz")
    assert entry["type"] == "NPZ"
    assert entry["size_kb"] == round(len(payload) / 1024, 2)
    assert entry["date"]

    download = client.get(f"/api/download/{entry['name']}")
    assert download.status_code == 200
    assert download.content == payload
    assert "attachment" in download.headers["content-disposition"]


def test_missing_files_are_not_found(client):
    assert client.get("/api/download/capture_T1_1.npy").status_code == 404
    assert client.get("/api/matrix/capture_T1_1.npy/0").status_code == 404
    assert client.get("/api/evolution/capture_T1_1.npy").status_code == 404


def test_path_traversal_rejected_before_filesystem(client, monkeypatch):
    def no_disk(*args, **kwargs):
        raise AssertionError("filesystem must not be touched")

    monkeypatch.setattr(CaptureStore, "read", no_disk)

    for url in [
        "/api/download/..%5C..%5Cetc%5Cpasswd",
        "/api/matrix/..%5C..%5Cetc%5Cpasswd/0",
        "/api/evolution/..%5C..%5Cetc%5Cpasswd",
        "/api/matrix/..passwd/0",
    ]:
        assert client.get(url).status_code == 400

    for url in [
        "/api/download/..%2F..%2Fetc%2Fpasswd",
        "/api/matrix/..%2F..%2Fetc%2Fpasswd/0",
    ]:
        assert 400 <= client.get(url).status_code < 500


def test_legacy_ingest_endpoints(client):
    assert client.post("/ingest/telemetry", json={"battery": 0.9}).json() == "ack"
    event = {"turbine_token": "T1", "capture_timestamp": 1700000000, "angle_position": 10.0, "max_temp_detected": 95.0}
    assert client.post("/ingest/event", json=event).json() == "event_recorded"


def test_metrics_and_request_id(client):
    client.post("/ingest/heartbeat", json=HEARTBEAT)
    metrics_resp = client.get("/metrics")
    assert metrics_resp.status_code == 200
    assert metrics_resp.headers.get("content-type", "").startswith("text/plain")
    text = metrics_resp.text
    assert "gsu_requests_total" in text
    assert "gsu_heartbeats_total" in text
    assert metrics_resp.headers.get("X-Request-ID")

    echoed = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert echoed.headers["X-Request-ID"] == "abc123"


def _zip_with(name: str, payload: bytes) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(name, payload)
    return buffer.getvalue()


def test_upload_of_archive_without_array_still_records_alert(client):
    resp = _upload(client, _zip_with("readme.txt", b"hello"), filename="capture.npz")
    assert resp.status_code == 200
    assert resp.json() == "upload_success"

    alerts = client.get("/api/alerts").json()
    assert len(alerts) == 1
    assert alerts[0]["max_temp"] == 0.0
    assert [f["name"] for f in client.get("/api/files").json()] == [alerts[0]["dataset_path"]]
    assert client.get(f"/api/matrix/{alerts[0]['dataset_path']}/0").status_code == 500


def test_upload_with_oversized_header_still_records_alert(client):
    buffer = io.BytesIO()
    np.lib.format.write_array_header_1_0(
        buffer, {"descr": "<f4", "fortran_order": False, "shape": (1_000_000, 1_000_000)}
    )

    resp = _upload(client, buffer.getvalue())
    assert resp.status_code == 200

    alerts = client.get("/api/alerts").json()
    assert len(alerts) == 1
    assert alerts[0]["max_temp"] == 0.0


def test_each_app_owns_its_state(tmp_path):
    first = create_app(Settings(storage_dir=str(tmp_path / "a")))
    second = create_app(Settings(storage_dir=str(tmp_path / "b")))

    assert first.state.cloud is not second.state.cloud
    TestClient(first).post("/ingest/heartbeat", json=HEARTBEAT)
    assert TestClient(second).get("/api/live").json()["turbine_token"] == "N/A"
    assert not hasattr(main, "app")


def test_log_level_comes_from_settings(tmp_path):
    create_app(Settings(storage_dir=str(tmp_path), log_level="WARNING"))
    try:
        assert logging.getLogger().level == logging.WARNING
    finally:
        logging.getLogger().setLevel(logging.INFO)
