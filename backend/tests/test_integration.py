import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient
from reelstream.main import app
from reelstream.core.db import get_session
from reelstream.api.v1.admin import get_reclaimer, get_storage_manager
from reelstream.api.v1.health import get_redis
from reelstream.api.v1.upload_chunked import get_orchestrator
from reelstream.services.storage_manager import StorageManager
from sqlmodel import Session

from conftest import HOUR_MS


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="redis_conn")
def redis_conn_fixture():
    return MagicMock()


@pytest.fixture(name="client")
def client_fixture(session, redis_conn, orchestrator, reclaimer, temp_root, output_root):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_redis] = lambda: redis_conn
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_reclaimer] = lambda: reclaimer
    app.dependency_overrides[get_storage_manager] = lambda: StorageManager(temp_root, output_root)
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def put_chunk(client, session_id, index, data):
    return client.put(
        f"/api/upload-chunked/{session_id}/chunk",
        params={"chunk_index": index},
        files={"chunk": (f"{index}.chunk", data, "application/octet-stream")},
    )


def test_health_check(client):
    """test basic health endpoint"""
    response = client.get("/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_check(client):
    """test readiness endpoint"""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"]["redis"]["status"] == "healthy"


def test_readiness_reports_redis_down(client, redis_conn):
    redis_conn.ping.side_effect = ConnectionError("refused")
    data = client.get("/health/ready").json()
    assert data["status"] == "unhealthy"
    assert data["checks"]["redis"]["status"] == "unhealthy"


def test_init_upload_from_filesize(client):
    response = client.post("/api/upload-chunked/init", json={"filesize": 25, "chunk_size": 10})
    assert response.status_code == 200
    data = response.json()
    assert data["expected_chunks"] == 3
    assert data["status"] == "pending"


MIB = 1024 * 1024


def test_init_upload_reports_free_space(client):
    with patch("reelstream.services.storage_manager.shutil.disk_usage", return_value=(900 * MIB, 400 * MIB, 500 * MIB)):
        response = client.post("/api/upload-chunked/init", json={"filesize": 25, "chunk_size": 10})
    assert response.status_code == 200
    assert response.json()["available_bytes"] == 500 * MIB


def test_init_upload_rejected_without_free_space(client):
    with patch("reelstream.services.storage_manager.shutil.disk_usage", return_value=(900 * MIB, 850 * MIB, 50 * MIB)):
        response = client.post("/api/upload-chunked/init", json={"filesize": 25, "chunk_size": 10})
    assert response.status_code == 400
    assert "disk space" in response.json()["detail"]


def test_init_upload_requires_a_size(client):
    response = client.post("/api/upload-chunked/init", json={"filename": "clip.mp4"})
    assert response.status_code == 400


def test_chunked_upload_end_to_end(client, segmenter):
    """out-of-order chunks over http end with both playlists"""
    sid = client.post("/api/upload-chunked/init", json={"expected_chunks": 3}).json()["session_id"]

    for index, data in [(2, b"ccc"), (0, b"aaa")]:
        response = put_chunk(client, sid, index, data)
        assert response.status_code == 200
        assert response.json()["status"] == "uploading"

    status = client.get(f"/api/upload-chunked/{sid}/status").json()
    assert status["received_chunks"] == [0, 2]
    assert status["progress"] == 66

    response = put_chunk(client, sid, 1, b"bbb")
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert segmenter.inputs == [b"aaabbbccc"]

    status = client.get(f"/api/upload-chunked/{sid}/status").json()
    assert status["hls_vod_url"] == f"/media/hls/{sid}/index.m3u8"
    assert status["hls_live_url"] == f"/media/hls/{sid}/live.m3u8"


def test_chunk_for_unknown_session(client):
    assert put_chunk(client, "nope", 0, b"x").status_code == 404


def test_chunk_out_of_range(client):
    sid = client.post("/api/upload-chunked/init", json={"expected_chunks": 2}).json()["session_id"]
    assert put_chunk(client, sid, 2, b"x").status_code == 400
    assert put_chunk(client, sid, -1, b"x").status_code == 400


def test_traversal_session_id(client):
    response = client.get("/api/upload-chunked/..%2F..%2Fetc/status")
    assert response.status_code in (400, 404)


def test_status_of_unknown_session(client):
    assert client.get("/api/upload-chunked/nope/status").status_code == 404


def test_reclaim_then_late_chunk(client, clock):
    """an abandoned upload is reclaimed by the admin sweep and rejects late chunks"""
    sid = client.post("/api/upload-chunked/init", json={"expected_chunks": 2}).json()["session_id"]
    assert put_chunk(client, sid, 0, b"a").status_code == 200

    clock.advance(13 * HOUR_MS)
    response = client.post("/api/admin/uploads/reclaim")
    assert response.status_code == 200
    assert response.json()["result"]["reclaimed"] == [sid]

    response = put_chunk(client, sid, 1, b"b")
    assert response.status_code == 409

    status = client.get(f"/api/upload-chunked/{sid}/status").json()
    assert status["status"] == "failed"
    assert status["error_type"] == "SessionExpired"


def test_storage_stats(client):
    """test storage stats"""
    response = client.get("/api/admin/storage")
    assert response.status_code == 200
    data = response.json()
    assert "total_gb" in data
    assert data["active_chunk_dirs"] == 0
