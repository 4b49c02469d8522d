"""HTTP surface: trigger, list and inspect executions."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeLLM, build_test_services
from reelpipe import __version__
from reelpipe.api.app import create_app


@pytest.fixture
def client(tmp_path):
    services = build_test_services(tmp_path)
    with TestClient(create_app(services=services)) as client:
        yield client
        client.portal.call(services.db_engine.dispose)


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


def test_trigger_runs_pipeline_and_returns_execution(client):
    response = client.post("/api/executions")

    assert response.status_code == 200
    body = response.json()
    assert body["end_time"] is not None
    assert [t["status"] for t in body["tasks"]] == ["completed"] * 6
    assert body["tasks"][4]["result"]["content"]["final_video_key"] == f"{body['id']}-final.mp4"


def test_trigger_failure_returns_failed_execution(tmp_path):
    services = build_test_services(tmp_path, llm=FakeLLM(error="model overloaded"))
    with TestClient(create_app(services=services)) as client:
        response = client.post("/api/executions")
        client.portal.call(services.db_engine.dispose)

    assert response.status_code == 500
    body = response.json()
    assert body["tasks"][0]["status"] == "failed"
    assert "model overloaded" in body["tasks"][0]["error"]["message"]
    assert body["tasks"][0]["error"]["stack"]
    assert body["end_time"] is None


def test_list_and_get(client):
    first = client.post("/api/executions").json()
    second = client.post("/api/executions").json()

    listed = client.get("/api/executions")
    assert listed.status_code == 200
    assert sorted(e["id"] for e in listed.json()) == sorted([first["id"], second["id"]])

    fetched = client.get(f"/api/executions/{first['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == first["id"]


def test_get_unknown_execution(client):
    response = client.get("/api/executions/does-not-exist")
    assert response.status_code == 404
    assert response.json()["detail"] == "Execution does-not-exist not found"


def test_list_empty(client):
    assert client.get("/api/executions").json() == []
