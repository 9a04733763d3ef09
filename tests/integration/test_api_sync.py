"""Integration tests for /sync routes."""
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from tasksync.api.main import create_app
from tasksync.db.engine import get_session
from tasksync.models.task import Task
from tasksync.sync.engine import SyncEngine
from tasksync.sync.transport import LocalSimulationTransport, TransportError


def _client(engine, transport):
    app = create_app(
        engine=engine,
        sync_engine=SyncEngine(engine, transport),
        start_scheduler=False,
    )

    def override_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    return TestClient(app)


@pytest.fixture(name="client")
def client_fixture(engine):
    with _client(engine, LocalSimulationTransport()) as c:
        yield c


class TestSyncRoutes:
    def test_status_empty(self, client):
        resp = client.get("/sync/status")
        assert resp.status_code == 200
        assert resp.json() == {"pending": 0, "running": False}

    def test_status_counts_pending_mutations(self, client):
        task_id = client.post("/tasks/", json={"title": "A"}).json()["id"]
        client.put(f"/tasks/{task_id}", json={"title": "B"})
        assert client.get("/sync/status").json()["pending"] == 2

    def test_trigger_empty_queue(self, client):
        resp = client.post("/sync/trigger")
        assert resp.status_code == 200
        assert resp.json() == {
            "ok": True,
            "result": {"processed": 0, "summary": [], "error": None},
        }

    def test_trigger_syncs_tasks(self, client, engine):
        task_id = client.post("/tasks/", json={"title": "A"}).json()["id"]
        resp = client.post("/sync/trigger")
        result = resp.json()["result"]
        assert result["processed"] == 1
        assert result["summary"][0]["task_id"] == task_id
        assert result["summary"][0]["result"] == "synced"
        with Session(engine) as s:
            assert s.get(Task, task_id).sync_status == "synced"
        assert client.get("/sync/status").json()["pending"] == 0

    def test_batch_is_alias_of_trigger(self, client):
        client.post("/tasks/", json={"title": "A"})
        resp = client.post("/sync/batch")
        assert resp.status_code == 200
        assert resp.json()["result"]["processed"] == 1

    def test_transport_failure_is_not_an_http_error(self, engine):
        transport = AsyncMock()
        transport.send_batch = AsyncMock(side_effect=TransportError("Remote sync failed: 500"))
        with _client(engine, transport) as client:
            client.post("/tasks/", json={"title": "A"})
            resp = client.post("/sync/trigger")
        assert resp.status_code == 200
        assert resp.json()["result"]["processed"] == 0
        assert resp.json()["result"]["error"] == "Remote sync failed: 500"

    def test_logs_newest_first(self, client):
        client.post("/tasks/", json={"title": "A"})
        client.post("/sync/trigger")
        client.post("/tasks/", json={"title": "B"})
        client.post("/sync/trigger")

        resp = client.get("/sync/logs", params={"limit": 10})
        assert resp.status_code == 200
        entries = resp.json()
        assert len(entries) == 2
        assert all(e["log_type"] == "info" for e in entries)
        assert entries[0]["id"] > entries[1]["id"]
        assert entries[0]["meta"]["operation_type"] == "create"

    def test_logs_limit_validated(self, client):
        assert client.get("/sync/logs", params={"limit": 0}).status_code == 422
