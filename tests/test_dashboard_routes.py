"""Tests for the dashboard API."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from sitedesk.main import create_app
from sitedesk.store.store import ProjectStore


@pytest.fixture
def client(backend):
    store = ProjectStore(backend, user_id="user-1", email_domain="intake.test")
    with TestClient(create_app(store)) as client:
        yield client


@pytest.fixture
def project_id(client):
    response = client.post("/dashboard/projects", json={"name": "Harbor Lofts", "folder_presets": ["FLRA"]})
    assert response.status_code == 201
    project_id = response.json()["id"]
    assert client.post(f"/dashboard/projects/{project_id}/select").status_code == 200
    return project_id


def _shift(client):
    response = client.post("/dashboard/shifts", json={"name": "Level 3 pour", "scheduled_date": "2024-05-01"})
    assert response.status_code == 201
    return response.json()["id"]


class TestStatus:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_status_without_listener(self, client):
        body = client.get("/dashboard/status").json()
        assert body["project_id"] is None
        assert body["connection"] == "idle"

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_project_required(self, client):
        assert client.get("/dashboard/daily-logs").status_code == 409

    def test_blank_project_name(self, client):
        assert client.post("/dashboard/projects", json={"name": "  "}).status_code == 422


class TestDailyLogs:
    def test_manpower_log(self, client, project_id):
        response = client.post(
            "/dashboard/daily-logs",
            json={
                "log_type": "manpower",
                "content": "Acme framing crew",
                "log_date": "2024-05-01",
                "metadata": {"company": "Acme", "count": 4, "hours": 8},
            },
        )
        assert response.status_code == 201
        logs = client.get("/dashboard/daily-logs", params={"log_date": "2024-05-01", "log_type": "manpower"}).json()
        assert len(logs) == 1
        assert logs[0]["metadata"]["count"] == 4
        assert logs[0]["project_id"] == project_id

    def test_bad_metadata(self, client, project_id):
        response = client.post("/dashboard/daily-logs", json={"log_type": "visitor", "content": "x", "metadata": {}})
        assert response.status_code == 422

    def test_site_issue_status(self, client, project_id):
        issue = client.post("/dashboard/daily-logs", json={"log_type": "site_issue", "content": "Loose railing"}).json()
        response = client.post(f"/dashboard/daily-logs/{issue['id']}/status", json={"status": "resolved"})
        assert response.json()["status"] == "resolved"
        assert client.get("/dashboard/site-issues", params={"open_only": True}).json() == []

    def test_continued_issues_are_not_open(self, client, project_id):
        active = client.post("/dashboard/daily-logs", json={"log_type": "site_issue", "content": "Missing guardrail"}).json()
        client.post(
            "/dashboard/daily-logs",
            json={"log_type": "site_issue", "content": "Ponding at gridline C", "status": "continued"},
        )
        open_issues = client.get("/dashboard/site-issues", params={"open_only": True}).json()
        assert [i["id"] for i in open_issues] == [active["id"]]
        assert len(client.get("/dashboard/site-issues").json()) == 2

    def test_status_change_on_other_types(self, client, project_id):
        note = client.post("/dashboard/daily-logs", json={"log_type": "note", "content": "Call city"}).json()
        response = client.post(f"/dashboard/daily-logs/{note['id']}/status", json={"status": "resolved"})
        assert response.status_code == 422

    def test_unknown_log(self, client, project_id):
        response = client.post("/dashboard/daily-logs/missing/status", json={"status": "resolved"})
        assert response.status_code == 404


class TestShifts:
    def test_lifecycle(self, client, project_id):
        shift_id = _shift(client)
        assert client.post(f"/dashboard/shifts/{shift_id}/activate").json()["status"] == "active"
        assert client.post(f"/dashboard/shifts/{shift_id}/activate").status_code == 422

        response = client.post(
            f"/dashboard/shifts/{shift_id}/closeout",
            json={"closeout_checklist": [{"id": "forms", "label": "All forms collected", "checked": True}]},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["closed_at"]

    def test_empty_checklist(self, client, project_id):
        shift_id = _shift(client)
        client.post(f"/dashboard/shifts/{shift_id}/activate")
        response = client.post(f"/dashboard/shifts/{shift_id}/closeout", json={"closeout_checklist": []})
        assert response.status_code == 422

    def test_cancel_and_list(self, client, project_id):
        shift_id = _shift(client)
        assert client.post(f"/dashboard/shifts/{shift_id}/cancel").json()["status"] == "cancelled"
        shifts = client.get("/dashboard/shifts", params={"status": "cancelled"}).json()
        assert [s["id"] for s in shifts] == [shift_id]
        assert client.get(f"/dashboard/shifts/{shift_id}").json()["workers"] == []

    def test_unknown_shift(self, client, project_id):
        assert client.post("/dashboard/shifts/missing/activate").status_code == 404


def test_documents(client, project_id, backend):
    asyncio.run(
        backend.ingest_document(
            {"project_id": project_id, "original_filename": "flra.pdf", "storage_path": "p/flra.pdf", "status": "needs_review"}
        )
    )
    # the app has no listener here, so re-select to reload the snapshot
    client.post("/dashboard/projects/other/select")
    client.post(f"/dashboard/projects/{project_id}/select")
    docs = client.get("/dashboard/documents", params={"unsorted": True}).json()
    assert [d["original_filename"] for d in docs] == ["flra.pdf"]
