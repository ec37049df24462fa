# tests/test_admin_api.py
import json

import pytest
from fastapi.testclient import TestClient

from apps.adminconsole import api
from services.overlay import override_store

ALERT = {
    "id": 7,
    "event_uid": "incident-4711",
    "title": "Multi Stage Attack",
    "severity": "high",
    "status": "new",
    "assignee": None,
    "payload_raw": json.dumps({"message": "Brute force", "category": "CredentialAccess"}),
    "parsed_facts": {"owner": json.dumps({"assignedTo": "Ana"})},
}


@pytest.fixture
def store(monkeypatch):
    state = {"overrides": {}}

    def upsert_override(alert_id, status, assignee, updated_by):
        current = state["overrides"].get(alert_id, {})
        row = {
            "alert_id": alert_id,
            "status": status or current.get("status"),
            "assignee": assignee or current.get("assignee"),
            "updated_at": "2025-01-01T00:00:00Z",
            "updated_by": updated_by,
        }
        state["overrides"][alert_id] = row
        return row

    monkeypatch.setattr(override_store, "get_alert", lambda alert_id: dict(ALERT) if alert_id == 7 else None)
    monkeypatch.setattr(override_store, "list_alerts", lambda limit=100: [dict(ALERT)])
    monkeypatch.setattr(override_store, "get_override", lambda alert_id: state["overrides"].get(alert_id))
    monkeypatch.setattr(
        override_store,
        "get_overrides",
        lambda ids: {i: state["overrides"][i] for i in ids if i in state["overrides"]},
    )
    monkeypatch.setattr(override_store, "upsert_override", upsert_override)
    monkeypatch.setattr(
        override_store,
        "get_run",
        lambda run_id: {"id": 3, "status": "published"} if run_id == 3 else None,
    )
    return state


@pytest.fixture
def client(store):
    return TestClient(api.app)


def test_list_alerts_applies_embedded_owner(client):
    res = client.get("/v1/alerts")
    assert res.status_code == 200
    alerts = res.json()["alerts"]
    assert alerts[0]["assignee"] == "Ana"
    assert alerts[0]["overridden"] is False


def test_get_alert_includes_payload_summary(client):
    res = client.get("/v1/alerts/7")
    assert res.status_code == 200
    alert = res.json()["alert"]
    assert alert["payload_summary"] == "Message: Brute force | Category: CredentialAccess"
    assert alert["payload_fields"] == {"message": "Brute force", "category": "CredentialAccess"}


def test_get_unknown_alert(client):
    assert client.get("/v1/alerts/99").status_code == 404


def test_patch_overrides_status(client, store):
    res = client.patch("/v1/alerts/7", json={"status": "resolved"}, headers={"X-Analyst": "lead@soc"})
    assert res.status_code == 200
    alert = res.json()["alert"]
    assert alert["status"] == "resolved"
    assert alert["assignee"] == "Ana"
    assert store["overrides"][7]["updated_by"] == "lead@soc"

    listed = client.get("/v1/alerts").json()["alerts"][0]
    assert listed["status"] == "resolved"
    assert listed["overridden"] is True


def test_patch_assignee_json_blob(client):
    res = client.patch("/v1/alerts/7", json={"assignee": '{"email":"a@b.com","displayName":"A B"}'})
    assert res.json()["alert"]["assignee"] == "a@b.com"


def test_patch_requires_changes(client):
    assert client.patch("/v1/alerts/7", json={}).status_code == 400


def test_patch_rejects_unknown_status(client):
    assert client.patch("/v1/alerts/7", json={"status": "escalated"}).status_code == 422


def test_patch_unknown_alert(client):
    assert client.patch("/v1/alerts/99", json={"status": "resolved"}).status_code == 404


def test_get_run(client):
    assert client.get("/v1/ingest/runs/3").json() == {"run": {"id": 3, "status": "published"}}
    assert client.get("/v1/ingest/runs/4").status_code == 404
