"""
Tests for the HTTP trigger interface.
"""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app import app, get_db
from models.documents import Document
from storage.database import StoreError
from utils.helpers import utc_now


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_process_kpis_only(client, db, make_rule, make_kpi):
    db.save_alert_rule(make_rule(red_min=85, frequency="immediate"))
    db.save_kpi_records([make_kpi(80, created_at=utc_now())])

    response = client.post("/red-flag-monitor", json={"action": "process_kpis"})

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["message"] == "KPI alerts processed successfully"
    assert body["alertsTriggered"] == 1
    assert "sent" not in body
    assert db.get_notifications()[0].status == "pending"


def test_process_notifications_only(client, db, make_rule, make_kpi):
    db.save_alert_rule(make_rule(red_min=85, frequency="immediate"))
    db.save_kpi_records([make_kpi(80, created_at=utc_now())])
    client.post("/red-flag-monitor", json={"action": "process_kpis"})

    response = client.post("/red-flag-monitor?action=process_notifications")

    body = response.json()
    assert body["success"] is True
    assert body["sent"] == 1
    assert "alertsTriggered" not in body
    assert db.get_notifications()[0].status == "sent"


def test_default_runs_both(client, db, make_rule, make_kpi):
    db.save_alert_rule(make_rule(red_min=85, frequency="immediate"))
    db.save_kpi_records([make_kpi(80, created_at=utc_now())])

    response = client.get("/red-flag-monitor")

    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Red flag monitoring completed successfully"
    assert body["alertsTriggered"] == 1
    assert body["sent"] == 1


def test_unknown_action_runs_both(client, db, make_rule, make_kpi):
    db.save_alert_rule(make_rule(red_min=85, frequency="immediate"))
    db.save_kpi_records([make_kpi(80, created_at=utc_now())])

    response = client.post("/red-flag-monitor", json={"action": "full_sweep"})

    body = response.json()
    assert response.status_code == 200
    assert body["message"] == "Red flag monitoring completed successfully"
    assert body["alertsTriggered"] == 1
    assert body["sent"] == 1


def test_batch_failure_is_500(client, db):
    with patch.object(db, "get_active_alert_rule_rows", side_effect=StoreError("store unreachable")):
        response = client.post("/red-flag-monitor", json={"action": "process_kpis"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "store unreachable"}


def test_process_document_endpoint(client, db, tmp_path, monkeypatch):
    from config import settings

    monkeypatch.setattr(settings, "DOCUMENT_STORAGE_DIR", str(tmp_path))
    monkeypatch.setattr(settings, "KPI_EXTRACTOR", "pattern")
    (tmp_path / "report.txt").write_text("Net operating income $90,000\nTotal revenue $250,000")
    db.save_document(Document(id="doc-1", user_id="user-1", filename="report.txt",
                              file_type="text/plain", storage_path="report.txt"))

    response = client.post("/process-document", json={"documentId": "doc-1", "userId": "user-1"})

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["category"] == "Financial Report"
    assert body["extractedKPIs"] >= 2


def test_process_document_not_found(client):
    response = client.post("/process-document", json={"documentId": "missing", "userId": "user-1"})
    assert response.status_code == 500
    assert "Document not found" in response.json()["error"]


def test_process_document_validation(client):
    response = client.post("/process-document", json={"documentId": "doc-1"})
    assert response.status_code == 422


def test_sync_pm_data_test_mode(client, db):
    import base64
    import json
    from models.documents import PMIntegration

    credentials = base64.b64encode(json.dumps({"username": "pm@example.com", "password": "x"}).encode()).decode()
    db.save_pm_integration(PMIntegration(id="int-1", user_id="user-1", pm_software="onesite",
                                         credentials_encrypted=credentials))

    response = client.post("/sync-pm-data", json={"integrationId": "int-1", "userId": "user-1", "testMode": True})

    assert response.json() == {
        "success": True,
        "message": "PM data synced successfully",
        "syncedKPIs": 2,
        "pmSoftware": "onesite",
        "testMode": True,
    }
