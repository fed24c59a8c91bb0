"""
Tests for Notifications API
===========================

Tests materialization, the today/upcoming views, delivery acknowledgement
and the on-demand dispatch endpoint.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from actions.reminder_engine import reminder_engine
from tests.conftest import auth_headers


# ==================== FIXTURES ====================

@pytest.fixture
def medication_payload(test_patient):
    """Metformin twice a day"""
    return {
        "patientId": test_patient.id,
        "name": "Metformin",
        "dosage": "500mg",
        "schedule": {
            "type": "daily",
            "times": [{"hour": 20, "minute": 0}, {"hour": 8, "minute": 0}],
            "days": []
        }
    }


@pytest.fixture
def created_medication(client: TestClient, test_caregiver, medication_payload):
    """Medication created through the API (reminders materialized)"""
    response = client.post("/api/v1/medications/", json=medication_payload, headers=auth_headers(test_caregiver))
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


@pytest.fixture
def overdue_reminder(client: TestClient, test_patient):
    """Ad-hoc reminder whose trigger instant has long passed"""
    response = client.post(
        "/api/v1/notifications/",
        json={
            "patientId": test_patient.id,
            "type": "appointment",
            "title": "Cardiology follow-up",
            "message": "Bring your blood pressure log",
            "scheduledDate": "2024-01-01T08:00:00Z"
        },
        headers=auth_headers(test_patient)
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


# ==================== AUTH TESTS ====================

class TestActingUser:
    """Tests for the X-User-Id header"""

    @pytest.mark.api
    def test_missing_header(self, client: TestClient):
        response = client.get("/api/v1/notifications/today")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        data = response.json()
        assert data["error"] is True
        assert data["status_code"] == 401
        assert "timestamp" in data

    @pytest.mark.api
    def test_unknown_user(self, client: TestClient):
        response = client.get("/api/v1/notifications/today", headers={"X-User-Id": "9999"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.api
    def test_other_patient_forbidden(self, client: TestClient, test_patient, other_patient, created_medication):
        response = client.get(
            f"/api/v1/notifications/patient/{test_patient.id}",
            headers=auth_headers(other_patient)
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] is True


# ==================== MATERIALIZATION TESTS ====================

class TestMaterialization:
    """Tests for POST /notifications/medication/{id} and /task/{id}"""

    @pytest.mark.api
    def test_medication_creation_materializes(self, client: TestClient, test_patient, created_medication):
        response = client.get(
            f"/api/v1/notifications/patient/{test_patient.id}",
            headers=auth_headers(test_patient)
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 60
        first = data["notifications"][0]
        assert first["type"] == "medication"
        assert first["medicationId"] == created_medication["id"]
        assert first["recurring"] == {"type": "daily", "days": []}
        assert first["isDelivered"] is False

    @pytest.mark.api
    def test_repeat_request_is_idempotent(self, client: TestClient, test_patient, test_caregiver, created_medication):
        response = client.post(
            f"/api/v1/notifications/medication/{created_medication['id']}",
            headers=auth_headers(test_caregiver)
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["count"] == 60

        listing = client.get(
            f"/api/v1/notifications/patient/{test_patient.id}",
            headers=auth_headers(test_caregiver)
        )
        assert listing.json()["total"] == 60

    @pytest.mark.api
    def test_unknown_medication(self, client: TestClient, test_caregiver):
        response = client.post("/api/v1/notifications/medication/9999", headers=auth_headers(test_caregiver))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["status_code"] == 404

    @pytest.mark.api
    def test_task_with_time_override(self, client: TestClient, test_task, test_caregiver):
        response = client.post(
            f"/api/v1/notifications/task/{test_task.id}",
            json={"notificationTime": {"hour": 7, "minute": 30}},
            headers=auth_headers(test_caregiver)
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["count"] == 1
        notification = data["notifications"][0]
        assert notification["scheduledDate"] == "2024-01-10T07:30:00Z"
        assert notification["createdAt"].endswith("Z")
        assert notification["notificationTime"] == {"hour": 7, "minute": 30}
        assert notification["message"] == "Don't forget to complete: Blood pressure check"

    @pytest.mark.api
    def test_invalid_override(self, client: TestClient, test_task, test_caregiver):
        response = client.post(
            f"/api/v1/notifications/task/{test_task.id}",
            json={"notificationTime": {"hour": 24, "minute": 0}},
            headers=auth_headers(test_caregiver)
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ==================== QUERY TESTS ====================

class TestTodayNotifications:
    """Tests for GET /notifications/today"""

    @pytest.mark.api
    def test_patient_today_sorted(self, client: TestClient, test_patient, created_medication):
        response = client.get("/api/v1/notifications/today", headers=auth_headers(test_patient))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 2
        assert [n["notificationTime"]["hour"] for n in data["notifications"]] == [8, 20]

    @pytest.mark.api
    def test_caregiver_defaults_to_linked_patient(self, client: TestClient, test_caregiver, created_medication):
        response = client.get("/api/v1/notifications/today", headers=auth_headers(test_caregiver))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["total"] == 2

    @pytest.mark.api
    def test_caregiver_without_patients(self, client: TestClient, unlinked_caregiver):
        response = client.get("/api/v1/notifications/today", headers=auth_headers(unlinked_caregiver))

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["errors"][0]["field"] == "patientId"

    @pytest.mark.api
    def test_upcoming_excludes_past(self, client: TestClient, test_patient, created_medication, overdue_reminder):
        response = client.get(
            f"/api/v1/notifications/patient/{test_patient.id}",
            params={"upcoming": "true"},
            headers=auth_headers(test_patient)
        )

        data = response.json()
        ids = {n["id"] for n in data["notifications"]}
        assert overdue_reminder["id"] not in ids
        assert 58 <= data["total"] <= 60


# ==================== DELIVERY TESTS ====================

class TestDelivery:
    """Tests for delivery acknowledgement and dispatch"""

    @pytest.mark.api
    def test_mark_delivered_idempotent(self, client: TestClient, test_patient, overdue_reminder):
        url = f"/api/v1/notifications/{overdue_reminder['id']}/delivered"

        first = client.put(url, headers=auth_headers(test_patient))
        second = client.put(url, headers=auth_headers(test_patient))

        assert first.status_code == status.HTTP_200_OK
        assert second.status_code == status.HTTP_200_OK
        assert first.json()["isDelivered"] is True
        assert second.json()["isDelivered"] is True
        assert second.json()["deliveredAt"].endswith("Z")

    @pytest.mark.api
    def test_patient_cannot_delete(self, client: TestClient, test_patient, overdue_reminder):
        response = client.delete(
            f"/api/v1/notifications/{overdue_reminder['id']}",
            headers=auth_headers(test_patient)
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.api
    def test_caregiver_deletes(self, client: TestClient, test_caregiver, overdue_reminder):
        response = client.delete(
            f"/api/v1/notifications/{overdue_reminder['id']}",
            headers=auth_headers(test_caregiver)
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["isActive"] is False

    @pytest.mark.api
    def test_dispatch_without_handlers(self, client: TestClient, test_patient, overdue_reminder, monkeypatch):
        monkeypatch.setattr(reminder_engine, "_delivery_handlers", {})

        response = client.post("/api/v1/notifications/dispatch", headers=auth_headers(test_patient))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["due"] == 1
        assert data["skipped"] == 1
        assert data["attempts"][0]["notificationId"] == overdue_reminder["id"]

        pending = client.get(f"/api/v1/notifications/{overdue_reminder['id']}", headers=auth_headers(test_patient))
        assert pending.json()["isDelivered"] is False

    @pytest.mark.api
    def test_dispatch_marks_delivered(self, client: TestClient, test_patient, overdue_reminder, monkeypatch):
        sent = []
        monkeypatch.setattr(reminder_engine, "_delivery_handlers", {"test": lambda n: sent.append(n.id) or True})

        response = client.post("/api/v1/notifications/dispatch", headers=auth_headers(test_patient))

        data = response.json()
        assert data["delivered"] == 1
        assert data["attempts"][0]["channels"] == ["test"]
        assert sent == [overdue_reminder["id"]]

        delivered = client.get(f"/api/v1/notifications/{overdue_reminder['id']}", headers=auth_headers(test_patient))
        assert delivered.json()["isDelivered"] is True

        again = client.post("/api/v1/notifications/dispatch", headers=auth_headers(test_patient))
        assert again.json()["due"] == 0
