"""Orders webhook tests (X-API-Key auth and upsert by order reference)."""

import pytest

from servicedesk.models.audit import AuditLog
from servicedesk.models.notification import Notification
from servicedesk.models.service_request import ServiceRequest, ServiceRequestAssignment
from servicedesk.services.webhook_service import map_order

API_KEY = "test-webhook-secret"
URL = "/api/webhooks/orders"


def _order(**overrides):
    data = {
        "order_reference_no": "WEB-500",
        "customer_name": "Faisal Customer",
        "customer_mobile": "966553334444",
        "address": "Dammam, Corniche",
        "location": {"latitude": 26.43, "longitude": 50.1},
        "details": "Washing machine leaking",
        "from_date": "2026-07-01",
        "from_time": "09:00",
        "to_time": "11:00",
        "payment_method": "Credit Card",
    }
    data.update(overrides)
    return data


def _post(client, body, key=API_KEY):
    headers = {"X-API-Key": key} if key is not None else {}
    return client.post(URL, json=body, headers=headers)


class TestWebhookAuth:
    def test_missing_key(self, client):
        res = _post(client, _order(), key=None)
        assert res.status_code == 401
        assert res.get_json()["status"] == "error"

    def test_wrong_key(self, client):
        assert _post(client, _order(), key="nope").status_code == 401
        assert ServiceRequest.query.count() == 0

    def test_unconfigured_secret(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "WEBHOOK_SECRET", None)
        assert _post(client, _order()).status_code == 503


class TestWebhookPayload:
    def test_non_object_body(self, client):
        assert _post(client, ["not", "an", "object"]).status_code == 400

    def test_missing_reference(self, client):
        res = _post(client, _order(order_reference_no=None))
        assert res.status_code == 400

    def test_unknown_status(self, client):
        assert _post(client, _order(status="Vanished")).status_code == 400

    def test_mapping(self, technician):
        fields = map_order(_order(artisan_code="0501234567", payment_method="Cash on delivery"))
        assert fields == {
            "order_number": "WEB-500",
            "customer_name": "Faisal Customer",
            "customer_phone": "966553334444",
            "location": "Dammam, Corniche",
            "location_coordinates": "https://www.google.com/maps?q=26.43,50.1",
            "details": "Washing machine leaking\n(Artisan Code: 0501234567)",
            "request_date": "2026-07-01",
            "start_time": "09:00",
            "end_time": "11:00",
            "payment_method": "Cash",
            "technician_id": technician.id,
        }

    def test_missing_details_and_coordinates(self):
        fields = map_order(_order(details=None, location={"latitude": 26.43}))
        assert "details" not in fields
        assert "location_coordinates" not in fields

    def test_flat_coordinates_are_ignored(self):
        data = _order(latitude=26.43, longitude=50.1)
        del data["location"]
        assert "location_coordinates" not in map_order(data)


class TestWebhookUpsert:
    def test_create(self, client, admin, technician):
        res = _post(client, _order(technician_phone="+966 50 123 4567"))
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "success"
        assert body["message"] == "Order created"
        data = body["data"]
        assert data["payment_method"] == "Online"
        assert data["customer_phone"] == "+966553334444"
        assert data["request_date"] == "2026-07-01"
        assert (data["start_time"], data["end_time"]) == ("09:00", "11:00")
        assert data["details"] == "Washing machine leaking"
        assert data["location_coordinates"] == "https://www.google.com/maps?q=26.43,50.1"
        assert data["technician_id"] == technician.id
        assert data["created_by_id"] is None

        log = AuditLog.query.filter_by(action="WEBHOOK_CREATE_ORDER").one()
        assert log.user_id is None
        assert Notification.query.filter_by(user_id=admin.id).count() == 1

    def test_create_done_is_completed(self, client):
        res = _post(client, _order(status="Done"))
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["status"] == "Completed"
        assert data["completed_at"] is not None

    def test_update_existing(self, client, technician):
        _post(client, _order())
        res = _post(client, _order(address="Khobar", status="Done", artisan_code="0501234567"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "Order updated"
        assert body["data"]["location"] == "Khobar"
        assert body["data"]["status"] == "Completed"
        assert body["data"]["technician_id"] == technician.id

        assert ServiceRequest.query.count() == 1
        assignment = ServiceRequestAssignment.query.one()
        assert assignment.from_technician_id is None
        assert assignment.to_technician_id == technician.id
        log = AuditLog.query.filter_by(action="WEBHOOK_UPDATE_ORDER").one()
        assert log.details["old_status"] == "New"
        assert log.details["status"] == "Completed"

    @pytest.mark.parametrize("status", ["In Progress", "Cancelled"])
    def test_plain_statuses_pass_through(self, client, status):
        res = _post(client, _order(status=status))
        assert res.get_json()["data"]["status"] == status
