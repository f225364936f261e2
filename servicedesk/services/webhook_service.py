"""
Orders webhook — upserts service requests pushed by the ordering platform.

Authentication: ``X-API-Key`` compared in constant time against
WEBHOOK_SECRET.  Payload mapping:

    order_reference_no           → order_number (upsert key)
    customer_name / customer_mobile
    address                      → location
    location.latitude/longitude  → Google Maps link in location_coordinates
    details                      → details (artisan code appended when sent)
    from_date                    → request_date
    from_time / to_time          → start_time / end_time
    payment_method               "Credit Card" → Online, anything else → Cash
    artisan_code | technician_phone → technician matched by normalized phone
    status                       "Done" or any request status ("Done" → Completed)
"""

import hmac
import logging

from flask import current_app

from servicedesk.core.exceptions import ValidationError
from servicedesk.models import db
from servicedesk.models.audit import write_log
from servicedesk.models.service_request import (
    REQUEST_COMPLETED,
    REQUEST_STATUSES,
    ServiceRequestAssignment,
)
from servicedesk.models.technician import FieldTechnician
from servicedesk.services import service_request_service as requests_svc
from servicedesk.services.notification import NotificationService
from servicedesk.utils.phone import normalize_phone
from servicedesk.utils.validation import require_fields

logger = logging.getLogger(__name__)

STATUS_ALIASES = {"Done": REQUEST_COMPLETED}
MAPS_URL = "https://www.google.com/maps?q={lat},{lng}"


class WebhookAuthError(Exception):
    """Raised when the webhook call is not authenticated."""

    def __init__(self, message: str, status: int = 401) -> None:
        self.status = status
        super().__init__(message)


def verify_api_key(provided: str | None) -> None:
    secret = current_app.config.get("WEBHOOK_SECRET")
    if not secret:
        raise WebhookAuthError("Webhook is not configured", status=503)
    if not provided or not hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8")):
        raise WebhookAuthError("Invalid API key", status=401)


def _coordinates(data: dict) -> str | None:
    point = data.get("location")
    if not isinstance(point, dict):
        return None
    lat, lng = point.get("latitude"), point.get("longitude")
    if lat in (None, "") or lng in (None, ""):
        return None
    return MAPS_URL.format(lat=lat, lng=lng)


def _details(data: dict) -> str | None:
    details = data.get("details")
    code = data.get("artisan_code")
    if code:
        suffix = f"(Artisan Code: {code})"
        return f"{details}\n{suffix}" if details else suffix
    return details


def _match_technician(data: dict) -> FieldTechnician | None:
    phone = normalize_phone(data.get("artisan_code") or data.get("technician_phone"))
    if not phone:
        return None
    return FieldTechnician.query.filter_by(phone=phone).order_by(FieldTechnician.id).first()


def _status(data: dict) -> str | None:
    raw = data.get("status")
    if not raw:
        return None
    status = STATUS_ALIASES.get(raw, raw)
    if status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown order status: {raw}", details={"status": raw})
    return status


def map_order(data: dict) -> dict:
    """Translate a webhook order into service request fields."""
    require_fields(data, ("order_reference_no", "customer_name"))
    tech = _match_technician(data)
    fields = {
        "order_number": str(data["order_reference_no"]).strip(),
        "customer_name": data["customer_name"],
        "customer_phone": data.get("customer_mobile"),
        "location": data.get("address"),
        "location_coordinates": _coordinates(data),
        "details": _details(data),
        "request_date": data.get("from_date"),
        "start_time": data.get("from_time"),
        "end_time": data.get("to_time"),
        "payment_method": "Online" if data.get("payment_method") == "Credit Card" else "Cash",
    }
    if tech is not None:
        fields["technician_id"] = tech.id
    return {k: v for k, v in fields.items() if v is not None}


def upsert_order(data: dict) -> tuple[object, bool]:
    """Create or update the request for an order.

    Returns:
        (ServiceRequest, created)
    """
    fields = map_order(data)
    status = _status(data)
    existing = requests_svc.find_by_order_number(fields["order_number"])

    if existing is None:
        req = requests_svc.create_request(fields, None, created_status=status or "New")
        requests_svc.announce_created(req, None, action="WEBHOOK_CREATE_ORDER")
        logger.info("Webhook created service request %s", req.order_number)
        return req, True

    req = existing
    technician_id = fields.pop("technician_id", None)
    fields.pop("order_number")
    for field, value in requests_svc.clean_descriptive(fields).items():
        setattr(req, field, value)
    if technician_id is not None and technician_id != req.technician_id:
        db.session.add(ServiceRequestAssignment(
            request_id=req.id,
            from_technician_id=req.technician_id,
            to_technician_id=technician_id,
        ))
        req.technician_id = technician_id

    old_status = req.status
    if status is not None:
        requests_svc.apply_status(req, status, None)
    db.session.flush()

    write_log(
        action="WEBHOOK_UPDATE_ORDER",
        entity_type="service_request",
        entity_id=req.id,
        details={"order_number": req.order_number, "old_status": old_status, "status": req.status},
    )
    NotificationService.notify_admins(
        title="Order updated",
        message=f"Order {req.order_number} was updated by the ordering platform ({req.status})",
        event_type=f"update_request:{req.id}",
    )
    requests_svc.refresh_request_views((f"/api/requests/{req.id}",))
    logger.info("Webhook updated service request %s", req.order_number)
    return req, False
