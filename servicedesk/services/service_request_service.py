"""Service request service layer — scheduling, status, reassignment and notes.

Transaction policy: flush(), never commit(); the route handler commits.

Status moves are free among REQUEST_STATUSES; every move writes a history
row.  Entering Completed stamps ``completed_at`` and ``execution_duration``
(whole minutes since creation); leaving Completed clears both.
"""
import logging
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import func, or_

from servicedesk.core.exceptions import NotFoundError, ValidationError
from servicedesk.models import db
from servicedesk.models.audit import write_log
from servicedesk.models.service_request import (
    PAYMENT_METHODS,
    REQUEST_COMPLETED,
    REQUEST_STATUSES,
    ServiceRequest,
    ServiceRequestAssignment,
    ServiceRequestNote,
    ServiceRequestStatusChange,
)
from servicedesk.models.team import TeamMember
from servicedesk.models.technician import FieldTechnician
from servicedesk.services import realtime
from servicedesk.services.notification import NotificationService
from servicedesk.utils.helpers import as_utc, parse_date, utcnow
from servicedesk.utils.phone import normalize_phone
from servicedesk.utils.validation import check_choice, clean_str, optional_id, require_fields

logger = logging.getLogger(__name__)

DESCRIPTIVE_FIELDS = (
    "customer_name", "location", "location_coordinates", "details", "start_time", "end_time",
)
REQUEST_QUERY_KEYS = (("/api/requests",), ("/api/requests/stats",), ("/api/reports/requests",))


def refresh_request_views(*extra):
    realtime.refresh_data(*(REQUEST_QUERY_KEYS + extra))


def _actor_name(actor: TeamMember | None) -> str:
    return actor.name if actor is not None else "System"


# ── Queries ──────────────────────────────────────────────────────────────


def get_request(request_id) -> ServiceRequest:
    req = db.session.get(ServiceRequest, request_id)
    if req is None:
        raise NotFoundError("ServiceRequest", request_id)
    return req


def find_by_order_number(order_number) -> ServiceRequest | None:
    return ServiceRequest.query.filter_by(order_number=order_number).first()


def filtered_query(args):
    q = ServiceRequest.query
    status = args.get("status")
    if status:
        q = q.filter(ServiceRequest.status == status)
    technician_id = args.get("technician_id", type=int)
    if technician_id:
        q = q.filter(ServiceRequest.technician_id == technician_id)
    date_from = parse_date(args.get("date_from"))
    if date_from:
        q = q.filter(ServiceRequest.request_date >= date_from)
    date_to = parse_date(args.get("date_to"))
    if date_to:
        q = q.filter(ServiceRequest.request_date <= date_to)
    term = (args.get("q") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(
            ServiceRequest.order_number.ilike(like),
            ServiceRequest.customer_name.ilike(like),
            ServiceRequest.customer_phone.ilike(like),
        ))
    return q.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())


def list_notes(req: ServiceRequest):
    return req.notes.order_by(ServiceRequestNote.created_at.desc(), ServiceRequestNote.id.desc()).all()


def status_history(req: ServiceRequest):
    return (
        req.status_changes
        .order_by(ServiceRequestStatusChange.changed_at, ServiceRequestStatusChange.id)
        .all()
    )


def assignment_history(req: ServiceRequest):
    return (
        req.assignments
        .order_by(ServiceRequestAssignment.changed_at, ServiceRequestAssignment.id)
        .all()
    )


def request_stats() -> dict:
    """Headline numbers for the requests dashboard."""
    by_status = {s: 0 for s in REQUEST_STATUSES}
    for status, count in (
        db.session.query(ServiceRequest.status, func.count(ServiceRequest.id))
        .group_by(ServiceRequest.status).all()
    ):
        by_status[status] = count

    today_start = datetime.combine(utcnow().date(), time.min, tzinfo=timezone.utc)
    tomorrow_start = today_start + timedelta(days=1)
    new_today = ServiceRequest.query.filter(
        ServiceRequest.created_at >= today_start, ServiceRequest.created_at < tomorrow_start,
    ).count()
    completed_today = ServiceRequest.query.filter(
        ServiceRequest.completed_at >= today_start, ServiceRequest.completed_at < tomorrow_start,
    ).count()
    avg_minutes = (
        db.session.query(func.avg(ServiceRequest.execution_duration))
        .filter(ServiceRequest.status == REQUEST_COMPLETED,
                ServiceRequest.execution_duration.isnot(None))
        .scalar()
    )
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "new_today": new_today,
        "completed_today": completed_today,
        "avg_execution_minutes": round(float(avg_minutes), 1) if avg_minutes is not None else None,
    }


# ── Validation ───────────────────────────────────────────────────────────


def _check_technician(value, *, allow_suspended=True) -> FieldTechnician | None:
    tech_id = optional_id("technician_id", value)
    if tech_id is None:
        return None
    tech = db.session.get(FieldTechnician, tech_id)
    if tech is None:
        raise ValidationError("Technician does not exist", details={"technician_id": "unknown"})
    if not allow_suspended and tech.is_suspended:
        raise ValidationError("Cannot assign a suspended technician",
                              details={"technician_id": "suspended"})
    return tech


def clean_descriptive(data: dict) -> dict:
    cleaned = {}
    for field in DESCRIPTIVE_FIELDS:
        if field in data:
            cleaned[field] = clean_str(data[field]) or None
    if "customer_name" in cleaned and not cleaned["customer_name"]:
        raise ValidationError("customer_name cannot be empty", details={"customer_name": "required"})
    if "customer_phone" in data:
        cleaned["customer_phone"] = normalize_phone(data["customer_phone"])
    if "request_date" in data:
        cleaned["request_date"] = parse_date(data["request_date"])
    if data.get("payment_method"):
        cleaned["payment_method"] = check_choice("payment_method", data["payment_method"], PAYMENT_METHODS)
    return cleaned


# ── Mutations ────────────────────────────────────────────────────────────


def apply_status(req: ServiceRequest, new_status: str, actor_id) -> ServiceRequestStatusChange | None:
    """Move *req* to *new_status*, writing history and completion timing.

    Returns the history row, or None when the status is unchanged.
    """
    check_choice("status", new_status, REQUEST_STATUSES)
    if new_status == req.status:
        return None

    change = ServiceRequestStatusChange(
        request_id=req.id,
        from_status=req.status,
        to_status=new_status,
        changed_by_id=actor_id,
    )
    db.session.add(change)

    if new_status == REQUEST_COMPLETED:
        now = utcnow()
        req.completed_at = now
        created = as_utc(req.created_at) or now
        req.execution_duration = max(0, int((now - created).total_seconds() // 60))
    elif req.status == REQUEST_COMPLETED:
        req.completed_at = None
        req.execution_duration = None

    req.status = new_status
    return change


def create_request(data: dict, actor: TeamMember | None, *, created_status="New") -> ServiceRequest:
    require_fields(data, ("order_number", "customer_name"))
    order_number = clean_str(data["order_number"], max_len=60)
    if find_by_order_number(order_number) is not None:
        raise ValidationError(
            f"Order number {order_number} is already in use",
            details={"order_number": "duplicate"},
        )

    cleaned = clean_descriptive(data)
    tech = _check_technician(data.get("technician_id"))

    req = ServiceRequest(
        order_number=order_number,
        status="New",
        technician_id=tech.id if tech else None,
        created_by_id=actor.id if actor else None,
        **cleaned,
    )
    db.session.add(req)
    db.session.flush()

    if created_status != "New":
        apply_status(req, created_status, actor.id if actor else None)
        db.session.flush()

    return req


def announce_created(req: ServiceRequest, actor: TeamMember | None, *, action="CREATE_SERVICE_REQUEST"):
    write_log(
        action=action,
        entity_type="service_request",
        entity_id=req.id,
        details={"order_number": req.order_number},
        user_id=actor.id if actor else None,
    )
    NotificationService.notify_admins(
        title="New service request",
        message=f"Service request {req.order_number} was added by {_actor_name(actor)}",
        event_type=f"create_request:{req.id}",
        exclude_user_id=actor.id if actor else None,
    )
    refresh_request_views()


def update_request(req: ServiceRequest, data: dict, actor: TeamMember) -> dict:
    """Partial update of descriptive fields; status and technician have their own endpoints."""
    if "order_number" in data:
        order_number = clean_str(data["order_number"], max_len=60)
        if not order_number:
            raise ValidationError("order_number cannot be empty", details={"order_number": "required"})
        if order_number != req.order_number and find_by_order_number(order_number) is not None:
            raise ValidationError(f"Order number {order_number} is already in use",
                                  details={"order_number": "duplicate"})
        data = dict(data, order_number=order_number)

    cleaned = clean_descriptive(data)
    if "order_number" in data:
        cleaned["order_number"] = data["order_number"]

    changes = {}
    for field, value in cleaned.items():
        old = getattr(req, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(req, field, value)

    if changes:
        db.session.flush()
        write_log(
            action="UPDATE_SERVICE_REQUEST",
            entity_type="service_request",
            entity_id=req.id,
            details={"changes": changes},
            user_id=actor.id,
        )
        NotificationService.notify_admins(
            title="Service request updated",
            message=f"{actor.name} updated service request {req.order_number}",
            event_type=f"update_request:{req.id}",
            exclude_user_id=actor.id,
        )
        refresh_request_views((f"/api/requests/{req.id}",))
    return changes


def change_status(req: ServiceRequest, status, actor: TeamMember) -> ServiceRequest:
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    old = req.status
    change = apply_status(req, status, actor.id)
    if change is None:
        return req

    db.session.flush()
    write_log(
        action="UPDATE_SERVICE_REQUEST_STATUS",
        entity_type="service_request",
        entity_id=req.id,
        details={"old": old, "new": req.status},
        user_id=actor.id,
    )
    NotificationService.notify_admins(
        title="Service request status changed",
        message=f"{actor.name} moved request {req.order_number} to '{req.status}'",
        event_type=f"update_request_status:{req.id}",
        exclude_user_id=actor.id,
    )
    refresh_request_views((f"/api/requests/{req.id}/status-history",))
    return req


def assign_technician(req: ServiceRequest, technician_id, actor: TeamMember) -> ServiceRequest:
    tech = _check_technician(technician_id, allow_suspended=False)
    new_id = tech.id if tech else None
    if new_id == req.technician_id:
        return req

    db.session.add(ServiceRequestAssignment(
        request_id=req.id,
        from_technician_id=req.technician_id,
        to_technician_id=new_id,
        changed_by_id=actor.id,
    ))
    old_id = req.technician_id
    req.technician_id = new_id
    db.session.flush()

    write_log(
        action="ASSIGN_SERVICE_REQUEST",
        entity_type="service_request",
        entity_id=req.id,
        details={"from_technician_id": old_id, "to_technician_id": new_id},
        user_id=actor.id,
    )
    target = tech.name if tech else "nobody"
    NotificationService.notify_admins(
        title="Service request reassigned",
        message=f"{actor.name} assigned request {req.order_number} to {target}",
        event_type=f"assign_request:{req.id}",
        exclude_user_id=actor.id,
    )
    refresh_request_views((f"/api/requests/{req.id}",), (f"/api/requests/{req.id}/assignments",))
    return req


def delete_request(req: ServiceRequest, actor: TeamMember) -> None:
    req_id, order_number = req.id, req.order_number
    db.session.delete(req)
    db.session.flush()
    write_log(
        action="DELETE_SERVICE_REQUEST",
        entity_type="service_request",
        entity_id=req_id,
        details={"order_number": order_number},
        user_id=actor.id,
    )
    NotificationService.notify_admins(
        title="Service request deleted",
        message=f"{actor.name} deleted request {order_number}",
        event_type=f"delete_request:{req_id}",
        exclude_user_id=actor.id,
    )
    refresh_request_views()


def add_note(req: ServiceRequest, text, actor: TeamMember) -> ServiceRequestNote:
    text = clean_str(text)
    if not text:
        raise ValidationError("text is required", details={"text": "required"})
    note = ServiceRequestNote(request_id=req.id, text=text, author_id=actor.id)
    db.session.add(note)
    db.session.flush()
    write_log(
        action="ADD_SERVICE_REQUEST_NOTE",
        entity_type="service_request",
        entity_id=req.id,
        details={"note_id": note.id},
        user_id=actor.id,
    )
    refresh_request_views((f"/api/requests/{req.id}/notes",))
    return note
