"""Complaint service layer — workflow, history, notes and saved filters.

Transaction policy: functions use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Every mutation follows the same sequence:
  1. permission check (field-level rules beyond the route decorator)
  2. validate
  3. apply the change
  4. history row (status changes) + audit log row
  5. notify other members + REFRESH_DATA frame
"""
import logging

from sqlalchemy import func, or_

from servicedesk.core.exceptions import (
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
)
from servicedesk.models import db
from servicedesk.models.audit import write_log
from servicedesk.models.complaint import (
    COMPLAINT_SEVERITIES,
    COMPLAINT_SOURCES,
    COMPLAINT_STATUSES,
    COMPLAINT_TYPES,
    Complaint,
    ComplaintNote,
    ComplaintStatusChange,
    SavedFilter,
)
from servicedesk.models.team import TeamMember
from servicedesk.models.technician import FieldTechnician
from servicedesk.services import realtime
from servicedesk.services.notification import NotificationService
from servicedesk.services.permission_service import has_permission
from servicedesk.utils.phone import normalize_phone
from servicedesk.utils.validation import check_choice, clean_str, optional_id, require_fields

logger = logging.getLogger(__name__)

# Status workflow: current status → statuses it may move to
COMPLAINT_TRANSITIONS = {
    "New": ("Under Review", "Transferred", "Pending Customer", "Resolved", "Closed", "Rejected"),
    "Under Review": ("Transferred", "Pending Customer", "Resolved", "Closed", "Rejected"),
    "Transferred": ("Under Review", "Pending Customer", "Resolved", "Closed", "Rejected"),
    "Pending Customer": ("Under Review", "Transferred", "Resolved", "Closed", "Rejected"),
    "Resolved": ("Closed", "Under Review"),
    "Closed": ("Under Review",),
    "Rejected": ("Under Review",),
}

REQUIRED_FIELDS = ("source", "type", "severity", "title", "description", "customer_name")
TEXT_FIELDS = ("title", "description", "customer_name", "location", "order_number")
ENUM_FIELDS = {
    "source": COMPLAINT_SOURCES,
    "type": COMPLAINT_TYPES,
    "severity": COMPLAINT_SEVERITIES,
}
# Diffed into the UPDATE_COMPLAINT log entry
TRACKED_FIELDS = (
    "source", "type", "severity", "title", "description", "customer_name",
    "customer_phone", "location", "order_number", "status", "assigned_to_id", "technician_id",
)
COMPLAINT_QUERY_KEYS = (("/api/complaints",), ("/api/stats",), ("/api/reports/basic",))


def can_transition(current: str, target: str) -> bool:
    return target in COMPLAINT_TRANSITIONS.get(current, ())


def _refresh(*extra):
    realtime.refresh_data(*(COMPLAINT_QUERY_KEYS + extra))


# ── Validation ───────────────────────────────────────────────────────────


def _clean_payload(data: dict, *, partial: bool) -> dict:
    """Validate and normalise complaint fields present in *data*."""
    if not partial:
        require_fields(data, REQUIRED_FIELDS)

    cleaned = {}
    for field, choices in ENUM_FIELDS.items():
        if field in data:
            cleaned[field] = check_choice(field, data[field], choices)

    for field in TEXT_FIELDS:
        if field in data:
            value = clean_str(data[field])
            if field in REQUIRED_FIELDS and not value:
                raise ValidationError(f"{field} cannot be empty", details={field: "required"})
            cleaned[field] = value or None

    if "customer_phone" in data:
        cleaned["customer_phone"] = normalize_phone(data["customer_phone"])

    if "attachments" in data:
        attachments = data["attachments"] or []
        if not isinstance(attachments, list) or not all(isinstance(a, str) for a in attachments):
            raise ValidationError("attachments must be a list of URLs",
                                  details={"attachments": "list of strings"})
        cleaned["attachments"] = attachments

    if "assigned_to_id" in data:
        member_id = optional_id("assigned_to_id", data["assigned_to_id"])
        if member_id is not None and db.session.get(TeamMember, member_id) is None:
            raise ValidationError("Assigned member does not exist",
                                  details={"assigned_to_id": "unknown member"})
        cleaned["assigned_to_id"] = member_id

    if "technician_id" in data:
        tech_id = optional_id("technician_id", data["technician_id"])
        if tech_id is not None and db.session.get(FieldTechnician, tech_id) is None:
            raise ValidationError("Technician does not exist",
                                  details={"technician_id": "unknown technician"})
        cleaned["technician_id"] = tech_id

    if "status" in data:
        cleaned["status"] = check_choice("status", data["status"], COMPLAINT_STATUSES)

    return cleaned


# ── Queries ──────────────────────────────────────────────────────────────


def get_complaint(complaint_id) -> Complaint:
    complaint = db.session.get(Complaint, complaint_id)
    if complaint is None:
        raise NotFoundError("Complaint", complaint_id)
    return complaint


def filtered_query(args):
    """Complaint list query built from request args."""
    q = Complaint.query
    for field in ("status", "severity", "type", "source"):
        value = args.get(field)
        if value:
            q = q.filter(getattr(Complaint, field) == value)

    assigned_to = args.get("assigned_to", type=int)
    if assigned_to:
        q = q.filter(Complaint.assigned_to_id == assigned_to)
    technician_id = args.get("technician_id", type=int)
    if technician_id:
        q = q.filter(Complaint.technician_id == technician_id)

    term = (args.get("q") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(
            Complaint.title.ilike(like),
            Complaint.customer_name.ilike(like),
            Complaint.customer_phone.ilike(like),
            Complaint.order_number.ilike(like),
        ))
    return q.order_by(Complaint.created_at.desc(), Complaint.id.desc())


def notes_counts(complaint_ids) -> dict[int, int]:
    """{complaint_id: note count} in one grouped query."""
    if not complaint_ids:
        return {}
    rows = (
        db.session.query(ComplaintNote.complaint_id, func.count(ComplaintNote.id))
        .filter(ComplaintNote.complaint_id.in_(complaint_ids))
        .group_by(ComplaintNote.complaint_id)
        .all()
    )
    return {cid: count for cid, count in rows}


def list_notes(complaint: Complaint):
    return (
        complaint.notes
        .order_by(ComplaintNote.created_at.desc(), ComplaintNote.id.desc())
        .all()
    )


def status_history(complaint: Complaint):
    return (
        complaint.status_changes
        .order_by(ComplaintStatusChange.changed_at, ComplaintStatusChange.id)
        .all()
    )


# ── Mutations ────────────────────────────────────────────────────────────


def _record_status_change(complaint: Complaint, new_status: str, actor_id) -> ComplaintStatusChange:
    if not can_transition(complaint.status, new_status):
        raise TransitionError("complaint", complaint.status, new_status)
    change = ComplaintStatusChange(
        complaint_id=complaint.id,
        from_status=complaint.status,
        to_status=new_status,
        changed_by_id=actor_id,
    )
    db.session.add(change)
    complaint.status = new_status
    return change


def create_complaint(data: dict, actor: TeamMember) -> Complaint:
    """Create a complaint in status New.

    Returns:
        Complaint instance (already flushed).
    """
    cleaned = _clean_payload(data, partial=False)
    cleaned.pop("status", None)

    complaint = Complaint(status="New", created_by_id=actor.id, **cleaned)
    db.session.add(complaint)
    db.session.flush()

    write_log(
        action="CREATE_COMPLAINT",
        entity_type="complaint",
        entity_id=complaint.id,
        details={"title": complaint.title, "severity": complaint.severity},
        user_id=actor.id,
    )
    NotificationService.notify_users(
        title="New complaint",
        message=f"{actor.name} created complaint #{complaint.id}: {complaint.title}",
        event_type=f"create_complaint:{complaint.id}",
        exclude_user_id=actor.id,
    )
    _refresh()
    return complaint


def update_complaint(complaint: Complaint, data: dict, actor: TeamMember) -> dict:
    """Apply a partial update.

    A member holding only ``update_status`` may change the status and nothing
    else; reassignment needs ``edit_complaint`` or ``assign_complaint``.

    Returns:
        The ``{field: {"old", "new"}}`` diff that was applied.
    """
    cleaned = _clean_payload(data, partial=True)
    can_edit = has_permission(actor.id, "edit_complaint")

    if not can_edit:
        restricted = [
            f for f in cleaned
            if f not in ("status", "assigned_to_id")
        ]
        if restricted:
            raise PermissionDenied(["edit_complaint"], actor.id)
        if "status" in cleaned and not has_permission(actor.id, "update_status"):
            raise PermissionDenied(["edit_complaint", "update_status"], actor.id)
        if "assigned_to_id" in cleaned and not has_permission(actor.id, "assign_complaint"):
            raise PermissionDenied(["edit_complaint", "assign_complaint"], actor.id)

    changes = {}
    touched = False
    new_status = cleaned.pop("status", None)
    for field, value in cleaned.items():
        old = getattr(complaint, field)
        if old == value:
            continue
        touched = True
        if field in TRACKED_FIELDS:
            changes[field] = {"old": old, "new": value}
        setattr(complaint, field, value)

    if new_status is not None and new_status != complaint.status:
        changes["status"] = {"old": complaint.status, "new": new_status}
        _record_status_change(complaint, new_status, actor.id)

    if not changes and not touched:
        return changes

    db.session.flush()
    write_log(
        action="UPDATE_COMPLAINT",
        entity_type="complaint",
        entity_id=complaint.id,
        details={"changes": changes},
        user_id=actor.id,
    )

    if "status" in changes:
        message = (f"{actor.name} moved complaint #{complaint.id} from "
                   f"'{changes['status']['old']}' to '{changes['status']['new']}'")
    else:
        message = f"{actor.name} updated complaint #{complaint.id}"
    NotificationService.notify_users(
        title="Complaint updated",
        message=message,
        event_type=f"update_complaint:{complaint.id}",
        exclude_user_id=actor.id,
    )
    _refresh((f"/api/complaints/{complaint.id}",))
    return changes


def delete_complaint(complaint: Complaint, actor: TeamMember) -> None:
    complaint_id = complaint.id
    title = complaint.title
    db.session.delete(complaint)
    db.session.flush()
    write_log(
        action="DELETE_COMPLAINT",
        entity_type="complaint",
        entity_id=complaint_id,
        details={"title": title},
        user_id=actor.id,
    )
    NotificationService.notify_users(
        title="Complaint deleted",
        message=f"{actor.name} deleted complaint #{complaint_id}",
        event_type=f"delete_complaint:{complaint_id}",
        exclude_user_id=actor.id,
    )
    _refresh()


def bulk_update_status(ids, status, actor: TeamMember) -> dict:
    """Move several complaints to *status*, skipping those that cannot move.

    Returns:
        {"updated": n, "skipped": [ids]}
    """
    check_choice("status", status, COMPLAINT_STATUSES)
    if not ids:
        raise ValidationError("ids must be a non-empty list of complaint ids",
                              details={"ids": "required"})

    complaints = {c.id: c for c in Complaint.query.filter(Complaint.id.in_(ids)).all()}
    updated, skipped = [], []
    for cid in ids:
        complaint = complaints.get(cid)
        if complaint is None or complaint.status == status or not can_transition(complaint.status, status):
            skipped.append(cid)
            continue
        _record_status_change(complaint, status, actor.id)
        updated.append(cid)

    if updated:
        db.session.flush()
        write_log(
            action="BULK_UPDATE_STATUS",
            entity_type="complaint",
            details={"ids": updated, "status": status},
            user_id=actor.id,
        )
        NotificationService.notify_users(
            title="Complaints updated",
            message=f"{actor.name} moved {len(updated)} complaint(s) to '{status}'",
            event_type="bulk_update_status",
            exclude_user_id=actor.id,
        )
        _refresh()
    return {"updated": len(updated), "skipped": skipped}


def add_note(complaint: Complaint, text, actor: TeamMember) -> ComplaintNote:
    text = clean_str(text)
    if not text:
        raise ValidationError("text is required", details={"text": "required"})
    note = ComplaintNote(complaint_id=complaint.id, text=text, author_id=actor.id)
    db.session.add(note)
    db.session.flush()
    write_log(
        action="ADD_NOTE",
        entity_type="complaint",
        entity_id=complaint.id,
        details={"note_id": note.id},
        user_id=actor.id,
    )
    NotificationService.notify_users(
        title="New note",
        message=f"{actor.name} added a note to complaint \"{complaint.title}\"",
        event_type=f"update_complaint:{complaint.id}",
        exclude_user_id=actor.id,
    )
    _refresh((f"/api/complaints/{complaint.id}/notes",))
    return note


# ── Saved filters ────────────────────────────────────────────────────────


def list_saved_filters():
    return SavedFilter.query.order_by(SavedFilter.created_at.desc(), SavedFilter.id.desc()).all()


def create_saved_filter(data: dict, actor: TeamMember) -> SavedFilter:
    require_fields(data, ("name",))
    filters = data.get("filters")
    if not isinstance(filters, dict):
        raise ValidationError("filters must be an object", details={"filters": "object required"})
    saved = SavedFilter(name=clean_str(data["name"], max_len=120), filters=filters,
                        created_by_id=actor.id)
    db.session.add(saved)
    db.session.flush()
    return saved


def delete_saved_filter(filter_id) -> None:
    saved = db.session.get(SavedFilter, filter_id)
    if saved is None:
        raise NotFoundError("SavedFilter", filter_id)
    db.session.delete(saved)
