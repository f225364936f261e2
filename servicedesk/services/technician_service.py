"""Field technician service — roster CRUD and evaluation intake.

Transaction policy: flush(), never commit(); the route handler commits.
"""
import logging

from sqlalchemy import func

from servicedesk.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from servicedesk.models import db
from servicedesk.models.audit import write_log
from servicedesk.models.complaint import Complaint
from servicedesk.models.service_request import ServiceRequest
from servicedesk.models.team import ROLE_ADMIN, ROLE_SUPERVISOR, TeamMember
from servicedesk.models.technician import (
    BEHAVIOR_FIELDS,
    DETAILED_RATING_FIELDS,
    LEGACY_RATING_FIELDS,
    TECHNICIAN_LEVELS,
    TECHNICIAN_STATUSES,
    DetailedEvaluation,
    Evaluation,
    FieldTechnician,
)
from servicedesk.services import realtime
from servicedesk.services.notification import NotificationService
from servicedesk.utils.helpers import parse_date
from servicedesk.utils.phone import normalize_phone
from servicedesk.utils.validation import (
    as_bool,
    check_choice,
    check_rating,
    clean_str,
    optional_id,
    require_fields,
)

logger = logging.getLogger(__name__)

TECH_QUERY_KEYS = (("/api/field-technicians",), ("/api/technicians",))
EVAL_QUERY_KEYS = (("/api/evaluations/stats",),)


# ── Queries ──────────────────────────────────────────────────────────────


def get_technician(technician_id) -> FieldTechnician:
    tech = db.session.get(FieldTechnician, technician_id)
    if tech is None:
        raise NotFoundError("FieldTechnician", technician_id)
    return tech


def filtered_query(args):
    q = FieldTechnician.query
    status = args.get("status")
    if status:
        q = q.filter(FieldTechnician.status == status)
    supervisor_id = args.get("supervisor_id", type=int)
    if supervisor_id:
        q = q.filter(FieldTechnician.supervisor_id == supervisor_id)
    return q.order_by(FieldTechnician.name, FieldTechnician.id)


def complaint_counts(technician_ids) -> dict[int, int]:
    if not technician_ids:
        return {}
    rows = (
        db.session.query(Complaint.technician_id, func.count(Complaint.id))
        .filter(Complaint.technician_id.in_(technician_ids))
        .group_by(Complaint.technician_id)
        .all()
    )
    return {tid: count for tid, count in rows}


def evaluation_counts(technician_ids) -> dict[int, int]:
    if not technician_ids:
        return {}
    rows = (
        db.session.query(DetailedEvaluation.technician_id, func.count(DetailedEvaluation.id))
        .filter(DetailedEvaluation.technician_id.in_(technician_ids))
        .group_by(DetailedEvaluation.technician_id)
        .all()
    )
    return {tid: count for tid, count in rows}


def list_detailed_evaluations(tech: FieldTechnician):
    return (
        tech.detailed_evaluations
        .order_by(DetailedEvaluation.created_at.desc(), DetailedEvaluation.id.desc())
        .all()
    )


def list_evaluations(tech: FieldTechnician):
    return tech.evaluations.order_by(Evaluation.created_at.desc(), Evaluation.id.desc()).all()


def legacy_stats(tech: FieldTechnician) -> dict:
    """{average_rating, total_evaluations} over legacy quick ratings."""
    avg, total = (
        db.session.query(func.avg(Evaluation.rating_overall), func.count(Evaluation.id))
        .filter(Evaluation.technician_id == tech.id)
        .one()
    )
    return {
        "technician_id": tech.id,
        "average_rating": round(float(avg), 1) if avg is not None else 0,
        "total_evaluations": total,
    }


# ── Roster mutations ─────────────────────────────────────────────────────


def _check_supervisor(value):
    supervisor_id = optional_id("supervisor_id", value)
    if supervisor_id is None:
        return None
    supervisor = db.session.get(TeamMember, supervisor_id)
    if supervisor is None or supervisor.role not in (ROLE_SUPERVISOR, ROLE_ADMIN):
        raise ValidationError("supervisor_id must reference a Supervisor",
                              details={"supervisor_id": "not a supervisor"})
    return supervisor_id


def _clean_technician(data: dict, *, partial: bool) -> dict:
    if not partial:
        require_fields(data, ("name", "phone"))

    cleaned = {}
    if "name" in data:
        name = clean_str(data["name"], max_len=150)
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        cleaned["name"] = name
    if "phone" in data:
        phone = normalize_phone(data["phone"])
        if not phone:
            raise ValidationError("phone cannot be empty", details={"phone": "required"})
        cleaned["phone"] = phone
    for field in ("specialization", "area", "contract_type", "notes"):
        if field in data:
            cleaned[field] = clean_str(data[field]) or None
    if data.get("level"):
        cleaned["level"] = check_choice("level", data["level"], TECHNICIAN_LEVELS)
    if "join_date" in data:
        cleaned["join_date"] = parse_date(data["join_date"])
    if "status" in data:
        cleaned["status"] = check_choice("status", data["status"], TECHNICIAN_STATUSES)
    if "supervisor_id" in data:
        cleaned["supervisor_id"] = _check_supervisor(data["supervisor_id"])
    return cleaned


def create_technician(data: dict, actor: TeamMember) -> FieldTechnician:
    cleaned = _clean_technician(data, partial=False)
    tech = FieldTechnician(**cleaned)
    db.session.add(tech)
    db.session.flush()
    write_log(
        action="CREATE_TECHNICIAN",
        entity_type="field_technician",
        entity_id=tech.id,
        details={"name": tech.name, "phone": tech.phone},
        user_id=actor.id,
    )
    realtime.refresh_data(*TECH_QUERY_KEYS)
    return tech


def update_technician(tech: FieldTechnician, data: dict, actor: TeamMember) -> dict:
    cleaned = _clean_technician(data, partial=True)
    changes = {}
    for field, value in cleaned.items():
        old = getattr(tech, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(tech, field, value)
    if changes:
        db.session.flush()
        write_log(
            action="UPDATE_TECHNICIAN",
            entity_type="field_technician",
            entity_id=tech.id,
            details={"changes": changes},
            user_id=actor.id,
        )
        realtime.refresh_data(*TECH_QUERY_KEYS)
    return changes


def set_technician_status(tech: FieldTechnician, status, actor: TeamMember) -> FieldTechnician:
    status = check_choice("status", status, TECHNICIAN_STATUSES)
    if status != tech.status:
        old = tech.status
        tech.status = status
        db.session.flush()
        write_log(
            action="UPDATE_TECHNICIAN_STATUS",
            entity_type="field_technician",
            entity_id=tech.id,
            details={"old": old, "new": status},
            user_id=actor.id,
        )
        realtime.refresh_data(*TECH_QUERY_KEYS)
    return tech


def delete_technician(tech: FieldTechnician, actor: TeamMember) -> None:
    """Remove a technician, their evaluations, and every complaint/request link."""
    tech_id, name = tech.id, tech.name
    Complaint.query.filter_by(technician_id=tech_id).update(
        {"technician_id": None}, synchronize_session="fetch")
    ServiceRequest.query.filter_by(technician_id=tech_id).update(
        {"technician_id": None}, synchronize_session="fetch")
    db.session.delete(tech)
    db.session.flush()
    write_log(
        action="DELETE_TECHNICIAN",
        entity_type="field_technician",
        entity_id=tech_id,
        details={"name": name},
        user_id=actor.id,
    )
    realtime.refresh_data(*(TECH_QUERY_KEYS + EVAL_QUERY_KEYS))


# ── Evaluations ──────────────────────────────────────────────────────────


def _evaluable_technician(technician_id) -> FieldTechnician:
    tech_id = optional_id("technician_id", technician_id)
    if tech_id is None:
        raise ValidationError("technician_id is required", details={"technician_id": "required"})
    tech = get_technician(tech_id)
    if tech.is_suspended:
        raise ValidationError("Cannot evaluate a suspended technician",
                              details={"technician_id": "suspended"})
    return tech


def create_detailed_evaluation(data: dict, actor: TeamMember) -> DetailedEvaluation:
    """Record a per-visit evaluation.

    Supervisors may only evaluate technicians assigned to them.
    """
    tech = _evaluable_technician(data.get("technician_id"))
    if actor.role == ROLE_SUPERVISOR and tech.supervisor_id != actor.id:
        logger.warning("Supervisor %d tried to evaluate technician %d outside their team",
                       actor.id, tech.id)
        raise PermissionDenied(["supervisor_of_technician"], actor.id)

    fields = {f: check_rating(f, data.get(f)) for f in DETAILED_RATING_FIELDS}
    fields.update({f: as_bool(data.get(f)) for f in BEHAVIOR_FIELDS})

    evaluation = DetailedEvaluation(
        technician_id=tech.id,
        evaluator_id=actor.id,
        order_number=clean_str(data.get("order_number")) or None,
        order_date=parse_date(data.get("order_date")),
        service_type=clean_str(data.get("service_type")) or None,
        arrival_time=clean_str(data.get("arrival_time")) or None,
        completion_time=clean_str(data.get("completion_time")) or None,
        first_time_fixed=as_bool(data.get("first_time_fixed"), default=True),
        technical_errors=clean_str(data.get("technical_errors")) or None,
        behavioral_notes=clean_str(data.get("behavioral_notes")) or None,
        needs_training=as_bool(data.get("needs_training")),
        training_type=clean_str(data.get("training_type")) or None,
        customer_rating=check_rating("customer_rating", data.get("customer_rating"), required=False),
        customer_complained=as_bool(data.get("customer_complained")),
        customer_rehire=as_bool(data.get("customer_rehire"), default=True),
        **fields,
    )
    db.session.add(evaluation)
    db.session.flush()

    write_log(
        action="CREATE_DETAILED_EVALUATION",
        entity_type="detailed_evaluation",
        entity_id=evaluation.id,
        details={"technician_id": tech.id, "overall": round(evaluation.overall_score, 2)},
        user_id=actor.id,
    )
    NotificationService.notify_admins(
        title="New technician evaluation",
        message=f"{actor.name} evaluated {tech.name} ({evaluation.overall_score:.2f}/5)",
        event_type=f"create_evaluation:{evaluation.id}",
        exclude_user_id=actor.id,
    )
    realtime.refresh_data(
        *EVAL_QUERY_KEYS, (f"/api/field-technicians/{tech.id}/evaluations/detailed",),
    )
    return evaluation


def create_evaluation(data: dict, actor: TeamMember) -> Evaluation:
    """Record a legacy quick rating (four 1-5 scores)."""
    tech = _evaluable_technician(data.get("technician_id"))
    complaint_id = optional_id("complaint_id", data.get("complaint_id"))
    if complaint_id is not None and db.session.get(Complaint, complaint_id) is None:
        raise NotFoundError("Complaint", complaint_id)

    evaluation = Evaluation(
        technician_id=tech.id,
        complaint_id=complaint_id,
        evaluator_id=actor.id,
        notes=clean_str(data.get("notes")) or None,
        **{f: check_rating(f, data.get(f)) for f in LEGACY_RATING_FIELDS},
    )
    db.session.add(evaluation)
    db.session.flush()

    write_log(
        action="CREATE_EVALUATION",
        entity_type="evaluation",
        entity_id=evaluation.id,
        details={"technician_id": tech.id, "rating_overall": evaluation.rating_overall},
        user_id=actor.id,
    )
    NotificationService.notify_admins(
        title="New technician rating",
        message=f"{actor.name} rated {tech.name} {evaluation.rating_overall}/5",
        event_type=f"create_evaluation:{evaluation.id}",
        exclude_user_id=actor.id,
    )
    realtime.refresh_data((f"/api/field-technicians/{tech.id}/evaluations",))
    return evaluation
