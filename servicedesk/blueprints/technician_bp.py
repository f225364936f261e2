"""
Technician Blueprint — field technician roster, evaluations and stats.

Endpoints:
    GET    /api/field-technicians                           — roster with counts
    POST   /api/field-technicians                           — add technician
    GET    /api/field-technicians/<id>
    PUT    /api/field-technicians/<id>
    PATCH  /api/field-technicians/<id>/status               — Active / Suspended
    DELETE /api/field-technicians/<id>
    GET    /api/technicians                                 — short picker list
    POST   /api/evaluations/detailed                        — per-visit evaluation
    GET    /api/field-technicians/<id>/evaluations/detailed
    POST   /api/evaluations                                 — quick rating
    GET    /api/field-technicians/<id>/evaluations
    GET    /api/field-technicians/<id>/stats                — quick-rating average
    GET    /api/evaluations/stats                           — per-technician performance
"""

from flask import Blueprint, jsonify, request

from servicedesk.middleware.permission_required import (
    current_member,
    require_any_permission,
    require_permission,
)
from servicedesk.models.technician import FieldTechnician
from servicedesk.services import technician_service
from servicedesk.services.evaluation_stats import technician_stats
from servicedesk.utils.helpers import db_commit_or_error

technician_bp = Blueprint("technicians", __name__, url_prefix="/api")


def _with_counts(techs):
    ids = [t.id for t in techs]
    complaints = technician_service.complaint_counts(ids)
    evaluations = technician_service.evaluation_counts(ids)
    return [
        t.to_dict(complaint_count=complaints.get(t.id, 0), evaluation_count=evaluations.get(t.id, 0))
        for t in techs
    ]


# ── Roster ───────────────────────────────────────────────────────────────


@technician_bp.route("/field-technicians", methods=["GET"])
@require_any_permission("view_technicians", "view_evaluations_page")
def list_field_technicians():
    techs = technician_service.filtered_query(request.args).all()
    return jsonify(_with_counts(techs))


@technician_bp.route("/technicians", methods=["GET"])
@require_any_permission("view_technicians", "view_complaints", "view_requests")
def list_technicians_short():
    techs = FieldTechnician.query.order_by(FieldTechnician.name, FieldTechnician.id).all()
    return jsonify([t.to_summary() for t in techs])


@technician_bp.route("/field-technicians", methods=["POST"])
@require_permission("manage_technicians")
def create_technician():
    data = request.get_json(silent=True) or {}
    tech = technician_service.create_technician(data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(tech.to_dict(complaint_count=0, evaluation_count=0)), 201


@technician_bp.route("/field-technicians/<int:tech_id>", methods=["GET"])
@require_any_permission("view_technicians", "view_evaluations_page")
def get_technician(tech_id):
    return jsonify(_with_counts([technician_service.get_technician(tech_id)])[0])


@technician_bp.route("/field-technicians/<int:tech_id>", methods=["PUT"])
@require_permission("manage_technicians")
def update_technician(tech_id):
    tech = technician_service.get_technician(tech_id)
    data = request.get_json(silent=True) or {}
    technician_service.update_technician(tech, data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(_with_counts([tech])[0])


@technician_bp.route("/field-technicians/<int:tech_id>/status", methods=["PATCH"])
@require_permission("manage_technicians")
def set_technician_status(tech_id):
    tech = technician_service.get_technician(tech_id)
    data = request.get_json(silent=True) or {}
    technician_service.set_technician_status(tech, data.get("status"), current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(_with_counts([tech])[0])


@technician_bp.route("/field-technicians/<int:tech_id>", methods=["DELETE"])
@require_permission("manage_technicians")
def delete_technician(tech_id):
    tech = technician_service.get_technician(tech_id)
    technician_service.delete_technician(tech, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Technician deleted"}), 200


# ── Evaluations ──────────────────────────────────────────────────────────


@technician_bp.route("/evaluations/detailed", methods=["POST"])
@require_permission("create_evaluation")
def create_detailed_evaluation():
    data = request.get_json(silent=True) or {}
    evaluation = technician_service.create_detailed_evaluation(data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(evaluation.to_dict()), 201


@technician_bp.route("/field-technicians/<int:tech_id>/evaluations/detailed", methods=["GET"])
@require_permission("view_evaluations")
def list_detailed_evaluations(tech_id):
    tech = technician_service.get_technician(tech_id)
    return jsonify([e.to_dict() for e in technician_service.list_detailed_evaluations(tech)])


@technician_bp.route("/evaluations", methods=["POST"])
@require_any_permission("create_evaluation", "create_complaint")
def create_evaluation():
    data = request.get_json(silent=True) or {}
    evaluation = technician_service.create_evaluation(data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(evaluation.to_dict()), 201


@technician_bp.route("/field-technicians/<int:tech_id>/evaluations", methods=["GET"])
@require_permission("view_evaluations")
def list_evaluations(tech_id):
    tech = technician_service.get_technician(tech_id)
    return jsonify([e.to_dict() for e in technician_service.list_evaluations(tech)])


@technician_bp.route("/field-technicians/<int:tech_id>/stats", methods=["GET"])
@require_permission("view_evaluations")
def technician_rating_stats(tech_id):
    tech = technician_service.get_technician(tech_id)
    return jsonify(technician_service.legacy_stats(tech))


@technician_bp.route("/evaluations/stats", methods=["GET"])
@require_permission("view_evaluations")
def evaluation_stats():
    return jsonify(technician_stats(viewer=current_member()))
