"""
Complaint Blueprint — complaint CRUD, workflow, notes and saved filters.

Endpoints:
    GET    /api/complaints                       — list (filters + limit/offset)
    POST   /api/complaints                       — create (status New)
    GET    /api/complaints/<id>                  — detail
    PUT    /api/complaints/<id>                  — partial update / status move
    DELETE /api/complaints/<id>                  — delete with notes and history
    POST   /api/complaints/bulk-update           — move many complaints to one status
    GET    /api/complaints/<id>/notes            — notes, newest first
    POST   /api/complaints/<id>/notes            — add note
    GET    /api/complaints/<id>/status-history   — status moves, oldest first
    GET    /api/saved-filters                    — saved list filters
    POST   /api/saved-filters
    DELETE /api/saved-filters/<id>
"""

import logging

from flask import Blueprint, jsonify, request

from servicedesk.blueprints import paginate_query
from servicedesk.middleware.permission_required import (
    current_member,
    require_any_permission,
    require_permission,
)
from servicedesk.services import complaint_service
from servicedesk.utils.helpers import db_commit_or_error, parse_id_list

logger = logging.getLogger(__name__)

complaint_bp = Blueprint("complaints", __name__, url_prefix="/api")


@complaint_bp.route("/complaints", methods=["GET"])
@require_permission("view_complaints")
def list_complaints():
    query = complaint_service.filtered_query(request.args)
    items, total = paginate_query(query)
    counts = complaint_service.notes_counts([c.id for c in items])
    return jsonify({
        "items": [c.to_dict(notes_count=counts.get(c.id, 0)) for c in items],
        "total": total,
    })


@complaint_bp.route("/complaints", methods=["POST"])
@require_permission("create_complaint")
def create_complaint():
    data = request.get_json(silent=True) or {}
    complaint = complaint_service.create_complaint(data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(complaint.to_dict(notes_count=0)), 201


@complaint_bp.route("/complaints/<int:complaint_id>", methods=["GET"])
@require_permission("view_complaints")
def get_complaint(complaint_id):
    complaint = complaint_service.get_complaint(complaint_id)
    count = complaint_service.notes_counts([complaint.id]).get(complaint.id, 0)
    return jsonify(complaint.to_dict(notes_count=count))


@complaint_bp.route("/complaints/<int:complaint_id>", methods=["PUT"])
@require_any_permission("edit_complaint", "update_status", "assign_complaint")
def update_complaint(complaint_id):
    complaint = complaint_service.get_complaint(complaint_id)
    data = request.get_json(silent=True) or {}
    complaint_service.update_complaint(complaint, data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(complaint.to_dict())


@complaint_bp.route("/complaints/<int:complaint_id>", methods=["DELETE"])
@require_permission("delete_complaint")
def delete_complaint(complaint_id):
    complaint = complaint_service.get_complaint(complaint_id)
    complaint_service.delete_complaint(complaint, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Complaint deleted"}), 200


@complaint_bp.route("/complaints/bulk-update", methods=["POST"])
@require_any_permission("update_status", "edit_complaint")
def bulk_update():
    """Body: { "ids": [1, 2, 3], "status": "Resolved" }"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("ids"), list):
        return jsonify({"error": "ids must be a list"}), 400
    result = complaint_service.bulk_update_status(
        parse_id_list(data["ids"]), data.get("status"), current_member(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


# ── Notes ────────────────────────────────────────────────────────────────


@complaint_bp.route("/complaints/<int:complaint_id>/notes", methods=["GET"])
@require_any_permission("view_complaints", "manage_notes")
def list_notes(complaint_id):
    complaint = complaint_service.get_complaint(complaint_id)
    return jsonify([n.to_dict() for n in complaint_service.list_notes(complaint)])


@complaint_bp.route("/complaints/<int:complaint_id>/notes", methods=["POST"])
@require_permission("manage_notes")
def add_note(complaint_id):
    complaint = complaint_service.get_complaint(complaint_id)
    data = request.get_json(silent=True) or {}
    note = complaint_service.add_note(complaint, data.get("text"), current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(note.to_dict()), 201


@complaint_bp.route("/complaints/<int:complaint_id>/status-history", methods=["GET"])
@require_permission("view_complaints")
def status_history(complaint_id):
    complaint = complaint_service.get_complaint(complaint_id)
    return jsonify([h.to_dict() for h in complaint_service.status_history(complaint)])


# ── Saved filters ────────────────────────────────────────────────────────


@complaint_bp.route("/saved-filters", methods=["GET"])
@require_permission("view_complaints")
def list_saved_filters():
    return jsonify([f.to_dict() for f in complaint_service.list_saved_filters()])


@complaint_bp.route("/saved-filters", methods=["POST"])
@require_permission("view_complaints")
def create_saved_filter():
    data = request.get_json(silent=True) or {}
    saved = complaint_service.create_saved_filter(data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(saved.to_dict()), 201


@complaint_bp.route("/saved-filters/<int:filter_id>", methods=["DELETE"])
@require_permission("view_complaints")
def delete_saved_filter(filter_id):
    complaint_service.delete_saved_filter(filter_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Filter deleted"}), 200
