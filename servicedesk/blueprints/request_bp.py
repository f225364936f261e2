"""
Service Request Blueprint — scheduled customer visits.

Endpoints:
    GET    /api/requests                        — list (filters + limit/offset)
    POST   /api/requests                        — create
    GET    /api/requests/stats                  — headline numbers
    GET    /api/requests/<id>
    PUT    /api/requests/<id>                   — descriptive fields
    PATCH  /api/requests/<id>/status            — status move (+ completion timing)
    PATCH  /api/requests/<id>/technician        — (re)assign, null to unassign
    DELETE /api/requests/<id>
    GET    /api/requests/<id>/notes
    POST   /api/requests/<id>/notes
    GET    /api/requests/<id>/status-history
    GET    /api/requests/<id>/assignments
"""

from flask import Blueprint, jsonify, request

from servicedesk.blueprints import paginate_query
from servicedesk.middleware.permission_required import (
    current_member,
    require_any_permission,
    require_permission,
)
from servicedesk.services import service_request_service as requests_svc
from servicedesk.utils.helpers import db_commit_or_error

request_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


@request_bp.route("", methods=["GET"])
@require_permission("view_requests")
def list_requests():
    items, total = paginate_query(requests_svc.filtered_query(request.args))
    return jsonify({"items": [r.to_dict() for r in items], "total": total})


@request_bp.route("", methods=["POST"])
@require_permission("create_request")
def create_request():
    data = request.get_json(silent=True) or {}
    actor = current_member()
    req = requests_svc.create_request(data, actor)
    requests_svc.announce_created(req, actor)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(req.to_dict()), 201


@request_bp.route("/stats", methods=["GET"])
@require_permission("view_requests_stats")
def request_stats():
    return jsonify(requests_svc.request_stats())


@request_bp.route("/<int:request_id>", methods=["GET"])
@require_permission("view_requests")
def get_request(request_id):
    return jsonify(requests_svc.get_request(request_id).to_dict())


@request_bp.route("/<int:request_id>", methods=["PUT"])
@require_permission("edit_request")
def update_request(request_id):
    req = requests_svc.get_request(request_id)
    data = request.get_json(silent=True) or {}
    requests_svc.update_request(req, data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(req.to_dict())


@request_bp.route("/<int:request_id>/status", methods=["PATCH"])
@require_any_permission("manage_requests", "edit_request")
def change_status(request_id):
    req = requests_svc.get_request(request_id)
    data = request.get_json(silent=True) or {}
    requests_svc.change_status(req, data.get("status"), current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(req.to_dict())


@request_bp.route("/<int:request_id>/technician", methods=["PATCH"])
@require_any_permission("manage_requests", "edit_request")
def assign_technician(request_id):
    req = requests_svc.get_request(request_id)
    data = request.get_json(silent=True) or {}
    if "technician_id" not in data:
        return jsonify({"error": "technician_id is required (null to unassign)"}), 400
    requests_svc.assign_technician(req, data["technician_id"], current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(req.to_dict())


@request_bp.route("/<int:request_id>", methods=["DELETE"])
@require_permission("delete_request")
def delete_request(request_id):
    req = requests_svc.get_request(request_id)
    requests_svc.delete_request(req, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Service request deleted"}), 200


# ── History & notes ──────────────────────────────────────────────────────


@request_bp.route("/<int:request_id>/notes", methods=["GET"])
@require_permission("view_requests")
def list_notes(request_id):
    req = requests_svc.get_request(request_id)
    return jsonify([n.to_dict() for n in requests_svc.list_notes(req)])


@request_bp.route("/<int:request_id>/notes", methods=["POST"])
@require_any_permission("edit_request", "manage_requests")
def add_note(request_id):
    req = requests_svc.get_request(request_id)
    data = request.get_json(silent=True) or {}
    note = requests_svc.add_note(req, data.get("text"), current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(note.to_dict()), 201


@request_bp.route("/<int:request_id>/status-history", methods=["GET"])
@require_permission("view_requests")
def status_history(request_id):
    req = requests_svc.get_request(request_id)
    return jsonify([h.to_dict() for h in requests_svc.status_history(req)])


@request_bp.route("/<int:request_id>/assignments", methods=["GET"])
@require_permission("view_requests")
def assignments(request_id):
    req = requests_svc.get_request(request_id)
    return jsonify([a.to_dict() for a in requests_svc.assignment_history(req)])
