"""
Team Blueprint — team member administration.

Endpoints:
    GET    /api/team-members        — list (no password hashes)
    POST   /api/team-members        — create (default password when omitted)
    PUT    /api/team-members/<id>   — partial update; role/permissions need manage_roles
    DELETE /api/team-members/<id>   — delete (not yourself)
"""

from flask import Blueprint, jsonify, request

from servicedesk.middleware.permission_required import current_member, require_permission
from servicedesk.services import team_service
from servicedesk.utils.helpers import db_commit_or_error

team_bp = Blueprint("team", __name__, url_prefix="/api/team-members")


@team_bp.route("", methods=["GET"])
@require_permission("view_users")
def list_members():
    return jsonify([m.to_dict() for m in team_service.list_members()])


@team_bp.route("", methods=["POST"])
@require_permission("create_user")
def create_member():
    data = request.get_json(silent=True) or {}
    member = team_service.create_member(data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(member.to_dict()), 201


@team_bp.route("/<int:member_id>", methods=["PUT"])
@require_permission("edit_user")
def update_member(member_id):
    member = team_service.get_member(member_id)
    data = request.get_json(silent=True) or {}
    team_service.update_member(member, data, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(member.to_dict())


@team_bp.route("/<int:member_id>", methods=["DELETE"])
@require_permission("delete_user")
def delete_member(member_id):
    member = team_service.get_member(member_id)
    team_service.delete_member(member, current_member())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Team member deleted"}), 200
