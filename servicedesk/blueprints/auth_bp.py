"""
Auth Blueprint — session login and the permission table for the client.

  POST /api/login             — Email + password → session cookie (+ bearer token)
  POST /api/logout            — Clear the session
  GET  /api/user              — Current member with effective permissions
  GET  /api/permissions       — Catalog, role defaults and the caller's effective set
  GET  /api/users/supervisors — Supervisors, for technician assignment pickers
"""

import logging

from flask import Blueprint, jsonify, request

from servicedesk.auth import login_member, logout_member
from servicedesk.middleware.permission_required import current_member, login_required
from servicedesk.services import team_service
from servicedesk.services.jwt_service import generate_access_token
from servicedesk.services.permission_service import get_member_permissions, permission_matrix

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api")


def _member_payload(member):
    data = member.to_dict()
    data["permissions"] = sorted(get_member_permissions(member.id))
    return data


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password.

    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    member = team_service.authenticate(email, password)
    if member is None:
        logger.warning("Failed login for %s from %s", email, request.remote_addr)
        return jsonify({"error": "Invalid email or password"}), 401

    login_member(member)
    payload = _member_payload(member)
    payload["access_token"] = generate_access_token(member.id, member.role)
    logger.info("Member %d logged in", member.id)
    return jsonify(payload), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_member()
    return jsonify({"message": "Logged out"}), 200


@auth_bp.route("/user", methods=["GET"])
@login_required
def me():
    return jsonify(_member_payload(current_member())), 200


@auth_bp.route("/permissions", methods=["GET"])
@login_required
def permissions():
    data = permission_matrix()
    data["effective"] = sorted(get_member_permissions(current_member().id))
    return jsonify(data), 200


@auth_bp.route("/users/supervisors", methods=["GET"])
@login_required
def supervisors():
    return jsonify([m.to_dict() for m in team_service.list_supervisors()]), 200
