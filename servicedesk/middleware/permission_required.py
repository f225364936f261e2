"""
Permission Decorators — RBAC guards for route protection.

Every guard first requires an authenticated member (``g.current_member`` set
by ``servicedesk.auth.init_auth``); without one the request ends with 401.
Permission checks go through the cached permission service, which reads the
central ``ROLE_PERMISSIONS`` table.

Usage:
    @bp.route("/complaints", methods=["POST"])
    @require_permission("create_complaint")
    def create_complaint():
        ...

    @bp.route("/complaints/<int:cid>", methods=["PUT"])
    @require_any_permission("edit_complaint", "update_status")
    def update_complaint(cid):
        ...
"""

import functools
import logging

from flask import g, jsonify

from servicedesk.services.permission_service import has_any_permission
from servicedesk.utils.errors import E

logger = logging.getLogger(__name__)


def _unauthenticated():
    return jsonify({"error": "Not authenticated"}), 401


def current_member():
    return getattr(g, "current_member", None)


def login_required(f):
    """Decorator: require any authenticated member."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_member() is None:
            return _unauthenticated()
        return f(*args, **kwargs)
    return decorated


def require_permission(codename: str):
    """
    Decorator: require the member to hold a specific permission.

    Admin holds every permission through the role table.
    """
    return require_any_permission(codename)


def require_any_permission(*codenames: str):
    """
    Decorator: require the member to hold at least ONE of the listed permissions.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            member = current_member()
            if member is None:
                return _unauthenticated()

            if not has_any_permission(member.id, codenames):
                logger.warning(
                    "Member %d (%s) denied: missing any of %s on %s",
                    member.id, member.role, codenames, f.__name__,
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": E.FORBIDDEN,
                    "required_any": list(codenames),
                }), 403

            return f(*args, **kwargs)
        return decorated
    return decorator
