"""
Audit Blueprint — read-only access to the immutable activity log.

Endpoints:
    GET /api/logs   — newest first; filters action (prefix), entity_type,
                      entity_id, user_id; limit (default 100) / offset
"""

from flask import Blueprint, jsonify, request

from servicedesk.blueprints import paginate_query
from servicedesk.middleware.permission_required import require_permission
from servicedesk.models.audit import AuditLog

audit_bp = Blueprint("audit", __name__, url_prefix="/api")


@audit_bp.route("/logs", methods=["GET"])
@require_permission("view_logs")
def list_logs():
    q = AuditLog.query

    action = (request.args.get("action") or "").strip()
    if action:
        q = q.filter(AuditLog.action.startswith(action, autoescape=True))
    entity_type = request.args.get("entity_type")
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    entity_id = request.args.get("entity_id", type=int)
    if entity_id is not None:
        q = q.filter(AuditLog.entity_id == entity_id)
    user_id = request.args.get("user_id", type=int)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)

    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    items, total = paginate_query(q, default_limit=100, max_limit=500)
    return jsonify({"items": [log.to_dict() for log in items], "total": total})
