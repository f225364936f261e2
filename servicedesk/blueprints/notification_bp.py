"""
Notification Blueprint — the caller's in-app notifications.

Endpoints:
    GET  /api/notifications                 — latest first (unread_only, limit, offset)
    GET  /api/notifications/unread-count
    POST /api/notifications/<id>/read
    POST /api/notifications/read-all
"""

from flask import Blueprint, jsonify, request

from servicedesk.middleware.permission_required import current_member, login_required
from servicedesk.services.notification import NotificationService
from servicedesk.utils.validation import as_bool

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


@notification_bp.route("", methods=["GET"])
@login_required
def list_notifications():
    limit = min(max(request.args.get("limit", DEFAULT_LIMIT, type=int), 1), MAX_LIMIT)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_member(
        current_member().id,
        unread_only=as_bool(request.args.get("unread_only")),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/unread-count", methods=["GET"])
@login_required
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_member().id)})


@notification_bp.route("/<int:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_member().id)
    if notif is None:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    return jsonify({"updated": NotificationService.mark_all_read(current_member().id)})
