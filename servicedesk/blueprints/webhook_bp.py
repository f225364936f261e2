"""
Webhook Blueprint — orders pushed by the ordering platform.

Endpoints:
    POST /api/webhooks/orders   — X-API-Key auth; upsert by order_reference_no
"""

import logging

from flask import Blueprint, jsonify, request

from servicedesk.services import webhook_service
from servicedesk.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/api/webhooks")


@webhook_bp.route("/orders", methods=["POST"])
def orders():
    try:
        webhook_service.verify_api_key(request.headers.get("X-API-Key"))
    except webhook_service.WebhookAuthError as e:
        logger.warning("Rejected orders webhook from %s: %s", request.remote_addr, e)
        return jsonify({"status": "error", "message": str(e)}), e.status

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"status": "error", "message": "JSON object body required"}), 400

    req, created = webhook_service.upsert_order(data)
    err = db_commit_or_error()
    if err:
        return err

    message = "Order created" if created else "Order updated"
    return jsonify({
        "status": "success",
        "message": message,
        "data": req.to_dict(),
    }), 201 if created else 200
