"""
WebSocket Blueprint — realtime push channel.

    /ws                 — session cookie or ?token=<jwt>

Server → client frames are ``{"type", "payload"}`` JSON text published through
``servicedesk.services.realtime.hub``.  The only client message handled is
``ping``, answered with ``{"type": "PONG"}``.
"""

import json
import logging

from flask import Blueprint, g, request
from simple_websocket import ConnectionClosed

from servicedesk import sock
from servicedesk.auth import load_member
from servicedesk.services.jwt_service import member_id_from_token
from servicedesk.services.realtime import hub

logger = logging.getLogger(__name__)

ws_bp = Blueprint("ws", __name__)

POLICY_VIOLATION = 1008
PONG = json.dumps({"type": "PONG"})


def socket_member():
    """Member behind the upgrade request: session cookie first, then ``?token=``."""
    member = getattr(g, "current_member", None)
    if member is not None:
        return member
    token = request.args.get("token")
    if not token:
        return None
    return load_member(member_id_from_token(token))


def serve_socket(ws):
    """Hold one client connection open until the peer goes away."""
    member = socket_member()
    if member is None:
        logger.info("Refused unauthenticated WebSocket from %s", request.remote_addr)
        ws.close(reason=POLICY_VIOLATION, message="Authentication required")
        return

    hub.register(ws)
    try:
        while True:
            message = ws.receive()
            if message is None:
                continue
            if isinstance(message, str) and message.strip().lower() == "ping":
                ws.send(PONG)
    except ConnectionClosed:
        logger.debug("WebSocket closed for member %d", member.id)
    finally:
        hub.unregister(ws)


@sock.route("/ws", bp=ws_bp)
def realtime_socket(ws):
    serve_socket(ws)
