"""
Realtime hub — fan-out of ``{type, payload}`` frames to every open ``/ws`` socket.

Delivery is best-effort and at-most-once: a frame goes to the sockets that are
connected at send time, and a socket whose send raises is dropped from the hub.

Frames published while a request is running are held on ``g`` and released by
an ``after_request`` hook once the view has committed (status < 400), so a
client never refetches data that was rolled back.

Frame types:
    NOTIFICATION  — {"title", "message", "type"}
    REFRESH_DATA  — {"query_keys": [[...], ...]}  (client refetch hints)
"""

import json
import logging
import threading

from flask import g, has_request_context

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Process-local registry of connected WebSocket clients."""

    def __init__(self):
        self._clients = set()
        self._lock = threading.Lock()

    def register(self, ws) -> None:
        with self._lock:
            self._clients.add(ws)
        logger.debug("WebSocket client connected (%d open)", self.client_count)

    def unregister(self, ws) -> None:
        with self._lock:
            self._clients.discard(ws)

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def broadcast(self, message: dict) -> int:
        """Send *message* as JSON text to every open socket. Returns the delivery count."""
        text = json.dumps(message, default=str)
        with self._lock:
            clients = list(self._clients)

        delivered = 0
        for ws in clients:
            try:
                ws.send(text)
                delivered += 1
            except Exception as exc:
                logger.debug("Dropping WebSocket client after send failure: %s", exc)
                self.unregister(ws)
        return delivered


hub = RealtimeHub()


def publish(message: dict) -> None:
    """Queue *message* until the current request succeeds, or send it right away."""
    if has_request_context():
        outbox = g.setdefault("realtime_outbox", [])
        outbox.append(message)
        return
    hub.broadcast(message)


def notify_frame(title: str, message: str, event_type: str) -> None:
    publish({
        "type": "NOTIFICATION",
        "payload": {"title": title, "message": message, "type": event_type},
    })


def refresh_data(*query_keys) -> None:
    """Tell clients which API query keys went stale, e.g. ``refresh_data("/api/complaints")``."""
    keys = [list(k) if isinstance(k, (list, tuple)) else [k] for k in query_keys]
    publish({"type": "REFRESH_DATA", "payload": {"query_keys": keys}})


def init_realtime(app):
    """Register the hook that flushes queued frames after successful responses."""

    @app.after_request
    def _flush_realtime_outbox(response):
        outbox = g.pop("realtime_outbox", None)
        if outbox and response.status_code < 400:
            for message in outbox:
                hub.broadcast(message)
        return response
