"""
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of every mutating action
      (``CREATE_COMPLAINT``, ``UPDATE_USER``, ``WEBHOOK_UPDATE_ORDER``, ...).
"""

import json
from datetime import datetime, timezone

from sqlalchemy import event

from servicedesk.models import db
from servicedesk.utils.helpers import isoformat


class AuditLog(db.Model):
    """
    One row per action.  ``details`` carries the action payload, for updates
    a ``{"changes": {field: {"old", "new"}}}`` diff.
    """

    __tablename__ = "logs"
    __table_args__ = (
        db.Index("idx_log_entity", "entity_type", "entity_id"),
        db.Index("idx_log_action", "action"),
        db.Index("idx_log_created", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("team_members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Acting member; NULL for system/webhook entries",
    )
    action = db.Column(db.String(60), nullable=False)
    entity_type = db.Column(db.String(40), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    details = db.Column(db.JSON, default=dict)
    ip_address = db.Column(db.String(64))
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("TeamMember")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details or {},
            "ip_address": self.ip_address,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise RuntimeError(f"Audit log rows are immutable (id={target.id})")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise RuntimeError(f"Audit log rows cannot be deleted (id={target.id})")


# ── Convenience writer ───────────────────────────────────────────────────────

def _json_safe(details: dict) -> dict:
    # Diffs may carry dates and datetimes
    return json.loads(json.dumps(details, default=str))


def write_log(
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    details: dict | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Actor and IP default to the current request's member and remote address.
    """
    if user_id is None or ip_address is None:
        from flask import g, has_request_context, request
        if has_request_context():
            if user_id is None:
                member = getattr(g, "current_member", None)
                user_id = member.id if member is not None else None
            if ip_address is None:
                ip_address = request.remote_addr

    log = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=_json_safe(details or {}),
        ip_address=ip_address,
    )
    db.session.add(log)
    db.session.flush()
    return log
