"""
Complaint domain models.

Models:
    - Complaint: customer complaint tracked through the status workflow
    - ComplaintNote: free-text note thread on a complaint
    - ComplaintStatusChange: one row per status move (history trail)
    - SavedFilter: named complaint-list filter presets
"""

from datetime import datetime, timezone

from servicedesk.models import db
from servicedesk.utils.helpers import isoformat

# ── Constants ────────────────────────────────────────────────────────────────

COMPLAINT_SOURCES = (
    "Social Media", "Google Play", "App Store", "App Support", "Field", "Phone", "Email",
)
COMPLAINT_TYPES = (
    "Technical", "Behavioral", "Price", "Delay", "Service Quality", "Payment", "App", "Other",
)
COMPLAINT_SEVERITIES = ("Normal", "Medium", "High", "Urgent")
COMPLAINT_STATUSES = (
    "New", "Under Review", "Transferred", "Pending Customer", "Resolved", "Closed", "Rejected",
)
RESOLVED_STATUSES = ("Resolved", "Closed")


def _now():
    return datetime.now(timezone.utc)


class Complaint(db.Model):
    __tablename__ = "complaints"
    __table_args__ = (
        db.Index("idx_complaint_status", "status"),
        db.Index("idx_complaint_created", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(30), nullable=False)
    type = db.Column(db.String(30), nullable=False)
    severity = db.Column(db.String(20), nullable=False, default="Normal")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    customer_name = db.Column(db.String(150), nullable=False)
    customer_phone = db.Column(db.String(30))
    location = db.Column(db.String(300))
    order_number = db.Column(db.String(60))
    attachments = db.Column(db.JSON, default=list)
    status = db.Column(db.String(30), nullable=False, default="New")

    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    technician_id = db.Column(
        db.Integer, db.ForeignKey("field_technicians.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    assigned_to = db.relationship("TeamMember", foreign_keys=[assigned_to_id])
    created_by = db.relationship("TeamMember", foreign_keys=[created_by_id])
    technician = db.relationship("FieldTechnician", foreign_keys=[technician_id])

    notes = db.relationship(
        "ComplaintNote", backref="complaint", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    status_changes = db.relationship(
        "ComplaintStatusChange", backref="complaint", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, notes_count=None):
        return {
            "id": self.id,
            "source": self.source,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "location": self.location,
            "order_number": self.order_number,
            "attachments": list(self.attachments or []),
            "status": self.status,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_name": self.assigned_to.name if self.assigned_to else None,
            "technician_id": self.technician_id,
            "technician_name": self.technician.name if self.technician else None,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by.name if self.created_by else None,
            "notes_count": notes_count if notes_count is not None else self.notes.count(),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Complaint {self.id}: {self.status} {self.title[:40]}>"


class ComplaintNote(db.Model):
    __tablename__ = "complaint_notes"

    id = db.Column(db.Integer, primary_key=True)
    complaint_id = db.Column(
        db.Integer, db.ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    author = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "complaint_id": self.complaint_id,
            "text": self.text,
            "author_id": self.author_id,
            "author_name": self.author.name if self.author else None,
            "created_at": isoformat(self.created_at),
        }


class ComplaintStatusChange(db.Model):
    __tablename__ = "complaint_status_changes"

    id = db.Column(db.Integer, primary_key=True)
    complaint_id = db.Column(
        db.Integer, db.ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    from_status = db.Column(db.String(30))
    to_status = db.Column(db.String(30), nullable=False)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    changed_at = db.Column(db.DateTime(timezone=True), default=_now)

    changed_by = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "complaint_id": self.complaint_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by_id": self.changed_by_id,
            "changed_by_name": self.changed_by.name if self.changed_by else None,
            "changed_at": isoformat(self.changed_at),
        }


class SavedFilter(db.Model):
    __tablename__ = "saved_filters"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    filters = db.Column(db.JSON, nullable=False, default=dict)
    created_by_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "filters": self.filters or {},
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
        }
