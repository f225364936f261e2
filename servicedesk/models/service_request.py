"""
Service request domain models.

Models:
    - ServiceRequest: scheduled customer visit, optionally assigned to a technician
    - ServiceRequestNote: note thread on a request
    - ServiceRequestStatusChange: status history
    - ServiceRequestAssignment: technician reassignment history
"""

from datetime import datetime, timezone

from servicedesk.models import db
from servicedesk.utils.helpers import isoformat

REQUEST_STATUSES = ("New", "In Progress", "Completed", "On Hold", "Cancelled")
REQUEST_COMPLETED = "Completed"
PAYMENT_METHODS = ("Cash", "Online")


def _now():
    return datetime.now(timezone.utc)


class ServiceRequest(db.Model):
    __tablename__ = "service_requests"
    __table_args__ = (
        db.Index("idx_request_status", "status"),
        db.Index("idx_request_created", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(60), unique=True, nullable=False)
    customer_name = db.Column(db.String(150), nullable=False)
    customer_phone = db.Column(db.String(30))
    location = db.Column(db.String(300))
    location_coordinates = db.Column(db.String(300))
    details = db.Column(db.Text)
    request_date = db.Column(db.Date)
    start_time = db.Column(db.String(20))
    end_time = db.Column(db.String(20))
    status = db.Column(db.String(30), nullable=False, default="New")
    payment_method = db.Column(db.String(20), nullable=False, default="Cash")
    technician_id = db.Column(
        db.Integer, db.ForeignKey("field_technicians.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    completed_at = db.Column(db.DateTime(timezone=True))
    execution_duration = db.Column(db.Integer, comment="Minutes from creation to completion")
    created_by_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    technician = db.relationship("FieldTechnician")

    notes = db.relationship(
        "ServiceRequestNote", backref="request", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    status_changes = db.relationship(
        "ServiceRequestStatusChange", backref="request", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    assignments = db.relationship(
        "ServiceRequestAssignment", backref="request", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        tech = self.technician
        supervisor = tech.supervisor if tech else None
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "location": self.location,
            "location_coordinates": self.location_coordinates,
            "details": self.details,
            "request_date": self.request_date.isoformat() if self.request_date else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "payment_method": self.payment_method,
            "technician_id": self.technician_id,
            "technician_name": tech.name if tech else None,
            "technician_phone": tech.phone if tech else None,
            "technician_specialization": tech.specialization if tech else None,
            "supervisor_name": supervisor.name if supervisor else None,
            "completed_at": isoformat(self.completed_at),
            "execution_duration": self.execution_duration,
            "created_by_id": self.created_by_id,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<ServiceRequest {self.id}: {self.order_number} ({self.status})>"


class ServiceRequestNote(db.Model):
    __tablename__ = "service_request_notes"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    author = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "text": self.text,
            "author_id": self.author_id,
            "author_name": self.author.name if self.author else None,
            "created_at": isoformat(self.created_at),
        }


class ServiceRequestStatusChange(db.Model):
    __tablename__ = "service_request_status_changes"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    from_status = db.Column(db.String(30))
    to_status = db.Column(db.String(30), nullable=False)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    changed_at = db.Column(db.DateTime(timezone=True), default=_now)

    changed_by = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by_id": self.changed_by_id,
            "changed_by_name": self.changed_by.name if self.changed_by else None,
            "changed_at": isoformat(self.changed_at),
        }


class ServiceRequestAssignment(db.Model):
    __tablename__ = "service_request_assignments"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    from_technician_id = db.Column(
        db.Integer, db.ForeignKey("field_technicians.id", ondelete="SET NULL"),
    )
    to_technician_id = db.Column(
        db.Integer, db.ForeignKey("field_technicians.id", ondelete="SET NULL"),
    )
    changed_by_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    changed_at = db.Column(db.DateTime(timezone=True), default=_now)

    from_technician = db.relationship("FieldTechnician", foreign_keys=[from_technician_id])
    to_technician = db.relationship("FieldTechnician", foreign_keys=[to_technician_id])
    changed_by = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "from_technician_id": self.from_technician_id,
            "from_technician_name": self.from_technician.name if self.from_technician else None,
            "to_technician_id": self.to_technician_id,
            "to_technician_name": self.to_technician.name if self.to_technician else None,
            "changed_by_id": self.changed_by_id,
            "changed_by_name": self.changed_by.name if self.changed_by else None,
            "changed_at": isoformat(self.changed_at),
        }
