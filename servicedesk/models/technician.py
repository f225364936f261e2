"""
Field technician domain models.

Models:
    - FieldTechnician: service worker, optionally attached to a supervisor
    - Evaluation: legacy quick rating (four 1-5 scores) tied to a complaint
    - DetailedEvaluation: per-visit multi-criteria evaluation
"""

from datetime import datetime, timezone

from servicedesk.models import db
from servicedesk.utils.helpers import isoformat

TECHNICIAN_STATUSES = ("Active", "Suspended")
TECHNICIAN_LEVELS = ("Beginner", "Intermediate", "Expert")

DETAILED_RATING_FIELDS = (
    "rating_punctuality",
    "rating_diagnosis",
    "rating_quality",
    "rating_speed",
    "rating_pricing",
    "rating_appearance",
)
BEHAVIOR_FIELDS = (
    "behavior_respect",
    "behavior_explain",
    "behavior_policy",
    "behavior_clean",
)
LEGACY_RATING_FIELDS = (
    "rating_punctuality",
    "rating_quality",
    "rating_behavior",
    "rating_overall",
)


def _now():
    return datetime.now(timezone.utc)


class FieldTechnician(db.Model):
    __tablename__ = "field_technicians"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(30), nullable=False, index=True)
    specialization = db.Column(db.String(120))
    level = db.Column(db.String(30))
    area = db.Column(db.String(120))
    join_date = db.Column(db.Date)
    contract_type = db.Column(db.String(60))
    status = db.Column(db.String(20), nullable=False, default="Active")
    notes = db.Column(db.Text)
    supervisor_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    supervisor = db.relationship("TeamMember")
    evaluations = db.relationship(
        "Evaluation", backref="technician", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    detailed_evaluations = db.relationship(
        "DetailedEvaluation", backref="technician", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def is_suspended(self) -> bool:
        return self.status == "Suspended"

    def to_dict(self, complaint_count=None, evaluation_count=None):
        data = {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "specialization": self.specialization,
            "level": self.level,
            "area": self.area,
            "join_date": self.join_date.isoformat() if self.join_date else None,
            "contract_type": self.contract_type,
            "status": self.status,
            "notes": self.notes,
            "supervisor_id": self.supervisor_id,
            "supervisor_name": self.supervisor.name if self.supervisor else None,
            "created_at": isoformat(self.created_at),
        }
        if complaint_count is not None:
            data["complaint_count"] = complaint_count
        if evaluation_count is not None:
            data["evaluation_count"] = evaluation_count
        return data

    def to_summary(self):
        return {"id": self.id, "name": self.name, "phone": self.phone, "status": self.status}

    def __repr__(self):
        return f"<FieldTechnician {self.id}: {self.name} ({self.status})>"


class Evaluation(db.Model):
    """Legacy quick rating recorded from a complaint."""

    __tablename__ = "evaluations"

    id = db.Column(db.Integer, primary_key=True)
    complaint_id = db.Column(db.Integer, db.ForeignKey("complaints.id", ondelete="SET NULL"))
    technician_id = db.Column(
        db.Integer, db.ForeignKey("field_technicians.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    evaluator_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))
    rating_punctuality = db.Column(db.Integer, nullable=False)
    rating_quality = db.Column(db.Integer, nullable=False)
    rating_behavior = db.Column(db.Integer, nullable=False)
    rating_overall = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    evaluator = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "complaint_id": self.complaint_id,
            "technician_id": self.technician_id,
            "evaluator_id": self.evaluator_id,
            "evaluator_name": self.evaluator.name if self.evaluator else None,
            "rating_punctuality": self.rating_punctuality,
            "rating_quality": self.rating_quality,
            "rating_behavior": self.rating_behavior,
            "rating_overall": self.rating_overall,
            "notes": self.notes,
            "created_at": isoformat(self.created_at),
        }


class DetailedEvaluation(db.Model):
    """
    Multi-criteria evaluation of a single service visit.

    Six 1-5 ratings feed ``overall_score``; the four behaviour flags are
    booleans that score 1.25 each, so a spotless visit also reaches 5.
    """

    __tablename__ = "detailed_evaluations"

    id = db.Column(db.Integer, primary_key=True)
    technician_id = db.Column(
        db.Integer, db.ForeignKey("field_technicians.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    evaluator_id = db.Column(db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"))

    # Visit
    order_number = db.Column(db.String(60))
    order_date = db.Column(db.Date)
    service_type = db.Column(db.String(120))
    arrival_time = db.Column(db.String(20))
    completion_time = db.Column(db.String(20))
    first_time_fixed = db.Column(db.Boolean, nullable=False, default=True)

    # Ratings (1-5)
    rating_punctuality = db.Column(db.Integer, nullable=False)
    rating_diagnosis = db.Column(db.Integer, nullable=False)
    rating_quality = db.Column(db.Integer, nullable=False)
    rating_speed = db.Column(db.Integer, nullable=False)
    rating_pricing = db.Column(db.Integer, nullable=False)
    rating_appearance = db.Column(db.Integer, nullable=False)

    # Behaviour checklist
    behavior_respect = db.Column(db.Boolean, nullable=False, default=False)
    behavior_explain = db.Column(db.Boolean, nullable=False, default=False)
    behavior_policy = db.Column(db.Boolean, nullable=False, default=False)
    behavior_clean = db.Column(db.Boolean, nullable=False, default=False)

    technical_errors = db.Column(db.Text)
    behavioral_notes = db.Column(db.Text)
    needs_training = db.Column(db.Boolean, nullable=False, default=False)
    training_type = db.Column(db.String(120))

    # Customer feedback
    customer_rating = db.Column(db.Integer)
    customer_complained = db.Column(db.Boolean, nullable=False, default=False)
    customer_rehire = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    evaluator = db.relationship("TeamMember")

    @property
    def overall_score(self) -> float:
        return sum(getattr(self, f) for f in DETAILED_RATING_FIELDS) / len(DETAILED_RATING_FIELDS)

    @property
    def behavior_score(self) -> float:
        return sum(1 for f in BEHAVIOR_FIELDS if getattr(self, f)) * 1.25

    def to_dict(self):
        data = {
            "id": self.id,
            "technician_id": self.technician_id,
            "evaluator_id": self.evaluator_id,
            "evaluator_name": self.evaluator.name if self.evaluator else None,
            "order_number": self.order_number,
            "order_date": self.order_date.isoformat() if self.order_date else None,
            "service_type": self.service_type,
            "arrival_time": self.arrival_time,
            "completion_time": self.completion_time,
            "first_time_fixed": self.first_time_fixed,
            "technical_errors": self.technical_errors,
            "behavioral_notes": self.behavioral_notes,
            "needs_training": self.needs_training,
            "training_type": self.training_type,
            "customer_rating": self.customer_rating,
            "customer_complained": self.customer_complained,
            "customer_rehire": self.customer_rehire,
            "overall_score": round(self.overall_score, 2),
            "behavior_score": self.behavior_score,
            "created_at": isoformat(self.created_at),
        }
        for field in DETAILED_RATING_FIELDS + BEHAVIOR_FIELDS:
            data[field] = getattr(self, field)
        return data
