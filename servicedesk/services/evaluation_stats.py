"""
Technician performance statistics from detailed evaluations.

One aggregate row per technician:
  - avg_overall                 mean of the six 1-5 ratings
  - avg_punctuality / avg_quality
  - avg_behavior                mean of (behaviour flags held × 1.25), 0-5
  - rework_rate                 % of visits not fixed first time
  - commitment_rate             % of visits with punctuality ≥ 4
  - customer_satisfaction_rate  % of rated visits with customer_rating ≥ 4
  - training_needed_count
  - classification              certification band from avg_overall
"""

import logging

from sqlalchemy import Integer, case, cast, func, not_

from servicedesk.models import db
from servicedesk.models.team import ROLE_SUPERVISOR, TeamMember
from servicedesk.models.technician import DetailedEvaluation, FieldTechnician

logger = logging.getLogger(__name__)

# (minimum avg_overall, label), checked top-down
CLASSIFICATION_BANDS = (
    (4.5, "Excellent"),
    (4.0, "Very Good"),
    (3.25, "Needs Improvement"),
)
NOT_CERTIFIED = "Not Certified"


def classify(avg_overall: float) -> str:
    for threshold, label in CLASSIFICATION_BANDS:
        if avg_overall >= threshold:
            return label
    return NOT_CERTIFIED


def _pct(part, whole):
    if not whole:
        return 0.0
    return round(100.0 * float(part or 0) / whole, 1)


def technician_stats(viewer: TeamMember | None = None) -> list[dict]:
    """Aggregate detailed evaluations per technician.

    A Supervisor viewer only sees technicians assigned to them.
    """
    de = DetailedEvaluation
    overall_expr = (
        de.rating_punctuality + de.rating_diagnosis + de.rating_quality
        + de.rating_speed + de.rating_pricing + de.rating_appearance
    ) / 6.0
    behavior_expr = (
        cast(de.behavior_respect, Integer) + cast(de.behavior_explain, Integer)
        + cast(de.behavior_policy, Integer) + cast(de.behavior_clean, Integer)
    ) * 1.25

    q = (
        db.session.query(
            FieldTechnician.id.label("technician_id"),
            FieldTechnician.name.label("technician_name"),
            FieldTechnician.supervisor_id.label("supervisor_id"),
            func.count(de.id).label("total"),
            func.avg(overall_expr).label("avg_overall"),
            func.avg(de.rating_punctuality).label("avg_punctuality"),
            func.avg(de.rating_quality).label("avg_quality"),
            func.avg(behavior_expr).label("avg_behavior"),
            func.sum(case((not_(de.first_time_fixed), 1), else_=0)).label("rework"),
            func.sum(case((de.rating_punctuality >= 4, 1), else_=0)).label("committed"),
            func.count(de.customer_rating).label("rated"),
            func.sum(case((de.customer_rating >= 4, 1), else_=0)).label("satisfied"),
            func.sum(case((de.needs_training, 1), else_=0)).label("training"),
        )
        .join(de, de.technician_id == FieldTechnician.id)
        .group_by(FieldTechnician.id, FieldTechnician.name, FieldTechnician.supervisor_id)
        .order_by(FieldTechnician.name, FieldTechnician.id)
    )
    if viewer is not None and viewer.role == ROLE_SUPERVISOR:
        q = q.filter(FieldTechnician.supervisor_id == viewer.id)

    stats = []
    for row in q.all():
        avg_overall = float(row.avg_overall or 0)
        stats.append({
            "technician_id": row.technician_id,
            "technician_name": row.technician_name,
            "supervisor_id": row.supervisor_id,
            "total_evaluations": row.total,
            "avg_overall": round(avg_overall, 2),
            "avg_punctuality": round(float(row.avg_punctuality or 0), 2),
            "avg_quality": round(float(row.avg_quality or 0), 2),
            "avg_behavior": round(float(row.avg_behavior or 0), 2),
            "rework_rate": _pct(row.rework, row.total),
            "commitment_rate": _pct(row.committed, row.total),
            "customer_satisfaction_rate": _pct(row.satisfied, row.rated),
            "training_needed_count": int(row.training or 0),
            "classification": classify(avg_overall),
        })
    return stats
