"""
Dashboard and report aggregates.

All day buckets are UTC calendar days.  Daily series cover the last
DAILY_WINDOW_DAYS days ending today, zero-filled, oldest first.
"""

import logging
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import case, func

from servicedesk.models import db
from servicedesk.models.complaint import RESOLVED_STATUSES, Complaint
from servicedesk.models.service_request import REQUEST_COMPLETED, ServiceRequest
from servicedesk.models.technician import FieldTechnician
from servicedesk.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

DAILY_WINDOW_DAYS = 30


def _day_start(day) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _month_start() -> datetime:
    today = utcnow().date()
    return _day_start(today.replace(day=1))


def _breakdown(column) -> list[dict]:
    rows = (
        db.session.query(column, func.count(Complaint.id))
        .group_by(column)
        .order_by(func.count(Complaint.id).desc(), column)
        .all()
    )
    return [{"key": key, "count": count} for key, count in rows]


def _daily_series(created_column) -> list[dict]:
    today = utcnow().date()
    first_day = today - timedelta(days=DAILY_WINDOW_DAYS - 1)
    day = func.date(created_column)
    rows = (
        db.session.query(day, func.count())
        .filter(created_column >= _day_start(first_day))
        .group_by(day)
        .all()
    )
    counts = {str(d): n for d, n in rows}
    series = []
    for offset in range(DAILY_WINDOW_DAYS):
        key = (first_day + timedelta(days=offset)).isoformat()
        series.append({"date": key, "count": counts.get(key, 0)})
    return series


def dashboard_stats() -> dict:
    """Headline complaint counters."""
    today_start = _day_start(utcnow().date())
    return {
        "total": Complaint.query.count(),
        "new_today": Complaint.query.filter(Complaint.created_at >= today_start).count(),
        "under_review": Complaint.query.filter_by(status="Under Review").count(),
        "resolved": Complaint.query.filter(Complaint.status.in_(RESOLVED_STATUSES)).count(),
    }


def basic_report() -> dict:
    return {
        "total_complaints": Complaint.query.count(),
        "by_type": _breakdown(Complaint.type),
        "by_source": _breakdown(Complaint.source),
        "by_status": _breakdown(Complaint.status),
        "by_severity": _breakdown(Complaint.severity),
    }


def trends_report() -> dict:
    """Daily intake, resolution time and month-to-date counters."""
    resolved = Complaint.query.filter(Complaint.status.in_(RESOLVED_STATUSES)).all()
    durations = [
        (as_utc(c.updated_at) - as_utc(c.created_at)).total_seconds() / 3600.0
        for c in resolved
        if c.updated_at is not None and c.created_at is not None
    ]
    avg_hours = round(sum(durations) / len(durations), 1) if durations else 0

    month_start = _month_start()
    return {
        "daily_trends": _daily_series(Complaint.created_at),
        "avg_resolution_time_hours": avg_hours,
        "total_this_month": Complaint.query.filter(Complaint.created_at >= month_start).count(),
        "resolved_this_month": Complaint.query.filter(
            Complaint.created_at >= month_start,
            Complaint.status.in_(RESOLVED_STATUSES),
        ).count(),
    }


def requests_report() -> dict:
    """Service request breakdowns by technician, payment method and status."""
    completed = func.sum(
        case((ServiceRequest.status == REQUEST_COMPLETED, 1), else_=0)
    )
    tech_rows = (
        db.session.query(
            FieldTechnician.id,
            FieldTechnician.name,
            func.count(ServiceRequest.id),
            completed,
            func.avg(ServiceRequest.execution_duration),
        )
        .join(ServiceRequest, ServiceRequest.technician_id == FieldTechnician.id)
        .group_by(FieldTechnician.id, FieldTechnician.name)
        .order_by(func.count(ServiceRequest.id).desc(), FieldTechnician.name)
        .all()
    )
    by_technician = [
        {
            "technician_id": tid,
            "technician_name": name,
            "total": total,
            "completed": int(done or 0),
            "avg_execution_minutes": round(float(avg), 1) if avg is not None else None,
        }
        for tid, name, total, done, avg in tech_rows
    ]

    def _grouped(column):
        rows = (
            db.session.query(column, func.count(ServiceRequest.id))
            .filter(column.isnot(None))
            .group_by(column)
            .order_by(func.count(ServiceRequest.id).desc(), column)
            .all()
        )
        return [{"key": key, "count": count} for key, count in rows]

    return {
        "total": ServiceRequest.query.count(),
        "by_technician": by_technician,
        "by_payment_method": _grouped(ServiceRequest.payment_method),
        "by_status": _grouped(ServiceRequest.status),
        "daily": _daily_series(ServiceRequest.created_at),
    }
