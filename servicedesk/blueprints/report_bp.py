"""
Report Blueprint — dashboard counters and report aggregates.

Endpoints:
    GET /api/stats              — complaint dashboard counters
    GET /api/reports/basic      — complaint breakdowns by type/source/status/severity
    GET /api/reports/trends     — 30-day intake, resolution time, month-to-date
    GET /api/reports/requests   — service request breakdowns
"""

from flask import Blueprint, jsonify

from servicedesk.middleware.permission_required import require_any_permission, require_permission
from servicedesk.services import report_service

report_bp = Blueprint("reports", __name__, url_prefix="/api")


@report_bp.route("/stats", methods=["GET"])
@require_permission("view_dashboard")
def dashboard_stats():
    return jsonify(report_service.dashboard_stats())


@report_bp.route("/reports/basic", methods=["GET"])
@require_permission("view_reports")
def basic_report():
    return jsonify(report_service.basic_report())


@report_bp.route("/reports/trends", methods=["GET"])
@require_permission("view_reports")
def trends_report():
    return jsonify(report_service.trends_report())


@report_bp.route("/reports/requests", methods=["GET"])
@require_any_permission("view_requests_stats", "view_reports")
def requests_report():
    return jsonify(report_service.requests_report())
