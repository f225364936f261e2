"""Dashboard counters and report aggregate tests."""

from datetime import datetime, timedelta, timezone

from servicedesk.models import db
from servicedesk.models.complaint import Complaint
from servicedesk.services.report_service import DAILY_WINDOW_DAYS


def _seed(client, complaint_data):
    ids = [
        client.post("/api/complaints", json=complaint_data(type="Delay")).get_json()["id"],
        client.post("/api/complaints", json=complaint_data(type="Delay", source="Email")).get_json()["id"],
        client.post("/api/complaints", json=complaint_data(severity="Urgent")).get_json()["id"],
    ]
    client.put(f"/api/complaints/{ids[0]}", json={"status": "Under Review"})
    client.put(f"/api/complaints/{ids[1]}", json={"status": "Resolved"})
    return ids


class TestDashboard:
    def test_stats(self, client, admin, login_as, complaint_data):
        login_as(admin)
        _seed(client, complaint_data)
        assert client.get("/api/stats").get_json() == {
            "total": 3, "new_today": 3, "under_review": 1, "resolved": 1,
        }

    def test_supervisor_has_no_dashboard(self, client, supervisor, login_as):
        login_as(supervisor)
        assert client.get("/api/stats").status_code == 403


class TestReports:
    def test_basic(self, client, admin, login_as, complaint_data):
        login_as(admin)
        _seed(client, complaint_data)
        report = client.get("/api/reports/basic").get_json()
        assert report["total_complaints"] == 3
        assert report["by_type"] == [{"key": "Delay", "count": 2}, {"key": "Technical", "count": 1}]
        assert {r["key"]: r["count"] for r in report["by_source"]} == {"Phone": 2, "Email": 1}
        assert {r["key"]: r["count"] for r in report["by_severity"]} == {"High": 2, "Urgent": 1}

    def test_trends(self, client, admin, login_as, complaint_data):
        login_as(admin)
        ids = _seed(client, complaint_data)
        resolved = db.session.get(Complaint, ids[1])
        now = datetime.now(timezone.utc)
        # Raw UPDATE keeps updated_at as written
        Complaint.query.filter_by(id=resolved.id).update({
            "created_at": now - timedelta(hours=10), "updated_at": now,
        })
        db.session.commit()

        report = client.get("/api/reports/trends").get_json()
        assert report["avg_resolution_time_hours"] == 10.0
        assert len(report["daily_trends"]) == DAILY_WINDOW_DAYS
        assert report["daily_trends"][-1] == {
            "date": now.date().isoformat(),
            "count": 2 if (now - timedelta(hours=10)).date() != now.date() else 3,
        }
        in_month = (now - timedelta(hours=10)).month == now.month
        assert report["resolved_this_month"] == (1 if in_month else 0)
        assert report["total_this_month"] == (3 if in_month else 2)

    def test_requests_report(self, client, admin, technician, login_as):
        login_as(admin)
        for n, tech_id in (("R1", technician.id), ("R2", technician.id), ("R3", None)):
            client.post("/api/requests", json={
                "order_number": n, "customer_name": "C", "technician_id": tech_id,
            })
        rid = client.get("/api/requests?q=R1").get_json()["items"][0]["id"]
        client.patch(f"/api/requests/{rid}/status", json={"status": "Completed"})

        report = client.get("/api/reports/requests").get_json()
        assert report["total"] == 3
        assert report["by_technician"] == [{
            "technician_id": technician.id,
            "technician_name": "Tariq Tech",
            "total": 2,
            "completed": 1,
            "avg_execution_minutes": 0.0,
        }]
        assert report["by_payment_method"] == [{"key": "Cash", "count": 3}]
        assert report["daily"][-1]["count"] == 3

    def test_reports_need_permission(self, client, agent, login_as):
        login_as(agent)
        assert client.get("/api/reports/basic").status_code == 403
        assert client.get("/api/reports/requests").status_code == 403
