"""
Field technician and evaluation tests.

Tests cover:
  - Roster CRUD (phone normalisation, supervisor validation, status toggle)
  - Delete unlinks complaints and requests
  - Detailed evaluations: supervisor scope, suspended technicians, scoring
  - Legacy quick ratings and their per-technician average
  - Aggregated evaluation stats and classification bands
"""

import pytest

from servicedesk.models import db
from servicedesk.models.complaint import Complaint
from servicedesk.models.service_request import ServiceRequest
from servicedesk.models.team import ROLE_SUPERVISOR
from servicedesk.models.technician import DetailedEvaluation, FieldTechnician
from servicedesk.services.evaluation_stats import NOT_CERTIFIED, classify


def _ratings(value=4, **overrides):
    data = {
        "rating_punctuality": value,
        "rating_diagnosis": value,
        "rating_quality": value,
        "rating_speed": value,
        "rating_pricing": value,
        "rating_appearance": value,
    }
    data.update(overrides)
    return data


@pytest.fixture()
def other_technician(make_member):
    other_supervisor = make_member(ROLE_SUPERVISOR, email="other-super@desk.test", name="Other Super")
    tech = FieldTechnician(name="Other Tech", phone="+966509999999", status="Active",
                           supervisor_id=other_supervisor.id)
    db.session.add(tech)
    db.session.commit()
    return tech


class TestRoster:
    def test_create_normalizes_phone(self, client, admin, supervisor, login_as):
        login_as(admin)
        res = client.post("/api/field-technicians", json={
            "name": "Nadia Tech",
            "phone": "05 0111 2233",
            "level": "Expert",
            "join_date": "2024-03-01",
            "supervisor_id": supervisor.id,
        })
        assert res.status_code == 201
        data = res.get_json()
        assert data["phone"] == "+966501112233"
        assert data["status"] == "Active"
        assert data["join_date"] == "2024-03-01"
        assert data["supervisor_name"] == "Sam Supervisor"

    def test_supervisor_must_have_supervisor_role(self, client, admin, agent, login_as):
        login_as(admin)
        res = client.post("/api/field-technicians", json={
            "name": "X", "phone": "0500000000", "supervisor_id": agent.id,
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"supervisor_id": "not a supervisor"}

    def test_requires_manage_technicians(self, client, supervisor, login_as):
        login_as(supervisor)
        res = client.post("/api/field-technicians", json={"name": "X", "phone": "0500000000"})
        assert res.status_code == 403

    def test_roster_counts(self, client, admin, technician, other_technician, login_as,
                           complaint_data):
        login_as(admin)
        for _ in range(2):
            client.post("/api/evaluations/detailed",
                        json={"technician_id": technician.id, **_ratings()})
        client.post("/api/complaints", json=complaint_data(technician_id=other_technician.id))

        roster = {t["id"]: t for t in client.get("/api/field-technicians").get_json()}
        assert roster[technician.id]["evaluation_count"] == 2
        assert roster[technician.id]["complaint_count"] == 0
        assert roster[other_technician.id]["evaluation_count"] == 0
        assert roster[other_technician.id]["complaint_count"] == 1
        single = client.get(f"/api/field-technicians/{technician.id}").get_json()
        assert single["evaluation_count"] == 2

    def test_list_and_filters(self, client, technician, other_technician, supervisor, login_as):

        login_as(supervisor)
        res = client.get("/api/field-technicians")
        assert res.status_code == 200
        assert [t["name"] for t in res.get_json()] == ["Other Tech", "Tariq Tech"]

        res = client.get(f"/api/field-technicians?supervisor_id={supervisor.id}")
        assert [t["id"] for t in res.get_json()] == [technician.id]

    def test_summary_list(self, client, technician, agent, login_as):
        login_as(agent)
        res = client.get("/api/technicians")
        assert res.status_code == 200
        assert res.get_json() == [{
            "id": technician.id, "name": "Tariq Tech",
            "phone": "+966501234567", "status": "Active",
        }]

    def test_update_and_status(self, client, admin, technician, login_as):
        login_as(admin)
        res = client.put(f"/api/field-technicians/{technician.id}", json={"area": "North"})
        assert res.status_code == 200
        assert res.get_json()["area"] == "North"

        res = client.patch(f"/api/field-technicians/{technician.id}/status",
                           json={"status": "Suspended"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "Suspended"

        res = client.patch(f"/api/field-technicians/{technician.id}/status",
                           json={"status": "Retired"})
        assert res.status_code == 400

    def test_delete_unlinks_work(self, client, admin, technician, login_as, complaint_data):
        login_as(admin)
        cid = client.post("/api/complaints",
                          json=complaint_data(technician_id=technician.id)).get_json()["id"]
        req = ServiceRequest(order_number="ORD-1", customer_name="C", technician_id=technician.id)
        db.session.add(req)
        db.session.commit()
        tech_id, req_id = technician.id, req.id

        assert client.delete(f"/api/field-technicians/{tech_id}").status_code == 200
        assert db.session.get(FieldTechnician, tech_id) is None
        assert db.session.get(Complaint, cid).technician_id is None
        assert db.session.get(ServiceRequest, req_id).technician_id is None


class TestDetailedEvaluations:
    def test_supervisor_evaluates_own_technician(self, client, supervisor, technician, login_as):
        login_as(supervisor)
        res = client.post("/api/evaluations/detailed", json={
            "technician_id": technician.id,
            **_ratings(5, rating_pricing=2),
            "behavior_respect": True,
            "behavior_clean": "yes",
            "customer_rating": 5,
        })
        assert res.status_code == 201
        data = res.get_json()
        assert data["overall_score"] == 4.5
        assert data["behavior_score"] == 2.5
        assert data["first_time_fixed"] is True
        assert data["evaluator_name"] == "Sam Supervisor"

        listing = client.get(f"/api/field-technicians/{technician.id}/evaluations/detailed")
        assert [e["id"] for e in listing.get_json()] == [data["id"]]

    def test_supervisor_cannot_evaluate_others(self, client, supervisor, other_technician, login_as):
        login_as(supervisor)
        res = client.post("/api/evaluations/detailed",
                          json={"technician_id": other_technician.id, **_ratings()})
        assert res.status_code == 403
        assert DetailedEvaluation.query.count() == 0

    def test_admin_evaluates_anyone(self, client, admin, other_technician, login_as):
        login_as(admin)
        res = client.post("/api/evaluations/detailed",
                          json={"technician_id": other_technician.id, **_ratings()})
        assert res.status_code == 201

    def test_suspended_technician(self, client, supervisor, technician, login_as):
        technician.status = "Suspended"
        db.session.commit()
        login_as(supervisor)
        res = client.post("/api/evaluations/detailed",
                          json={"technician_id": technician.id, **_ratings()})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"technician_id": "suspended"}

    def test_missing_technician(self, client, admin, login_as):
        login_as(admin)
        res = client.post("/api/evaluations/detailed", json={"technician_id": 4242, **_ratings()})
        assert res.status_code == 404

    @pytest.mark.parametrize("bad", [0, 6, "five", None, True])
    def test_rating_range(self, client, admin, technician, login_as, bad):
        login_as(admin)
        res = client.post("/api/evaluations/detailed",
                          json={"technician_id": technician.id, **_ratings(rating_speed=bad)})
        assert res.status_code == 400
        assert "rating_speed" in res.get_json()["details"]

    def test_agent_cannot_evaluate(self, client, agent, technician, login_as):
        login_as(agent)
        res = client.post("/api/evaluations/detailed",
                          json={"technician_id": technician.id, **_ratings()})
        assert res.status_code == 403


class TestLegacyEvaluations:
    def test_rating_and_average(self, client, follow_up, technician, login_as, admin):
        login_as(follow_up)
        for overall in (4, 5):
            res = client.post("/api/evaluations", json={
                "technician_id": technician.id,
                "rating_punctuality": 3, "rating_quality": 4,
                "rating_behavior": 5, "rating_overall": overall,
            })
            assert res.status_code == 201

        login_as(admin)
        stats = client.get(f"/api/field-technicians/{technician.id}/stats").get_json()
        assert stats == {"technician_id": technician.id, "average_rating": 4.5, "total_evaluations": 2}
        assert len(client.get(f"/api/field-technicians/{technician.id}/evaluations").get_json()) == 2

    def test_unknown_complaint(self, client, admin, technician, login_as):
        login_as(admin)
        res = client.post("/api/evaluations", json={
            "technician_id": technician.id, "complaint_id": 77,
            "rating_punctuality": 3, "rating_quality": 3,
            "rating_behavior": 3, "rating_overall": 3,
        })
        assert res.status_code == 404

    def test_empty_stats(self, client, admin, technician, login_as):
        login_as(admin)
        stats = client.get(f"/api/field-technicians/{technician.id}/stats").get_json()
        assert stats["average_rating"] == 0
        assert stats["total_evaluations"] == 0


class TestEvaluationStats:
    @pytest.mark.parametrize("avg,label", [
        (5.0, "Excellent"), (4.5, "Excellent"), (4.49, "Very Good"), (4.0, "Very Good"),
        (3.25, "Needs Improvement"), (3.2, NOT_CERTIFIED), (1.0, NOT_CERTIFIED),
    ])
    def test_classify(self, avg, label):
        assert classify(avg) == label

    def test_aggregates(self, client, admin, technician, login_as):
        login_as(admin)
        client.post("/api/evaluations/detailed", json={
            "technician_id": technician.id, **_ratings(5),
            "behavior_respect": True, "behavior_explain": True,
            "behavior_policy": True, "behavior_clean": True,
            "customer_rating": 5,
        })
        client.post("/api/evaluations/detailed", json={
            "technician_id": technician.id, **_ratings(4, rating_punctuality=3),
            "first_time_fixed": False, "needs_training": True,
        })

        stats = client.get("/api/evaluations/stats").get_json()
        assert len(stats) == 1
        row = stats[0]
        assert row["total_evaluations"] == 2
        assert row["avg_overall"] == pytest.approx(4.42, abs=0.01)
        assert row["avg_punctuality"] == 4.0
        assert row["avg_behavior"] == 2.5
        assert row["rework_rate"] == 50.0
        assert row["commitment_rate"] == 50.0
        assert row["customer_satisfaction_rate"] == 100.0
        assert row["training_needed_count"] == 1
        assert row["classification"] == "Very Good"

    def test_classifies_unrounded_average(self, client, admin, technician, login_as):
        login_as(admin)
        # 33 x 4.5 and 1 x 4.33 average to 4.495
        for i in range(34):
            ratings = _ratings(5, rating_speed=4, rating_pricing=4, rating_appearance=4)
            if i == 0:
                ratings["rating_quality"] = 4
            res = client.post("/api/evaluations/detailed",
                              json={"technician_id": technician.id, **ratings})
            assert res.status_code == 201

        row = client.get("/api/evaluations/stats").get_json()[0]
        assert row["total_evaluations"] == 34
        assert row["avg_overall"] == 4.5
        assert row["classification"] == "Very Good"


    def test_supervisor_sees_own_team_only(self, client, admin, supervisor, technician,
                                           other_technician, login_as):
        login_as(admin)
        for tech in (technician, other_technician):
            client.post("/api/evaluations/detailed", json={"technician_id": tech.id, **_ratings()})

        assert len(client.get("/api/evaluations/stats").get_json()) == 2
        login_as(supervisor)
        stats = client.get("/api/evaluations/stats").get_json()
        assert [s["technician_id"] for s in stats] == [technician.id]
