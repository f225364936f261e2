"""In-app notification inbox tests."""

from servicedesk.models import db
from servicedesk.models.notification import Notification
from servicedesk.services.notification import NotificationService


def _notify_all(n=1):
    for i in range(n):
        NotificationService.notify_users(title=f"Event {i}", message="m", event_type=f"test:{i}")
    db.session.commit()


class TestInbox:
    def test_list_newest_first(self, client, agent, login_as):
        _notify_all(3)
        login_as(agent)
        body = client.get("/api/notifications").get_json()
        assert body["total"] == 3
        assert [n["title"] for n in body["items"]] == ["Event 2", "Event 1", "Event 0"]

    def test_limit_and_unread_filter(self, client, agent, login_as):
        _notify_all(3)
        login_as(agent)
        first = Notification.query.filter_by(user_id=agent.id).first()
        client.post(f"/api/notifications/{first.id}/read")

        body = client.get("/api/notifications?unread_only=true&limit=1").get_json()
        assert body["total"] == 2
        assert len(body["items"]) == 1
        assert client.get("/api/notifications/unread-count").get_json() == {"unread_count": 2}

    def test_mark_read(self, client, agent, login_as):
        _notify_all()
        login_as(agent)
        notif = Notification.query.filter_by(user_id=agent.id).one()
        res = client.post(f"/api/notifications/{notif.id}/read")
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        assert res.get_json()["read_at"] is not None

    def test_cannot_read_others(self, client, agent, admin, login_as):
        _notify_all()
        login_as(agent)
        theirs = Notification.query.filter_by(user_id=admin.id).one()
        assert client.post(f"/api/notifications/{theirs.id}/read").status_code == 404
        assert db.session.get(Notification, theirs.id).is_read is False

    def test_read_all(self, client, agent, admin, login_as):
        _notify_all(2)
        login_as(agent)
        assert client.post("/api/notifications/read-all").get_json() == {"updated": 2}
        assert client.get("/api/notifications/unread-count").get_json() == {"unread_count": 0}
        assert NotificationService.unread_count(admin.id) == 2

    def test_requires_login(self, client):
        assert client.get("/api/notifications").status_code == 401

    def test_admin_fan_out(self, admin, agent):
        created = NotificationService.notify_admins(title="Only admins", event_type="x")
        assert [n.user_id for n in created] == [admin.id]
