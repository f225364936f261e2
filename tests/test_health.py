"""Health endpoint tests."""

from servicedesk.services.realtime import hub


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        hub.register(object())
        res = client.get("/api/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["realtime"]["clients"] == 1
        assert body["checks"]["app"]["testing"] is True

    def test_security_headers(self, client):
        res = client.get("/api/health/ready")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert "connect-src 'self' ws: wss:" in res.headers["Content-Security-Policy"]

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/nope")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/nope"
