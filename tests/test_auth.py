"""
Auth tests.

Tests cover:
  - Password hashing (bcrypt, legacy werkzeug hashes)
  - Access token generation / verification
  - POST /api/login, /api/logout, GET /api/user, GET /api/permissions
  - Bearer token authentication
  - Default admin bootstrap
"""

from datetime import datetime, timedelta, timezone

import jwt
from werkzeug.security import generate_password_hash

from servicedesk.models import db
from servicedesk.models.audit import AuditLog
from servicedesk.models.team import ROLE_ADMIN, TeamMember
from servicedesk.services import team_service
from servicedesk.services.jwt_service import (
    decode_access_token,
    generate_access_token,
    member_id_from_token,
)
from servicedesk.utils.crypto import hash_password, verify_password


class TestCrypto:
    def test_hash_and_verify(self):
        hashed = hash_password("S3cure!pass")
        assert hashed != "S3cure!pass"
        assert verify_password("S3cure!pass", hashed)

    def test_wrong_password(self):
        assert not verify_password("nope", hash_password("right"))

    def test_empty_hash(self):
        assert not verify_password("anything", "")
        assert not verify_password("anything", None)

    def test_legacy_werkzeug_hash(self):
        legacy = generate_password_hash("old-pass")
        assert verify_password("old-pass", legacy)
        assert not verify_password("other", legacy)


class TestJWTService:
    def test_generate_access_token(self, app):
        token = generate_access_token(7, "Agent")
        payload = decode_access_token(token)
        assert payload["sub"] == "7"
        assert payload["role"] == "Agent"
        assert payload["type"] == "access"

    def test_member_id_from_token(self, app):
        assert member_id_from_token(generate_access_token(12, "Admin")) == 12

    def test_invalid_token(self, app):
        assert member_id_from_token("not-a-token") is None

    def test_expired_token(self, app):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "3", "type": "access", "iat": past - timedelta(hours=1), "exp": past},
            app.config["SECRET_KEY"], algorithm="HS256",
        )
        assert member_id_from_token(token) is None


class TestLogin:
    def test_login_success(self, client, agent):
        res = client.post("/api/login", json={"email": agent.email, "password": "Secret123!"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["email"] == agent.email
        assert "password_hash" not in data
        assert "view_complaints" in data["permissions"]
        assert data["access_token"]

    def test_login_email_case_insensitive(self, client, agent):
        res = client.post("/api/login", json={"email": agent.email.upper(), "password": "Secret123!"})
        assert res.status_code == 200

    def test_login_wrong_password(self, client, agent):
        res = client.post("/api/login", json={"email": agent.email, "password": "wrong"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid email or password"

    def test_login_unknown_email(self, client):
        res = client.post("/api/login", json={"email": "ghost@desk.test", "password": "x"})
        assert res.status_code == 401

    def test_login_missing_fields(self, client):
        res = client.post("/api/login", json={"email": ""})
        assert res.status_code == 400

    def test_session_cookie_authenticates(self, client, agent, login_as):
        login_as(agent)
        res = client.get("/api/user")
        assert res.status_code == 200
        assert res.get_json()["id"] == agent.id

    def test_logout_clears_session(self, client, agent, login_as):
        login_as(agent)
        assert client.post("/api/logout").status_code == 200
        assert client.get("/api/user").status_code == 401


class TestCurrentUser:
    def test_unauthenticated(self, client):
        res = client.get("/api/user")
        assert res.status_code == 401
        assert res.get_json() == {"error": "Not authenticated"}

    def test_bearer_token(self, client, supervisor):
        token = generate_access_token(supervisor.id, supervisor.role)
        res = client.get("/api/user", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200
        assert res.get_json()["role"] == "Supervisor"

    def test_bad_bearer_token_is_anonymous(self, client):
        res = client.get("/api/user", headers={"Authorization": "Bearer garbage"})
        assert res.status_code == 401

    def test_deleted_member_session_is_dropped(self, client, agent, login_as):
        login_as(agent)
        db.session.delete(agent)
        db.session.commit()
        assert client.get("/api/user").status_code == 401

    def test_permissions_endpoint(self, client, follow_up, login_as):
        login_as(follow_up)
        data = client.get("/api/permissions").get_json()
        assert "view_dashboard" in data["catalog"]
        assert set(data["roles"]) == {"Admin", "Supervisor", "FollowUpManager", "Agent"}
        assert "update_status" in data["effective"]
        assert "delete_complaint" not in data["effective"]

    def test_supervisors_list(self, client, agent, supervisor, login_as):
        login_as(agent)
        data = client.get("/api/users/supervisors").get_json()
        assert [m["id"] for m in data] == [supervisor.id]


class TestBootstrap:
    def test_default_admin_created_once(self, app):
        admin = team_service.ensure_default_admin("root@desk.test", "changeme1")
        db.session.commit()
        assert admin is not None
        assert admin.role == ROLE_ADMIN
        assert team_service.authenticate("root@desk.test", "changeme1").id == admin.id

        assert team_service.ensure_default_admin("other@desk.test", "changeme1") is None
        assert TeamMember.query.count() == 1

    def test_bootstrap_is_logged(self, app):
        team_service.ensure_default_admin("root@desk.test", "changeme1")
        db.session.commit()
        log = AuditLog.query.filter_by(action="CREATE_USER").one()
        assert log.user_id is None

    def test_create_admin_cli(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["create-admin", "--email", "cli@desk.test", "--password", "clipass1"])
        assert result.exit_code == 0, result.output
        assert "cli@desk.test" in result.output
        assert TeamMember.query.filter_by(email="cli@desk.test").one().role == ROLE_ADMIN
