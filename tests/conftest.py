"""
Shared pytest fixtures for the Service Desk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_member / admin / supervisor / follow_up / agent: team members
    - login_as: log a member in through POST /api/login
    - technician: an Active field technician supervised by ``supervisor``
"""

import pytest

from servicedesk import create_app
from servicedesk.models import db as _db
from servicedesk.models.team import (
    ROLE_ADMIN,
    ROLE_AGENT,
    ROLE_FOLLOW_UP_MANAGER,
    ROLE_SUPERVISOR,
    TeamMember,
)
from servicedesk.models.technician import FieldTechnician
from servicedesk.services.permission_service import invalidate_all_cache
from servicedesk.services.realtime import hub
from servicedesk.utils.crypto import hash_password

TEST_PASSWORD = "Secret123!"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # Ids are reused after every recreate; cached permission sets are keyed by id
        invalidate_all_cache()
        yield
        invalidate_all_cache()
        hub.clear()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Team members ─────────────────────────────────────────────────────────


@pytest.fixture()
def make_member():
    """Factory: make_member(role, email=None, name=None, permissions=None)."""
    counter = {"n": 0}

    def _make(role=ROLE_AGENT, email=None, name=None, permissions=None):
        counter["n"] += 1
        member = TeamMember(
            name=name or f"{role} {counter['n']}",
            email=email or f"{role.lower()}{counter['n']}@desk.test",
            password_hash=hash_password(TEST_PASSWORD),
            role=role,
            permissions=permissions or [],
        )
        _db.session.add(member)
        _db.session.commit()
        return member

    return _make


@pytest.fixture()
def admin(make_member):
    return make_member(ROLE_ADMIN, email="admin@desk.test", name="Ada Admin")


@pytest.fixture()
def supervisor(make_member):
    return make_member(ROLE_SUPERVISOR, email="super@desk.test", name="Sam Supervisor")


@pytest.fixture()
def follow_up(make_member):
    return make_member(ROLE_FOLLOW_UP_MANAGER, email="follow@desk.test", name="Fay Follow")


@pytest.fixture()
def agent(make_member):
    return make_member(ROLE_AGENT, email="agent@desk.test", name="Al Agent")


@pytest.fixture()
def login_as(client):
    """Log *member* in on the shared test client and return the login payload."""

    def _login(member, password=TEST_PASSWORD):
        client.post("/api/logout")
        res = client.post("/api/login", json={"email": member.email, "password": password})
        assert res.status_code == 200, res.get_json()
        return res.get_json()

    return _login


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def technician(supervisor):
    tech = FieldTechnician(
        name="Tariq Tech",
        phone="+966501234567",
        specialization="AC",
        status="Active",
        supervisor_id=supervisor.id,
    )
    _db.session.add(tech)
    _db.session.commit()
    return tech


@pytest.fixture()
def complaint_data():
    """Factory: valid complaint create payload with optional overrides."""

    def _data(**overrides):
        data = {
            "source": "Phone",
            "type": "Technical",
            "severity": "High",
            "title": "AC not cooling",
            "description": "Unit stopped cooling two days after the visit",
            "customer_name": "Omar Customer",
            "customer_phone": "0551112222",
        }
        data.update(overrides)
        return data

    return _data
