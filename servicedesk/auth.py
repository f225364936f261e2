"""
Service Desk
Authentication middleware.

Resolves the acting team member once per request and stores it on ``g``:

    1. ``Authorization: Bearer <jwt>``   (scripts, integrations)
    2. Flask session cookie              (browser client, set by POST /api/login)
    3. anonymous                         (g.current_member is None)

Nothing is rejected here; the decorators in
``servicedesk.middleware.permission_required`` turn a missing member into 401
and a missing permission into 403.
"""

import logging

from flask import g, request, session

from servicedesk.models import db
from servicedesk.models.team import TeamMember
from servicedesk.services.jwt_service import member_id_from_token

logger = logging.getLogger(__name__)

SESSION_KEY = "member_id"

# Paths that never need a member lookup
AUTH_SKIP_PREFIXES = (
    "/api/health",
    "/static/",
)


def load_member(member_id) -> TeamMember | None:
    if member_id is None:
        return None
    try:
        return db.session.get(TeamMember, int(member_id))
    except (TypeError, ValueError):
        return None


def member_from_request() -> TeamMember | None:
    """Resolve the member for the current request (Bearer token first, then session)."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        member_id = member_id_from_token(auth_header[7:])
        if member_id is None:
            logger.debug("Rejected bearer token on %s", request.path)
            return None
        return load_member(member_id)

    member = load_member(session.get(SESSION_KEY))
    if member is None and SESSION_KEY in session:
        # Member was deleted since login
        session.pop(SESSION_KEY, None)
    return member


def login_member(member: TeamMember) -> None:
    session.clear()
    session[SESSION_KEY] = member.id
    session.permanent = True


def logout_member() -> None:
    session.clear()


def init_auth(app):
    """Register the member-resolution hook."""

    @app.before_request
    def _resolve_member():
        g.current_member = None
        path = request.path
        for prefix in AUTH_SKIP_PREFIXES:
            if path.startswith(prefix):
                return
        g.current_member = member_from_request()
