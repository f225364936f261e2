"""
Team member model — staff accounts that log in to the desk.

A member has one role (Admin, Supervisor, FollowUpManager, Agent) plus an
optional list of extra permission codenames on top of the role defaults.
"""

from datetime import datetime, timezone

from servicedesk.models import db
from servicedesk.utils.helpers import isoformat

ROLE_ADMIN = "Admin"
ROLE_SUPERVISOR = "Supervisor"
ROLE_FOLLOW_UP_MANAGER = "FollowUpManager"
ROLE_AGENT = "Agent"

TEAM_ROLES = (ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_FOLLOW_UP_MANAGER, ROLE_AGENT)


class TeamMember(db.Model):
    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(30), nullable=False, default=ROLE_AGENT)
    permissions = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "permissions": list(self.permissions or []),
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<TeamMember {self.id}: {self.email} ({self.role})>"
