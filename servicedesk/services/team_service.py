"""Team member service — account CRUD, credential checks and admin bootstrap.

Transaction policy: flush(), never commit(); the route handler commits.
Every mutation invalidates the member's cached permission set.
"""
import logging

from servicedesk.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from servicedesk.models import db
from servicedesk.models.audit import write_log
from servicedesk.models.team import ROLE_ADMIN, ROLE_AGENT, ROLE_SUPERVISOR, TEAM_ROLES, TeamMember
from servicedesk.services.permission_service import (
    has_permission,
    invalidate_cache,
    unknown_permissions,
)
from servicedesk.utils.crypto import hash_password, verify_password
from servicedesk.utils.validation import check_choice, clean_str, require_fields

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "password123"
MIN_PASSWORD_LENGTH = 6


def _normalize_email(value) -> str:
    email = (clean_str(value) or "").lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("A valid email is required", details={"email": "invalid"})
    return email


def _check_permissions_list(value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise ValidationError("permissions must be a list of codenames",
                              details={"permissions": "list of strings"})
    unknown = unknown_permissions(value)
    if unknown:
        raise ValidationError(f"Unknown permissions: {', '.join(unknown)}",
                              details={"permissions": unknown})
    return sorted(set(value))


def _check_password(value) -> str:
    password = value if isinstance(value, str) else ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too short"},
        )
    return password


def get_member(member_id) -> TeamMember:
    member = db.session.get(TeamMember, member_id)
    if member is None:
        raise NotFoundError("TeamMember", member_id)
    return member


def list_members():
    return TeamMember.query.order_by(TeamMember.name, TeamMember.id).all()


def list_supervisors():
    return (
        TeamMember.query.filter_by(role=ROLE_SUPERVISOR)
        .order_by(TeamMember.name, TeamMember.id).all()
    )


def authenticate(email, password) -> TeamMember | None:
    """Return the member when *email*/*password* match, else None."""
    if not email or not password:
        return None
    member = TeamMember.query.filter_by(email=str(email).strip().lower()).first()
    if member is None or not verify_password(password, member.password_hash):
        return None
    return member


def create_member(data: dict, actor: TeamMember | None = None) -> TeamMember:
    require_fields(data, ("name", "email"))
    email = _normalize_email(data["email"])
    if TeamMember.query.filter_by(email=email).first():
        raise ConflictError("TeamMember", "email", email)

    role = check_choice("role", data.get("role") or ROLE_AGENT, TEAM_ROLES)
    password = data.get("password")
    password = _check_password(password) if password else DEFAULT_PASSWORD

    member = TeamMember(
        name=clean_str(data["name"], max_len=150),
        email=email,
        password_hash=hash_password(password),
        role=role,
        permissions=_check_permissions_list(data.get("permissions")),
    )
    db.session.add(member)
    db.session.flush()
    invalidate_cache(member.id)

    write_log(
        action="CREATE_USER",
        entity_type="team_member",
        entity_id=member.id,
        details={"email": member.email, "role": member.role},
        user_id=actor.id if actor else None,
    )
    return member


def update_member(member: TeamMember, data: dict, actor: TeamMember) -> dict:
    """Partial update. Role and permission changes need ``manage_roles``."""
    changes = {}

    role = check_choice("role", data["role"], TEAM_ROLES) if "role" in data else member.role
    perms = (_check_permissions_list(data["permissions"]) if "permissions" in data
             else sorted(member.permissions or []))
    role_changed = role != member.role
    perms_changed = perms != sorted(member.permissions or [])
    if (role_changed or perms_changed) and not has_permission(actor.id, "manage_roles"):
        raise PermissionDenied(["manage_roles"], actor.id)

    if "name" in data:
        name = clean_str(data["name"], max_len=150)
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        if name != member.name:
            changes["name"] = {"old": member.name, "new": name}
            member.name = name

    if "email" in data:
        email = _normalize_email(data["email"])
        if email != member.email:
            clash = TeamMember.query.filter(TeamMember.email == email,
                                            TeamMember.id != member.id).first()
            if clash:
                raise ConflictError("TeamMember", "email", email)
            changes["email"] = {"old": member.email, "new": email}
            member.email = email

    if role_changed:
        if member.id == actor.id and member.role == ROLE_ADMIN:
            raise ValidationError("You cannot remove your own Admin role", details={"role": "self"})
        changes["role"] = {"old": member.role, "new": role}
        member.role = role

    if perms_changed:
        changes["permissions"] = {"old": list(member.permissions or []), "new": perms}
        member.permissions = perms

    if data.get("password"):
        member.password_hash = hash_password(_check_password(data["password"]))
        changes["password"] = "changed"

    if changes:
        db.session.flush()
        invalidate_cache(member.id)
        write_log(
            action="UPDATE_USER",
            entity_type="team_member",
            entity_id=member.id,
            details={"changes": changes},
            user_id=actor.id,
        )
    return changes


def delete_member(member: TeamMember, actor: TeamMember) -> None:
    if member.id == actor.id:
        raise ValidationError("You cannot delete your own account", details={"id": "self"})
    member_id, email = member.id, member.email
    db.session.delete(member)
    db.session.flush()
    invalidate_cache(member_id)
    write_log(
        action="DELETE_USER",
        entity_type="team_member",
        entity_id=member_id,
        details={"email": email},
        user_id=actor.id,
    )


def ensure_default_admin(email: str, password: str) -> TeamMember | None:
    """Create the first Admin when the team is empty. Returns it, or None if skipped."""
    if TeamMember.query.first() is not None:
        return None
    admin = create_member({
        "name": "Administrator",
        "email": email,
        "password": password,
        "role": ROLE_ADMIN,
    })
    logger.info("Created default admin account %s", admin.email)
    return admin
