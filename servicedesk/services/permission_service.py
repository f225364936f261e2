"""
Permission Service — declarative role → permission table with a per-member cache.

``ROLE_PERMISSIONS`` is the one place role defaults live.  The API decorators
and the UI (via ``GET /api/permissions``) both read it, so what the client shows
and what the server allows cannot drift apart.

Evaluation:
  - Admin holds every permission in ``PERMISSION_CATALOG``
  - any other role: role defaults ∪ the member's explicit ``permissions`` list
  - codenames outside the catalog are ignored
  - an operation listing several permissions passes when any one is held
"""

import logging
import threading
import time
from typing import Iterable, Optional

from servicedesk.models import db
from servicedesk.models.team import (
    ROLE_ADMIN,
    ROLE_AGENT,
    ROLE_FOLLOW_UP_MANAGER,
    ROLE_SUPERVISOR,
    TeamMember,
)

logger = logging.getLogger(__name__)

CACHE_TTL = 300  # 5 minutes

PERMISSION_CATALOG = (
    # Dashboard
    "view_dashboard",
    # Complaints
    "view_complaints",
    "create_complaint",
    "edit_complaint",
    "update_status",
    "delete_complaint",
    "assign_complaint",
    "manage_notes",
    # Service requests
    "view_requests",
    "view_requests_stats",
    "create_request",
    "edit_request",
    "delete_request",
    "print_request",
    "manage_requests",
    # Users
    "view_users",
    "create_user",
    "edit_user",
    "delete_user",
    "manage_roles",
    # Reports
    "view_reports",
    "export_reports",
    # Settings & logs
    "view_settings",
    "manage_settings",
    "view_logs",
    # Evaluations
    "view_evaluations_page",
    "view_evaluations",
    "create_evaluation",
    "edit_evaluation",
    "delete_evaluation",
    # Technicians
    "view_technicians",
    "manage_technicians",
)

SUPERUSER_ROLES = {ROLE_ADMIN}

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_ADMIN: frozenset(PERMISSION_CATALOG),
    ROLE_SUPERVISOR: frozenset({
        "view_evaluations_page",
        "view_evaluations",
        "view_technicians",
        "create_evaluation",
    }),
    ROLE_FOLLOW_UP_MANAGER: frozenset({
        "view_dashboard",
        "view_complaints",
        "create_complaint",
        "view_reports",
        "manage_notes",
        "update_status",
        "view_requests",
    }),
    ROLE_AGENT: frozenset({
        "view_dashboard",
        "view_complaints",
        "view_requests",
    }),
}

_permission_cache: dict[int, tuple[float, frozenset[str]]] = {}
_cache_lock = threading.Lock()


def unknown_permissions(codenames: Iterable[str]) -> list[str]:
    """Return the codenames in *codenames* that are not in the catalog."""
    catalog = set(PERMISSION_CATALOG)
    return sorted({c for c in codenames if c not in catalog})


def resolve_permissions(role: str, explicit: Iterable[str] | None = None) -> frozenset[str]:
    """Effective permission set for a role plus explicit grants (no DB access)."""
    if role in SUPERUSER_ROLES:
        return ROLE_PERMISSIONS[ROLE_ADMIN]
    granted = set(ROLE_PERMISSIONS.get(role, frozenset()))
    catalog = set(PERMISSION_CATALOG)
    granted.update(c for c in (explicit or []) if c in catalog)
    return frozenset(granted)


def permission_matrix() -> dict:
    """Catalog and role defaults, shaped for the client."""
    return {
        "catalog": list(PERMISSION_CATALOG),
        "roles": {role: sorted(perms) for role, perms in ROLE_PERMISSIONS.items()},
    }


# ── Cache ────────────────────────────────────────────────────────────────────

def _get_cached(member_id: int) -> Optional[frozenset[str]]:
    with _cache_lock:
        entry = _permission_cache.get(member_id)
        if entry is None:
            return None
        cached_at, perms = entry
        if time.time() - cached_at > CACHE_TTL:
            del _permission_cache[member_id]
            return None
        return perms


def _set_cached(member_id: int, perms: frozenset[str]) -> None:
    with _cache_lock:
        _permission_cache[member_id] = (time.time(), perms)


def invalidate_cache(member_id: int) -> None:
    with _cache_lock:
        _permission_cache.pop(member_id, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _permission_cache.clear()


# ── Queries ──────────────────────────────────────────────────────────────────

def get_member_permissions(member_id: int) -> frozenset[str]:
    """Effective permissions for a member id (cached)."""
    cached = _get_cached(member_id)
    if cached is not None:
        return cached

    member = db.session.get(TeamMember, member_id)
    if member is None:
        return frozenset()

    perms = resolve_permissions(member.role, member.permissions)
    _set_cached(member_id, perms)
    return perms


def has_permission(member_id: int, codename: str) -> bool:
    return codename in get_member_permissions(member_id)


def has_any_permission(member_id: int, codenames: Iterable[str]) -> bool:
    perms = get_member_permissions(member_id)
    return any(c in perms for c in codenames)

