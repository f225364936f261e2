"""
Permission model tests.

Tests cover:
  - ROLE_PERMISSIONS table and effective permission resolution
  - Explicit per-member grants and unknown codenames
  - Permission cache and invalidation
  - Decorator outcomes: 401 without a member, 403 with required_any
"""

import pytest

from servicedesk.models import db
from servicedesk.services.permission_service import (
    PERMISSION_CATALOG,
    ROLE_PERMISSIONS,
    get_member_permissions,
    has_any_permission,
    has_permission,
    invalidate_cache,
    permission_matrix,
    resolve_permissions,
    unknown_permissions,
)


class TestRoleTable:
    def test_every_role_default_is_in_catalog(self):
        catalog = set(PERMISSION_CATALOG)
        for role, perms in ROLE_PERMISSIONS.items():
            assert perms <= catalog, role

    def test_admin_gets_everything(self):
        assert resolve_permissions("Admin") == frozenset(PERMISSION_CATALOG)

    def test_admin_ignores_explicit_list(self):
        assert resolve_permissions("Admin", ["bogus"]) == frozenset(PERMISSION_CATALOG)

    @pytest.mark.parametrize("role,expected", [
        ("Supervisor", {"view_evaluations_page", "view_evaluations", "view_technicians",
                        "create_evaluation"}),
        ("Agent", {"view_dashboard", "view_complaints", "view_requests"}),
    ])
    def test_role_defaults(self, role, expected):
        assert resolve_permissions(role) == expected

    def test_follow_up_manager_defaults(self):
        perms = resolve_permissions("FollowUpManager")
        assert {"update_status", "manage_notes", "view_reports", "create_complaint"} <= perms
        assert "edit_complaint" not in perms
        assert "delete_complaint" not in perms

    def test_explicit_grants_are_added(self):
        perms = resolve_permissions("Agent", ["view_logs"])
        assert "view_logs" in perms
        assert "view_complaints" in perms

    def test_unknown_codenames_are_ignored(self):
        assert "launch_rockets" not in resolve_permissions("Agent", ["launch_rockets"])
        assert unknown_permissions(["view_logs", "launch_rockets"]) == ["launch_rockets"]

    def test_unknown_role_has_only_explicit(self):
        assert resolve_permissions("Intern", ["view_dashboard"]) == {"view_dashboard"}

    def test_matrix_shape(self):
        matrix = permission_matrix()
        assert matrix["catalog"] == list(PERMISSION_CATALOG)
        assert matrix["roles"]["Agent"] == sorted(ROLE_PERMISSIONS["Agent"])


class TestMemberPermissions:
    def test_has_permission(self, agent):
        assert has_permission(agent.id, "view_complaints")
        assert not has_permission(agent.id, "delete_complaint")

    def test_has_any_permission(self, agent):
        assert has_any_permission(agent.id, ["delete_complaint", "view_requests"])
        assert not has_any_permission(agent.id, ["delete_complaint", "view_logs"])

    def test_missing_member_has_nothing(self, app):
        assert get_member_permissions(9999) == frozenset()

    def test_cache_until_invalidated(self, agent):
        assert not has_permission(agent.id, "view_logs")
        agent.permissions = ["view_logs"]
        db.session.commit()
        assert not has_permission(agent.id, "view_logs")  # still cached
        invalidate_cache(agent.id)
        assert has_permission(agent.id, "view_logs")


class TestDecorators:
    def test_401_without_member(self, client):
        res = client.get("/api/complaints")
        assert res.status_code == 401
        assert res.get_json() == {"error": "Not authenticated"}

    def test_403_lists_required(self, client, supervisor, login_as):
        login_as(supervisor)
        res = client.get("/api/complaints")
        assert res.status_code == 403
        body = res.get_json()
        assert body["error"] == "Permission denied"
        assert body["required_any"] == ["view_complaints"]

    def test_any_of_several(self, client, supervisor, login_as):
        login_as(supervisor)
        # view_technicians OR view_evaluations_page
        assert client.get("/api/field-technicians").status_code == 200

    def test_explicit_grant_opens_route(self, client, make_member, login_as):
        member = make_member("Agent", permissions=["view_logs"])
        login_as(member)
        assert client.get("/api/logs").status_code == 200

    def test_admin_passes_everything(self, client, admin, login_as):
        login_as(admin)
        for path in ("/api/logs", "/api/team-members", "/api/reports/basic",
                     "/api/evaluations/stats", "/api/requests/stats"):
            assert client.get(path).status_code == 200, path
