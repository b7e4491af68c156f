"""
Tests: role folding and the permission matrix.
"""

import pytest

from neta_ops.core.exceptions import AuthorizationError
from neta_ops.services.permission import (
    ActorContext,
    Role,
    check_permission,
    get_actor_permissions,
    has_permission,
    resolve_role,
)


@pytest.mark.parametrize("raw, expected", [
    ("Manager", Role.REVIEWER),
    (" SUPERVISOR ", Role.REVIEWER),
    ("reviewer", Role.REVIEWER),
    ("Administrator", Role.ADMIN),
    ("Technician", Role.USER),
    ("", Role.USER),
    (None, Role.USER),
    (Role.ADMIN, Role.ADMIN),
])
def test_resolve_role(raw, expected):
    assert resolve_role(raw) == expected


class TestMatrix:
    @pytest.mark.parametrize("perm", ["report_approve", "report_reject", "report_archive"])
    def test_review_permissions(self, perm):
        assert not has_permission(ActorContext("u", Role.USER), perm)
        assert has_permission(ActorContext("r", Role.REVIEWER), perm)
        assert has_permission(ActorContext("a", Role.ADMIN), perm)

    def test_admin_is_superset(self):
        reviewer = get_actor_permissions(ActorContext("r", Role.REVIEWER))
        admin = get_actor_permissions(ActorContext("a", Role.ADMIN))
        assert reviewer < admin
        assert "notification_manage" in admin

    def test_anonymous_has_nothing(self):
        assert get_actor_permissions(None) == set()
        assert not has_permission(None, "report_view")
        assert not has_permission(ActorContext(""), "report_view")


class TestCheckPermission:
    def test_anonymous(self):
        with pytest.raises(AuthorizationError) as exc_info:
            check_permission(None, "report_view")
        assert exc_info.value.user_id is None

    def test_denied_carries_role(self):
        with pytest.raises(AuthorizationError) as exc_info:
            check_permission(ActorContext("tech-1"), "report_approve")
        assert exc_info.value.role == "user"
        assert exc_info.value.details == {"required_permission": "report_approve"}

    def test_allowed(self):
        check_permission(ActorContext("mgr-1", Role.REVIEWER), "report_archive")
