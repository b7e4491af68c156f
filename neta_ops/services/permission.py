"""
Report Workflow — Role-Based Access Control

Uses PERMISSION_MATRIX to enforce report and asset actions. Roles arrive from
the authentication context as free-form strings ("Manager", "Supervisor",
"admin", ...) and are folded onto three workflow roles by ``resolve_role``.

Usage:
    from neta_ops.services.permission import ActorContext, check_permission

    actor = ActorContext(user_id="u-1", role=resolve_role("Manager"))

    # Raises AuthorizationError if not allowed
    check_permission(actor, "report_approve")

    # Boolean check
    if has_permission(actor, "report_archive"):
        ...
"""

from dataclasses import dataclass
from enum import Enum

from neta_ops.core.exceptions import AuthorizationError


class Role(str, Enum):
    USER = "user"
    REVIEWER = "reviewer"
    ADMIN = "admin"


# Upstream role name (lower-cased) → workflow role. Anything else is USER.
ROLE_ALIASES = {
    "admin": Role.ADMIN,
    "administrator": Role.ADMIN,
    "manager": Role.REVIEWER,
    "supervisor": Role.REVIEWER,
    "reviewer": Role.REVIEWER,
}

_USER_PERMISSIONS = frozenset({
    "report_create",
    "report_edit_draft",
    "report_submit",
    "report_view",
    "asset_manage",
    "asset_revert",
})

_REVIEWER_PERMISSIONS = _USER_PERMISSIONS | {
    "report_approve",
    "report_reject",
    "report_archive",
    "report_submit_any",
}

PERMISSION_MATRIX: dict[Role, frozenset[str]] = {
    Role.USER: _USER_PERMISSIONS,
    Role.REVIEWER: _REVIEWER_PERMISSIONS,
    Role.ADMIN: _REVIEWER_PERMISSIONS | {"notification_manage"},
}


@dataclass(frozen=True)
class ActorContext:
    """The authenticated user performing an operation."""

    user_id: str
    role: Role = Role.USER
    name: str | None = None

    @property
    def is_reviewer(self) -> bool:
        return self.role in (Role.REVIEWER, Role.ADMIN)


def resolve_role(raw_role) -> Role:
    """Map an upstream role string (or Role) onto a workflow Role."""
    if isinstance(raw_role, Role):
        return raw_role
    if not raw_role:
        return Role.USER
    return ROLE_ALIASES.get(str(raw_role).strip().lower(), Role.USER)


def has_permission(actor: ActorContext | None, permission: str) -> bool:
    """
    Check if an actor may perform an action.

    Args:
        actor: Resolved actor, or None for anonymous callers
        permission: Permission string (e.g. 'report_submit', 'report_approve')

    Returns:
        True if the actor's role grants the permission.
    """
    if actor is None or not actor.user_id:
        return False
    return permission in PERMISSION_MATRIX.get(actor.role, frozenset())


def check_permission(actor: ActorContext | None, permission: str) -> None:
    """
    Assert the actor has a permission; raise AuthorizationError if not.

    Raises:
        AuthorizationError: anonymous actor, or role lacks the permission.
    """
    if actor is None or not actor.user_id:
        raise AuthorizationError(None, permission)
    if not has_permission(actor, permission):
        raise AuthorizationError(actor.user_id, permission, role=getattr(actor.role, "value", actor.role))


def get_actor_permissions(actor: ActorContext | None) -> set[str]:
    """Get every permission granted to the actor's role."""
    if actor is None or not actor.user_id:
        return set()
    return set(PERMISSION_MATRIX.get(actor.role, frozenset()))
