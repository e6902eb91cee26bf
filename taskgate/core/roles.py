from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Mapping


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    VIEWER = "viewer"


class Permission(str, Enum):
    TASK_CREATE = "task:create"
    TASK_READ = "task:read"
    TASK_UPDATE = "task:update"
    TASK_DELETE = "task:delete"

    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"

    ORG_READ = "org:read"
    ORG_UPDATE = "org:update"
    ORG_MANAGE = "org:manage"

    AUDIT_READ = "audit:read"

    @property
    def resource(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]

    @property
    def is_read_only(self) -> bool:
        return self.action == "read"


ROLE_RANK: Mapping[Role, int] = {
    Role.OWNER: 3,
    Role.ADMIN: 2,
    Role.VIEWER: 1,
}

_VIEWER_PERMISSIONS = frozenset(
    {
        Permission.TASK_READ,
        # row-level "own record only" is enforced by AccessDecision
        Permission.USER_READ,
        Permission.ORG_READ,
    }
)

_ADMIN_PERMISSIONS = _VIEWER_PERMISSIONS | {
    Permission.TASK_CREATE,
    Permission.TASK_UPDATE,
    Permission.TASK_DELETE,
    Permission.USER_CREATE,
    Permission.USER_UPDATE,
    Permission.AUDIT_READ,
}

# user:delete, org:update and org:manage are deliberately not inherited by rank.
OWNER_EXCLUSIVE: FrozenSet[Permission] = frozenset(
    {Permission.USER_DELETE, Permission.ORG_UPDATE, Permission.ORG_MANAGE}
)

ROLE_PERMISSIONS: Mapping[Role, FrozenSet[Permission]] = {
    Role.OWNER: frozenset(_ADMIN_PERMISSIONS | OWNER_EXCLUSIVE),
    Role.ADMIN: frozenset(_ADMIN_PERMISSIONS),
    Role.VIEWER: _VIEWER_PERMISSIONS,
}


def coerce_role(value: object) -> Role | None:
    """Return the matching ``Role`` or ``None`` for anything unrecognized."""

    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value.strip().lower())
        except ValueError:
            return None
    return None


def rank_of(role: object) -> int:
    resolved = coerce_role(role)
    if resolved is None:
        return 0
    return ROLE_RANK[resolved]


def permissions_of(role: object) -> FrozenSet[Permission]:
    resolved = coerce_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_PERMISSIONS[resolved]


def has_permission(role: object, permission: Permission | str) -> bool:
    try:
        wanted = Permission(permission)
    except ValueError:
        return False
    return wanted in permissions_of(role)


def is_at_least(role: object, required: Role) -> bool:
    held = rank_of(role)
    return held > 0 and held >= ROLE_RANK[required]
