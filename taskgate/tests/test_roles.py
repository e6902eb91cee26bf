import pytest

from taskgate.core.errors import UnknownRoleError
from taskgate.core.principal import Principal
from taskgate.core.roles import (
    OWNER_EXCLUSIVE,
    Permission,
    Role,
    has_permission,
    is_at_least,
    permissions_of,
    rank_of,
)

EXPECTED = {
    Role.OWNER: {
        "task:create", "task:read", "task:update", "task:delete",
        "user:create", "user:read", "user:update", "user:delete",
        "org:read", "org:update", "org:manage",
        "audit:read",
    },
    Role.ADMIN: {
        "task:create", "task:read", "task:update", "task:delete",
        "user:create", "user:read", "user:update",
        "org:read",
        "audit:read",
    },
    Role.VIEWER: {"task:read", "user:read", "org:read"},
}


@pytest.mark.parametrize("role", list(Role))
def test_permission_table_is_exact(role):
    assert {permission.value for permission in permissions_of(role)} == EXPECTED[role]


def test_ranks_are_ordered():
    assert rank_of(Role.OWNER) > rank_of(Role.ADMIN) > rank_of(Role.VIEWER) > 0
    assert is_at_least(Role.OWNER, Role.ADMIN)
    assert is_at_least(Role.ADMIN, Role.ADMIN)
    assert not is_at_least(Role.VIEWER, Role.ADMIN)


def test_owner_exclusive_permissions_are_not_inherited_by_admin():
    for permission in OWNER_EXCLUSIVE:
        assert has_permission(Role.OWNER, permission)
        assert not has_permission(Role.ADMIN, permission)
        assert not has_permission(Role.VIEWER, permission)


def test_unknown_role_fails_closed():
    assert rank_of("superuser") == 0
    assert permissions_of("superuser") == frozenset()
    assert not has_permission("superuser", Permission.TASK_READ)
    assert not is_at_least("superuser", Role.VIEWER)


def test_unknown_permission_string_is_denied():
    assert not has_permission(Role.OWNER, "task:archive")
    assert has_permission(Role.ADMIN, "task:create")


def test_role_strings_are_normalized():
    assert has_permission(" Admin ", Permission.AUDIT_READ)


def test_principal_rejects_unknown_role():
    with pytest.raises(UnknownRoleError):
        Principal(id="u1", role="superuser", organization_id="acme")
