import pytest

from taskgate.core.access import AccessDecision, ResourceDescriptor
from taskgate.core.errors import DenyReason
from taskgate.core.principal import Principal
from taskgate.core.roles import Permission, Role


@pytest.fixture
def access(graph):
    return AccessDecision(graph)


def test_owner_bypasses_scope(access):
    owner = Principal(id="o1", role=Role.OWNER, organization_id="acme")
    decision = access.authorize(
        owner, Permission.TASK_DELETE, ResourceDescriptor(owner_id="x", organization_id="globex")
    )
    assert decision.allowed


def test_missing_permission_is_insufficient_role(access):
    admin = Principal(id="a1", role=Role.ADMIN, organization_id="acme")
    decision = access.authorize(admin, Permission.ORG_MANAGE)
    assert not decision
    assert decision.reason is DenyReason.INSUFFICIENT_ROLE


def test_category_check_without_resource(access):
    viewer = Principal(id="v1", role=Role.VIEWER, organization_id="engineering")
    assert access.authorize(viewer, Permission.TASK_READ).allowed
    assert not access.authorize(viewer, Permission.TASK_CREATE).allowed


def test_viewer_reads_own_record(access):
    viewer = Principal(id="v1", role=Role.VIEWER, organization_id="engineering")
    decision = access.authorize(
        viewer, Permission.TASK_READ, ResourceDescriptor(owner_id="v1", organization_id="engineering")
    )
    assert decision.allowed


def test_viewer_restricted_to_own_records(access):
    viewer = Principal(id="v1", role=Role.VIEWER, organization_id="engineering")
    decision = access.authorize(
        viewer, Permission.TASK_READ, ResourceDescriptor(owner_id="v2", organization_id="engineering")
    )
    assert decision.reason is DenyReason.VIEWER_RESTRICTED_TO_OWN


def test_admin_in_parent_reaches_child_records(access):
    admin = Principal(id="a1", role=Role.ADMIN, organization_id="acme")
    decision = access.authorize(
        admin, Permission.TASK_UPDATE, ResourceDescriptor(owner_id="u9", organization_id="engineering")
    )
    assert decision.allowed


def test_admin_in_child_cannot_reach_parent(access):
    admin = Principal(id="a2", role=Role.ADMIN, organization_id="engineering")
    decision = access.authorize(
        admin, Permission.TASK_READ, ResourceDescriptor(owner_id="u9", organization_id="acme")
    )
    assert decision.reason is DenyReason.OUT_OF_SCOPE


def test_admin_cannot_reach_sibling(access):
    admin = Principal(id="a2", role=Role.ADMIN, organization_id="engineering")
    decision = access.authorize(
        admin, Permission.TASK_READ, ResourceDescriptor(owner_id="u9", organization_id="marketing")
    )
    assert decision.reason is DenyReason.OUT_OF_SCOPE


def test_resource_without_organization_is_out_of_scope(access):
    admin = Principal(id="a1", role=Role.ADMIN, organization_id="acme")
    decision = access.authorize(admin, Permission.TASK_READ, ResourceDescriptor(owner_id="u9"))
    assert decision.reason is DenyReason.OUT_OF_SCOPE


def test_visible_organizations(access):
    owner = Principal(id="o1", role=Role.OWNER, organization_id="acme")
    admin = Principal(id="a1", role=Role.ADMIN, organization_id="acme")
    child_admin = Principal(id="a2", role=Role.ADMIN, organization_id="engineering")
    assert access.visible_organizations(owner) is None
    assert access.visible_organizations(admin) == frozenset({"acme", "engineering", "marketing"})
    assert access.visible_organizations(child_admin) == frozenset({"engineering"})


def test_engineering_admin_cannot_delete_acme_task(access):
    admin = Principal(id="eng-admin", role=Role.ADMIN, organization_id="engineering")

    denied = access.authorize(
        admin, Permission.TASK_DELETE, ResourceDescriptor(organization_id="acme")
    )
    allowed = access.authorize(
        admin, Permission.TASK_DELETE, ResourceDescriptor(organization_id="engineering")
    )

    assert not denied
    assert denied.reason is DenyReason.OUT_OF_SCOPE
    assert allowed.allowed
