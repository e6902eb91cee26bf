import pytest

from taskgate.core.access import AccessDecision, ResourceDescriptor
from taskgate.core.errors import AccessDeniedError, DenyReason
from taskgate.core.principal import Principal
from taskgate.core.roles import Permission, Role
from taskgate.schemas.audit import AuditAction, AuditFilter, AuditResource
from taskgate.services.audit import AuditTrail, RecordingFailureSink
from taskgate.services.audit_store import InMemoryAuditStore
from taskgate.services.authorization import AuthorizationFacade

VIEWER = Principal(id="v1", role=Role.VIEWER, organization_id="engineering", email="v1@acme.com")
ADMIN = Principal(id="a1", role=Role.ADMIN, organization_id="acme", email="a1@acme.com")
OWNER = Principal(id="o1", role=Role.OWNER, organization_id="acme", email="o1@acme.com")


@pytest.fixture
def store():
    return InMemoryAuditStore()


@pytest.fixture
def facade(graph, store):
    return AuthorizationFacade.build(graph, store, RecordingFailureSink())


@pytest.mark.asyncio
async def test_enforce_allows_without_recording(facade, store):
    await facade.enforce(
        ADMIN,
        Permission.TASK_UPDATE,
        ResourceDescriptor(owner_id="x", organization_id="engineering"),
        action=AuditAction.TASK_UPDATED,
        resource_type=AuditResource.TASK,
        resource_id="t1",
    )
    assert len(store) == 0


@pytest.mark.asyncio
async def test_enforce_records_exactly_one_failure(facade, store):
    with pytest.raises(AccessDeniedError) as excinfo:
        await facade.enforce(
            VIEWER,
            Permission.TASK_DELETE,
            action=AuditAction.TASK_DELETED,
            resource_type=AuditResource.TASK,
            resource_id="t1",
        )

    assert excinfo.value.reason is DenyReason.INSUFFICIENT_ROLE
    assert len(store) == 1
    recorded = store.entries[0]
    assert recorded.success is False
    assert recorded.action == "TASK_DELETED"
    assert recorded.resource_type == "task"
    assert recorded.resource_id == "t1"
    assert recorded.actor_id == "v1"
    assert recorded.organization_id == "engineering"
    assert recorded.error_reason == "insufficient_role"
    assert recorded.details["permission"] == "task:delete"


@pytest.mark.asyncio
async def test_enforce_records_scope_denial(facade, store):
    with pytest.raises(AccessDeniedError) as excinfo:
        await facade.enforce(
            ADMIN,
            Permission.TASK_READ,
            ResourceDescriptor(owner_id="x", organization_id="globex"),
            action=AuditAction.ACCESS_DENIED,
            resource_type=AuditResource.TASK,
        )
    assert excinfo.value.reason is DenyReason.OUT_OF_SCOPE
    assert store.entries[0].error_reason == "out_of_scope"


@pytest.mark.asyncio
async def test_record_without_principal(facade, store):
    await facade.record(
        None,
        AuditAction.LOGIN_FAILED,
        AuditResource.AUTH,
        None,
        False,
        {"reason": "user_not_found"},
        "invalid_credentials",
        actor_email="ghost@example.com",
        ip_address="10.0.0.1",
    )
    recorded = store.entries[0]
    assert recorded.actor_id is None
    assert recorded.actor_email == "ghost@example.com"
    assert recorded.organization_id is None
    assert recorded.ip_address == "10.0.0.1"


@pytest.mark.asyncio
async def test_record_survives_store_failure(graph):
    class Unwritable(InMemoryAuditStore):
        async def add(self, entry, timestamp):
            raise TimeoutError("store timed out")

    sink = RecordingFailureSink()
    facade = AuthorizationFacade(
        AccessDecision(graph), AuditTrail(Unwritable(), AccessDecision(graph), sink)
    )

    await facade.record(ADMIN, AuditAction.TASK_CREATED, AuditResource.TASK, "t1", True)

    assert len(sink.failures) == 1


@pytest.mark.asyncio
async def test_successful_audit_reads_are_not_recorded(facade, store):
    await facade.record(ADMIN, AuditAction.TASK_CREATED, AuditResource.TASK, "t1", True)

    first = await facade.query_audit(ADMIN)
    second = await facade.query_audit(ADMIN, AuditFilter())

    assert [item.id for item in first] == [item.id for item in second]
    assert len(store) == 1


@pytest.mark.asyncio
async def test_denied_audit_read_is_recorded(facade, store):
    with pytest.raises(AccessDeniedError):
        await facade.query_audit(VIEWER)
    assert [item.action for item in store.entries] == ["AUDIT_VIEWED"]
    assert store.entries[0].success is False


@pytest.mark.asyncio
async def test_denied_failed_logins_view_is_recorded(facade, store):
    with pytest.raises(AccessDeniedError):
        await facade.failed_logins(ADMIN)
    assert store.entries[0].details == {"view": "failed_logins"}
    assert store.entries[0].error_reason == "insufficient_role"

    assert await facade.failed_logins(OWNER) == []


@pytest.mark.asyncio
async def test_plain_string_permissions_are_accepted(facade, store):
    decision = facade.authorize(VIEWER, "task:delete")
    assert decision.reason is DenyReason.INSUFFICIENT_ROLE
    assert facade.authorize(ADMIN, "task:read").allowed
    assert not facade.authorize(ADMIN, "task:launch")

    with pytest.raises(AccessDeniedError):
        await facade.enforce(
            VIEWER, "task:delete", action=AuditAction.TASK_DELETED, resource_type=AuditResource.TASK
        )
    entries = await store.list(None, AuditFilter(), 10)
    assert entries[0].details == {"permission": "task:delete"}
