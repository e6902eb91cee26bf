from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from taskgate.core.errors import AccessDeniedError, NotFoundError, ValidationError
from taskgate.models import TaskPriority, TaskStatus
from taskgate.schemas.audit import AuditFilter
from taskgate.schemas.tasks import TaskCreate, TaskQuery, TaskUpdate
from taskgate.services.tasks import TaskService


async def audit_entries(authz, **filters):
    return await authz.trail.store.list(None, AuditFilter(**filters), 100)


@pytest.mark.asyncio
async def test_admin_creates_task_in_child_org(session, authz, seeded):
    service = TaskService(session, authz)
    task = await service.create(
        seeded.principals["acme_admin"],
        TaskCreate(title="Ship release", organization_id="engineering"),
    )
    second = await service.create(
        seeded.principals["acme_admin"],
        TaskCreate(title="Write notes", organization_id="engineering"),
    )

    assert task.organization_id == "engineering"
    assert task.owner_id == "acme_admin"
    assert second.position == task.position + 1

    entries = await audit_entries(authz, action="TASK_CREATED")
    assert {entry.resource_id for entry in entries} == {task.id, second.id}
    assert all(entry.success for entry in entries)


@pytest.mark.asyncio
async def test_child_admin_cannot_create_in_sibling(session, authz, seeded):
    service = TaskService(session, authz)
    with pytest.raises(AccessDeniedError):
        await service.create(
            seeded.principals["eng_admin"],
            TaskCreate(title="Campaign", organization_id="marketing"),
        )

    entries = await audit_entries(authz, action="TASK_CREATED")
    assert len(entries) == 1
    assert entries[0].success is False
    assert entries[0].error_reason == "out_of_scope"


@pytest.mark.asyncio
async def test_viewer_cannot_create(session, authz, seeded):
    service = TaskService(session, authz)
    with pytest.raises(AccessDeniedError):
        await service.create(seeded.principals["eng_viewer"], TaskCreate(title="Nope"))


@pytest.mark.asyncio
async def test_listing_is_scoped(session, authz, seeded):
    service = TaskService(session, authz)
    owner = seeded.principals["owner"]
    await service.create(owner, TaskCreate(title="Acme plan", organization_id="acme"))
    await service.create(owner, TaskCreate(title="Eng plan", organization_id="engineering"))
    await service.create(owner, TaskCreate(title="Mkt plan", organization_id="marketing"))
    await service.create(owner, TaskCreate(title="Globex plan", organization_id="globex"))

    def titles(tasks):
        return {task.title for task in tasks}

    everything, total = await service.list(owner)
    assert total == 4

    acme, _ = await service.list(seeded.principals["acme_admin"])
    assert titles(acme) == {"Acme plan", "Eng plan", "Mkt plan"}

    engineering, _ = await service.list(seeded.principals["eng_admin"])
    assert titles(engineering) == {"Eng plan"}

    searched, total = await service.list(owner, TaskQuery(search="plan", limit=2))
    assert len(searched) == 2
    assert total == 4


@pytest.mark.asyncio
async def test_viewer_reads_only_own_tasks(session, authz, seeded):
    service = TaskService(session, authz)
    others = await service.create(
        seeded.principals["eng_admin"], TaskCreate(title="Admin task", organization_id="engineering")
    )

    listed, total = await service.list(seeded.principals["eng_viewer"])
    assert listed == []
    assert total == 0

    with pytest.raises(AccessDeniedError):
        await service.get(seeded.principals["eng_viewer"], others.id)

    denied = await audit_entries(authz, action="ACCESS_DENIED")
    assert denied[0].error_reason == "viewer_restricted_to_own"
    assert denied[0].resource_id == others.id


@pytest.mark.asyncio
async def test_update_validates_status_transition(session, authz, seeded):
    service = TaskService(session, authz)
    admin = seeded.principals["acme_admin"]
    task = await service.create(admin, TaskCreate(title="Flow"))

    updated = await service.update(admin, task.id, TaskUpdate(status=TaskStatus.IN_PROGRESS))
    assert updated.status == "in_progress"
    await service.update(admin, task.id, TaskUpdate(status=TaskStatus.DONE))

    with pytest.raises(ValidationError):
        await service.update(admin, task.id, TaskUpdate(status=TaskStatus.CANCELLED))

    updates = sorted(await audit_entries(authz, action="TASK_UPDATED"), key=lambda entry: entry.id)
    assert [entry.success for entry in updates] == [True, True, False]
    assert updates[0].details["after"]["status"] == "in_progress"
    assert updates[2].error_reason == "invalid_status_transition"
    assert updates[2].details == {"from": "done", "to": "cancelled"}


@pytest.mark.asyncio
async def test_delete_missing_task_is_recorded(session, authz, seeded):
    service = TaskService(session, authz)
    with pytest.raises(NotFoundError):
        await service.delete(seeded.principals["acme_admin"], "missing")

    entries = await audit_entries(authz, action="TASK_DELETED")
    assert entries[0].success is False
    assert entries[0].error_reason == "task_not_found"


@pytest.mark.asyncio
async def test_delete_task(session, authz, seeded):
    service = TaskService(session, authz)
    admin = seeded.principals["eng_admin"]
    task = await service.create(admin, TaskCreate(title="Temporary"))

    await service.delete(admin, task.id)

    with pytest.raises(NotFoundError):
        await service.get(admin, task.id)


@pytest.mark.asyncio
async def test_failed_commit_is_recorded_once(session, authz, seeded, monkeypatch):
    service = TaskService(session, authz)

    async def failing_commit():
        raise IntegrityError("INSERT INTO tasks", {}, Exception("constraint failed"))

    monkeypatch.setattr(session, "commit", failing_commit)
    with pytest.raises(IntegrityError):
        await service.create(seeded.principals["acme_admin"], TaskCreate(title="x"))

    entries = await audit_entries(authz, action="TASK_CREATED")
    assert len(entries) == 1
    assert entries[0].success is False
    assert entries[0].error_reason == "IntegrityError"
    assert entries[0].details == {"title": "x", "organization_id": "acme"}


@pytest.mark.asyncio
async def test_stats_follow_listing_scope(session, authz, seeded):
    service = TaskService(session, authz)
    owner = seeded.principals["owner"]
    past = datetime.now(timezone.utc) - timedelta(days=3)
    await service.create(owner, TaskCreate(title="Late", organization_id="engineering", due_at=past))
    await service.create(
        owner,
        TaskCreate(title="Urgent", organization_id="engineering", priority=TaskPriority.URGENT),
    )
    await service.create(
        owner,
        TaskCreate(title="Finished late", organization_id="acme", status=TaskStatus.DONE, due_at=past),
    )
    await service.create(owner, TaskCreate(title="Elsewhere", organization_id="globex"))

    everything = await service.stats(owner)
    assert everything.total == 4
    assert everything.overdue == 1
    assert everything.by_status == {"todo": 3, "in_progress": 0, "done": 1, "cancelled": 0}

    engineering = await service.stats(seeded.principals["eng_admin"])
    assert engineering.total == 2
    assert engineering.by_priority["urgent"] == 1
    assert engineering.by_priority["medium"] == 1

    viewer = await service.stats(seeded.principals["eng_viewer"])
    assert viewer.total == 0
    assert viewer.overdue == 0


@pytest.mark.asyncio
async def test_reorder_sets_positions_and_records_once(session, authz, seeded):
    service = TaskService(session, authz)
    admin = seeded.principals["eng_admin"]
    first = await service.create(admin, TaskCreate(title="First"))
    second = await service.create(admin, TaskCreate(title="Second"))
    third = await service.create(admin, TaskCreate(title="Third"))

    reordered = await service.reorder(admin, [third.id, first.id, second.id])

    assert [task.title for task in reordered] == ["Third", "First", "Second"]
    assert [task.position for task in reordered] == [0, 1, 2]
    entries = await audit_entries(authz, action="TASKS_REORDERED")
    assert len(entries) == 1
    assert entries[0].success is True
    assert entries[0].details == {"count": 3}


@pytest.mark.asyncio
async def test_reorder_rejects_out_of_scope_batch(session, authz, seeded):
    service = TaskService(session, authz)
    mine = await service.create(seeded.principals["eng_admin"], TaskCreate(title="Mine"))
    theirs = await service.create(seeded.principals["mkt_admin"], TaskCreate(title="Theirs"))

    with pytest.raises(AccessDeniedError):
        await service.reorder(seeded.principals["eng_admin"], [mine.id, theirs.id])
    with pytest.raises(NotFoundError):
        await service.reorder(seeded.principals["eng_admin"], [mine.id, "missing"])
    with pytest.raises(ValidationError):
        await service.reorder(seeded.principals["eng_admin"], [mine.id, mine.id])

    entries = await audit_entries(authz, action="TASKS_REORDERED")
    assert len(entries) == 3
    assert {entry.error_reason for entry in entries} == {
        "out_of_scope", "task_not_found", "duplicate_task_ids",
    }
    untouched = await service.get(seeded.principals["eng_admin"], mine.id)
    assert untouched.position == 1
