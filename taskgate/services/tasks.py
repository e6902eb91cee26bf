from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.core.access import ResourceDescriptor
from taskgate.core.errors import NotFoundError, ValidationError
from taskgate.core.logging import logger
from taskgate.core.principal import Principal
from taskgate.core.roles import Permission, Role
from taskgate.models import VALID_STATUS_TRANSITIONS, Task, TaskPriority, TaskStatus
from taskgate.schemas.audit import AuditAction, AuditResource
from taskgate.schemas.tasks import TaskCreate, TaskQuery, TaskStats, TaskUpdate

from .authorization import AuthorizationFacade
from .base import GuardedService


def _descriptor(task: Task) -> ResourceDescriptor:
    return ResourceDescriptor(owner_id=task.owner_id, organization_id=task.organization_id)


class TaskService(GuardedService):
    resource_type = AuditResource.TASK.value

    def __init__(self, session: AsyncSession, authz: AuthorizationFacade) -> None:
        super().__init__(session, authz)

    async def create(self, principal: Principal, payload: TaskCreate) -> Task:
        action = AuditAction.TASK_CREATED.value
        organization_id = payload.organization_id or principal.organization_id
        # ownership is not a shortcut here: the target organization must be in scope
        await self.authz.enforce(
            principal,
            Permission.TASK_CREATE,
            ResourceDescriptor(organization_id=organization_id),
            action=action,
            resource_type=self.resource_type,
            details={"title": payload.title, "organization_id": organization_id},
        )
        max_position = await self.session.scalar(
            select(func.max(Task.position)).where(Task.organization_id == organization_id)
        )
        task = Task(
            title=payload.title,
            description=payload.description,
            status=payload.status.value,
            priority=payload.priority.value,
            category=payload.category.value,
            due_at=payload.due_at,
            owner_id=principal.id,
            organization_id=organization_id,
            position=(max_position or 0) + 1,
        )
        self.session.add(task)
        await self._commit(
            principal, action, None, {"title": payload.title, "organization_id": organization_id}, refresh=task
        )
        logger.info("task.created", task_id=task.id, organization_id=organization_id)
        await self.authz.record(
            principal, action, self.resource_type, task.id, True, {"title": task.title}
        )
        return task

    async def list(self, principal: Principal, query: TaskQuery | None = None) -> Tuple[List[Task], int]:
        await self.authz.enforce(
            principal,
            Permission.TASK_READ,
            action=AuditAction.ACCESS_DENIED,
            resource_type=self.resource_type,
        )
        query = query or TaskQuery()
        statement = select(Task).where(*self._scope_filters(principal))
        if query.status is not None:
            statement = statement.where(Task.status == query.status.value)
        if query.priority is not None:
            statement = statement.where(Task.priority == query.priority.value)
        if query.category is not None:
            statement = statement.where(Task.category == query.category.value)
        if query.search:
            pattern = f"%{query.search}%"
            statement = statement.where(
                or_(Task.title.ilike(pattern), Task.description.ilike(pattern))
            )

        total = await self.session.scalar(
            select(func.count()).select_from(statement.subquery())
        )
        result = await self.session.execute(
            statement.order_by(Task.position, Task.created_at)
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def stats(self, principal: Principal) -> TaskStats:
        """Counts over the tasks the principal could list."""

        await self.authz.enforce(
            principal,
            Permission.TASK_READ,
            action=AuditAction.ACCESS_DENIED,
            resource_type=self.resource_type,
        )
        filters = self._scope_filters(principal)
        by_status = {status.value: 0 for status in TaskStatus}
        result = await self.session.execute(
            select(Task.status, func.count()).where(*filters).group_by(Task.status)
        )
        by_status.update({status: int(count) for status, count in result.all()})
        by_priority = {priority.value: 0 for priority in TaskPriority}
        result = await self.session.execute(
            select(Task.priority, func.count()).where(*filters).group_by(Task.priority)
        )
        by_priority.update({priority: int(count) for priority, count in result.all()})
        overdue = await self.session.scalar(
            select(func.count())
            .select_from(Task)
            .where(
                *filters,
                Task.due_at.is_not(None),
                Task.due_at < datetime.now(timezone.utc),
                Task.status.not_in([TaskStatus.DONE.value, TaskStatus.CANCELLED.value]),
            )
        )
        return TaskStats(
            total=sum(by_status.values()),
            by_status=by_status,
            by_priority=by_priority,
            overdue=int(overdue or 0),
        )

    async def get(self, principal: Principal, task_id: str) -> Task:
        task = await self.session.get(Task, task_id)
        if task is None:
            raise NotFoundError("task_not_found")
        await self.authz.enforce(
            principal,
            Permission.TASK_READ,
            _descriptor(task),
            action=AuditAction.ACCESS_DENIED,
            resource_type=self.resource_type,
            resource_id=task.id,
        )
        return task

    async def update(self, principal: Principal, task_id: str, payload: TaskUpdate) -> Task:
        action = AuditAction.TASK_UPDATED.value
        task = await self.session.get(Task, task_id)
        if task is None:
            await self._fail(principal, action, task_id, NotFoundError("task_not_found"))
        await self.authz.enforce(
            principal,
            Permission.TASK_UPDATE,
            _descriptor(task),
            action=action,
            resource_type=self.resource_type,
            resource_id=task.id,
        )

        changes: Dict[str, Any] = payload.model_dump(exclude_unset=True)
        new_status = changes.get("status")
        if new_status is not None and new_status.value != task.status:
            allowed = VALID_STATUS_TRANSITIONS[TaskStatus(task.status)]
            if new_status not in allowed:
                await self._fail(
                    principal,
                    action,
                    task.id,
                    ValidationError("invalid_status_transition"),
                    {"from": task.status, "to": new_status.value},
                )

        before = {"title": task.title, "status": task.status}
        for field, value in changes.items():
            if value is None and field in {"title", "status", "priority", "category", "position"}:
                continue
            setattr(task, field, value.value if hasattr(value, "value") else value)
        await self._commit(principal, action, task_id, {"before": before}, refresh=task)
        logger.info("task.updated", task_id=task.id, fields=sorted(changes))
        await self.authz.record(
            principal,
            action,
            self.resource_type,
            task.id,
            True,
            {"before": before, "after": {"title": task.title, "status": task.status}},
        )
        return task

    async def delete(self, principal: Principal, task_id: str) -> None:
        action = AuditAction.TASK_DELETED.value
        task = await self.session.get(Task, task_id)
        if task is None:
            await self._fail(principal, action, task_id, NotFoundError("task_not_found"))
        await self.authz.enforce(
            principal,
            Permission.TASK_DELETE,
            _descriptor(task),
            action=action,
            resource_type=self.resource_type,
            resource_id=task.id,
        )
        title = task.title
        await self.session.delete(task)
        await self._commit(principal, action, task_id, {"title": title})
        logger.info("task.deleted", task_id=task_id)
        await self.authz.record(principal, action, self.resource_type, task_id, True, {"title": title})

    async def reorder(self, principal: Principal, task_ids: Sequence[str]) -> List[Task]:
        """Give the listed tasks positions in list order; all or nothing."""

        action = AuditAction.TASKS_REORDERED.value
        details = {"count": len(task_ids)}
        if len(set(task_ids)) != len(task_ids):
            await self._fail(principal, action, None, ValidationError("duplicate_task_ids"), details)
        result = await self.session.execute(select(Task).where(Task.id.in_(list(task_ids))))
        tasks = {task.id: task for task in result.scalars().all()}
        missing = [task_id for task_id in task_ids if task_id not in tasks]
        if missing:
            await self._fail(
                principal, action, None, NotFoundError("task_not_found"), {**details, "missing": missing}
            )
        # one denied task rejects the whole batch with a single entry
        for task_id in task_ids:
            await self.authz.enforce(
                principal,
                Permission.TASK_UPDATE,
                _descriptor(tasks[task_id]),
                action=action,
                resource_type=self.resource_type,
                resource_id=task_id,
                details=details,
            )

        for position, task_id in enumerate(task_ids):
            tasks[task_id].position = position
        await self._commit(principal, action, None, details)
        logger.info("tasks.reordered", count=len(task_ids))
        await self.authz.record(principal, action, self.resource_type, None, True, details)
        return [tasks[task_id] for task_id in task_ids]

    def _scope_filters(self, principal: Principal) -> List[Any]:
        if principal.role is Role.VIEWER:
            return [Task.owner_id == principal.id]
        visible = self.authz.access.visible_organizations(principal)
        if visible is None:
            return []
        return [Task.organization_id.in_(sorted(visible))]
