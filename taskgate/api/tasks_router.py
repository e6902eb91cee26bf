from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from taskgate.core.principal import Principal
from taskgate.models import TaskCategory, TaskPriority, TaskStatus
from taskgate.schemas.tasks import (
    TaskCreate,
    TaskPage,
    TaskQuery,
    TaskRead,
    TaskReorder,
    TaskStats,
    TaskUpdate,
)
from taskgate.services.base import provide_service
from taskgate.services.tasks import TaskService

from .dependencies import require_permission

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("/", response_model=TaskPage)
async def list_tasks(
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = Query(default=None),
    category: TaskCategory | None = Query(default=None),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(require_permission("tasks.list")),
    service: TaskService = Depends(provide_service(TaskService)),
) -> TaskPage:
    query = TaskQuery(
        status=status_filter,
        priority=priority,
        category=category,
        search=search,
        page=page,
        limit=limit,
    )
    tasks, total = await service.list(principal, query)
    return TaskPage(data=[TaskRead.model_validate(task) for task in tasks], total=total)


@router.get("/stats", response_model=TaskStats)
async def task_stats(
    principal: Principal = Depends(require_permission("tasks.stats")),
    service: TaskService = Depends(provide_service(TaskService)),
) -> TaskStats:
    return await service.stats(principal)


@router.put("/reorder", response_model=list[TaskRead])
async def reorder_tasks(
    payload: TaskReorder,
    principal: Principal = Depends(require_permission("tasks.reorder")),
    service: TaskService = Depends(provide_service(TaskService)),
) -> list[TaskRead]:
    tasks = await service.reorder(principal, payload.task_ids)
    return [TaskRead.model_validate(task) for task in tasks]


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: str,
    principal: Principal = Depends(require_permission("tasks.get")),
    service: TaskService = Depends(provide_service(TaskService)),
) -> TaskRead:
    task = await service.get(principal, task_id)
    return TaskRead.model_validate(task)


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    principal: Principal = Depends(require_permission("tasks.create")),
    service: TaskService = Depends(provide_service(TaskService)),
) -> TaskRead:
    task = await service.create(principal, payload)
    return TaskRead.model_validate(task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    principal: Principal = Depends(require_permission("tasks.update")),
    service: TaskService = Depends(provide_service(TaskService)),
) -> TaskRead:
    task = await service.update(principal, task_id, payload)
    return TaskRead.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    principal: Principal = Depends(require_permission("tasks.delete")),
    service: TaskService = Depends(provide_service(TaskService)),
) -> Response:
    await service.delete(principal, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
