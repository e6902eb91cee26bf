from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from taskgate.core.principal import Principal
from taskgate.schemas.users import UserCreate, UserRead, UserUpdate
from taskgate.services.base import provide_service
from taskgate.services.users import UserService

from .dependencies import require_permission

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/", response_model=list[UserRead])
async def list_users(
    organization_id: str | None = Query(default=None),
    principal: Principal = Depends(require_permission("users.list")),
    service: UserService = Depends(provide_service(UserService)),
) -> list[UserRead]:
    users = await service.list(principal, organization_id)
    return [UserRead.model_validate(user) for user in users]


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: str,
    principal: Principal = Depends(require_permission("users.get")),
    service: UserService = Depends(provide_service(UserService)),
) -> UserRead:
    return UserRead.model_validate(await service.get(principal, user_id))


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    principal: Principal = Depends(require_permission("users.create")),
    service: UserService = Depends(provide_service(UserService)),
) -> UserRead:
    return UserRead.model_validate(await service.create(principal, payload))


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    principal: Principal = Depends(require_permission("users.update")),
    service: UserService = Depends(provide_service(UserService)),
) -> UserRead:
    return UserRead.model_validate(await service.update(principal, user_id, payload))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    principal: Principal = Depends(require_permission("users.delete")),
    service: UserService = Depends(provide_service(UserService)),
) -> Response:
    await service.delete(principal, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
