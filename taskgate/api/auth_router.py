from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from taskgate.core.principal import Principal
from taskgate.core.rate_limit import login_rate_limiter
from taskgate.core.roles import permissions_of
from taskgate.schemas.auth import LoginRequest, LoginResponse, PrincipalRead
from taskgate.schemas.users import UserRead
from taskgate.services.auth import AuthService
from taskgate.services.base import provide_service

from .dependencies import client_meta, require_permission

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(login_rate_limiter())])
async def login(
    payload: LoginRequest,
    request: Request,
    service: AuthService = Depends(provide_service(AuthService)),
) -> LoginResponse:
    result = await service.login(payload.email, payload.password, **client_meta(request))
    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        user=UserRead.model_validate(result.user),
    )


@router.get("/me", response_model=PrincipalRead)
async def me(principal: Principal = Depends(require_permission("auth.me"))) -> PrincipalRead:
    return PrincipalRead(
        id=principal.id,
        role=principal.role,
        organization_id=principal.organization_id,
        email=principal.email,
        permissions=sorted(permission.value for permission in permissions_of(principal.role)),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    principal: Principal = Depends(require_permission("auth.logout")),
    service: AuthService = Depends(provide_service(AuthService)),
) -> Response:
    await service.logout(principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
