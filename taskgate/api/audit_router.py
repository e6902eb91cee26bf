from __future__ import annotations

from datetime import datetime

import pydantic
from fastapi import APIRouter, Depends, Query

from taskgate.core.errors import ValidationError
from taskgate.core.principal import Principal
from taskgate.core.settings import settings
from taskgate.schemas.audit import AuditEntry, AuditFilter, AuditPage
from taskgate.services.authorization import AuthorizationFacade
from taskgate.services.base import get_authorization

from .dependencies import require_permission

router = APIRouter(prefix="/api/audit-log", tags=["audit"])


@router.get("/", response_model=AuditPage)
async def list_audit_log(
    action: str | None = Query(default=None),
    resource_type: str | None = Query(default=None),
    resource_id: str | None = Query(default=None),
    organization_id: str | None = Query(default=None),
    actor_id: str | None = Query(default=None),
    actor_email: str | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    success: bool | None = Query(default=None),
    limit: int = Query(default=settings.audit_default_limit, ge=1, le=settings.audit_max_limit),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(require_permission("audit.list")),
    authz: AuthorizationFacade = Depends(get_authorization),
) -> AuditPage:
    try:
        filters = AuditFilter(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            organization_id=organization_id,
            actor_id=actor_id,
            actor_email=actor_email,
            start=start,
            end=end,
            success=success,
            limit=limit,
            offset=offset,
        )
    except pydantic.ValidationError as exc:
        raise ValidationError("invalid_audit_filter") from exc
    entries = await authz.query_audit(principal, filters)
    return AuditPage(data=entries, limit=limit, offset=offset)


@router.get("/user/{user_id}", response_model=list[AuditEntry])
async def audit_for_user(
    user_id: str,
    principal: Principal = Depends(require_permission("audit.by_user")),
    authz: AuthorizationFacade = Depends(get_authorization),
) -> list[AuditEntry]:
    return await authz.audit_for_actor(principal, user_id)


@router.get("/resource/{resource_type}/{resource_id}", response_model=list[AuditEntry])
async def audit_for_resource(
    resource_type: str,
    resource_id: str,
    principal: Principal = Depends(require_permission("audit.by_resource")),
    authz: AuthorizationFacade = Depends(get_authorization),
) -> list[AuditEntry]:
    return await authz.audit_for_resource(principal, resource_type, resource_id)


@router.get("/login-history/{user_id}", response_model=list[AuditEntry])
async def login_history(
    user_id: str,
    days: int = Query(default=settings.login_history_days, ge=1, le=365),
    principal: Principal = Depends(require_permission("audit.login_history")),
    authz: AuthorizationFacade = Depends(get_authorization),
) -> list[AuditEntry]:
    return await authz.login_history(principal, user_id, days=days)


@router.get("/failed-logins", response_model=list[AuditEntry])
async def failed_logins(
    email: str | None = Query(default=None),
    hours: int = Query(default=settings.failed_login_window_hours, ge=1, le=24 * 30),
    principal: Principal = Depends(require_permission("audit.failed_logins")),
    authz: AuthorizationFacade = Depends(get_authorization),
) -> list[AuditEntry]:
    return await authz.failed_logins(principal, email=email, hours=hours)
