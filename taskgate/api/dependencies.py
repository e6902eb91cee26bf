from __future__ import annotations

from fastapi import Depends, Request

from taskgate.core.principal import Principal
from taskgate.core.rbac import get_principal
from taskgate.schemas.audit import AuditAction, AuditResource
from taskgate.services.authorization import AuthorizationFacade
from taskgate.services.base import get_authorization

from .permissions import permissions_for

_AUDIT_RESOURCE_BY_PREFIX = {
    "task": AuditResource.TASK,
    "user": AuditResource.USER,
    "org": AuditResource.ORGANIZATION,
    "audit": AuditResource.AUDIT,
}


def require_permission(route_id: str):
    """Dependency guarding one route with the permissions its table entry lists.

    A denial is recorded by the facade and surfaces as ``AccessDeniedError``,
    which the app turns into a generic 403.
    """

    required = sorted(permissions_for(route_id), key=lambda permission: permission.value)

    async def dependency(
        request: Request,
        principal: Principal = Depends(get_principal),
        authz: AuthorizationFacade = Depends(get_authorization),
    ) -> Principal:
        for permission in required:
            await authz.enforce(
                principal,
                permission,
                action=AuditAction.ACCESS_DENIED,
                resource_type=_AUDIT_RESOURCE_BY_PREFIX[permission.resource],
                details={"route": route_id, "path": request.url.path},
            )
        return principal

    return dependency


def client_meta(request: Request) -> dict[str, str | None]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }
