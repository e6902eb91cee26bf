"""Single entry point collaborators use to ask for access and report outcomes.

Contract for callers: every attempt at a guarded operation produces exactly
one audit entry, whether it was allowed or denied. ``enforce`` bundles the
deny half of that contract so handlers cannot check-then-silently-return.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskgate.core.access import AccessDecision, Decision, ResourceDescriptor
from taskgate.core.errors import AccessDeniedError, DenyReason
from taskgate.core.logging import get_logger
from taskgate.core.organizations import OrganizationGraph
from taskgate.core.principal import Principal
from taskgate.core.roles import Permission
from taskgate.schemas.audit import AuditAction, AuditEntry, AuditEntryCreate, AuditFilter, AuditResource

from .audit import AuditFailureSink, AuditTrail
from .audit_store import AuditStore, SqlAuditStore

logger = get_logger("taskgate.authorization")


class AuthorizationFacade:
    def __init__(self, access: AccessDecision, trail: AuditTrail) -> None:
        self.access = access
        self.trail = trail

    @classmethod
    def build(
        cls,
        graph: OrganizationGraph,
        store: AuditStore,
        failure_sink: AuditFailureSink | None = None,
    ) -> "AuthorizationFacade":
        access = AccessDecision(graph)
        return cls(access, AuditTrail(store, access, failure_sink))

    @classmethod
    async def for_session(
        cls,
        session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        failure_sink: AuditFailureSink | None = None,
    ) -> "AuthorizationFacade":
        """Load the current organization graph and wire the SQL audit store."""

        graph = await OrganizationGraph.load(session)
        return cls.build(graph, SqlAuditStore(session_factory), failure_sink)

    @property
    def graph(self) -> OrganizationGraph:
        return self.access.graph

    def authorize(
        self,
        principal: Principal,
        permission: Permission | str,
        resource: ResourceDescriptor | None = None,
    ) -> Decision:
        decision = self.access.authorize(principal, permission, resource)
        if not decision:
            logger.info(
                "access.denied",
                principal_id=principal.id,
                role=principal.role.value,
                permission=_permission_name(permission),
                reason=decision.reason.value if decision.reason else None,
            )
        return decision

    async def record(
        self,
        principal: Optional[Principal],
        action: AuditAction | str,
        resource_type: AuditResource | str,
        resource_id: Optional[str],
        success: bool,
        details: Mapping[str, Any] | None = None,
        error_reason: Optional[str] = None,
        *,
        actor_email: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Append one audit entry. Never raises for store problems.

        ``principal`` may be ``None`` before identity is established, e.g. a
        failed login; ``actor_email`` then carries the submitted address.
        """

        entry = AuditEntryCreate(
            action=_value(action),
            resource_type=_value(resource_type),
            resource_id=str(resource_id) if resource_id is not None else None,
            actor_id=principal.id if principal else None,
            actor_email=actor_email or (principal.email if principal else None),
            organization_id=principal.organization_id if principal else None,
            details=dict(details or {}),
            success=success,
            error_reason=error_reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.trail.append(entry)

    async def enforce(
        self,
        principal: Principal,
        permission: Permission | str,
        resource: ResourceDescriptor | None = None,
        *,
        action: AuditAction | str,
        resource_type: AuditResource | str,
        resource_id: Optional[str] = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        """Authorize, and on deny record a failed entry then raise ``AccessDeniedError``."""

        decision = self.authorize(principal, permission, resource)
        if decision:
            return
        reason = decision.reason or DenyReason.INSUFFICIENT_ROLE
        await self.record(
            principal,
            action,
            resource_type,
            resource_id,
            False,
            {**(details or {}), "permission": _permission_name(permission)},
            reason.value,
        )
        raise AccessDeniedError(reason)

    async def query_audit(
        self, principal: Principal, filters: AuditFilter | None = None
    ) -> List[AuditEntry]:
        await self.enforce(
            principal,
            Permission.AUDIT_READ,
            action=AuditAction.AUDIT_VIEWED,
            resource_type=AuditResource.AUDIT,
        )
        return await self.trail.query(principal, filters)

    async def audit_for_resource(
        self, principal: Principal, resource_type: str, resource_id: str
    ) -> List[AuditEntry]:
        await self.enforce(
            principal,
            Permission.AUDIT_READ,
            action=AuditAction.AUDIT_VIEWED,
            resource_type=AuditResource.AUDIT,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        return await self.trail.for_resource(principal, resource_type, resource_id)

    async def audit_for_actor(self, principal: Principal, actor_id: str) -> List[AuditEntry]:
        await self.enforce(
            principal,
            Permission.AUDIT_READ,
            action=AuditAction.AUDIT_VIEWED,
            resource_type=AuditResource.AUDIT,
            details={"actor_id": actor_id},
        )
        return await self.trail.for_actor(principal, actor_id)

    async def login_history(
        self, principal: Principal, actor_id: str, *, days: int | None = None
    ) -> List[AuditEntry]:
        await self.enforce(
            principal,
            Permission.AUDIT_READ,
            action=AuditAction.AUDIT_VIEWED,
            resource_type=AuditResource.AUDIT,
            details={"actor_id": actor_id, "view": "login_history"},
        )
        return await self.trail.login_history(principal, actor_id, days=days)

    async def failed_logins(
        self, principal: Principal, *, email: str | None = None, hours: int | None = None
    ) -> List[AuditEntry]:
        try:
            return await self.trail.failed_logins(principal, email=email, hours=hours)
        except AccessDeniedError as exc:
            await self.record(
                principal,
                AuditAction.AUDIT_VIEWED,
                AuditResource.AUDIT,
                None,
                False,
                {"view": "failed_logins"},
                exc.reason.value,
            )
            raise


def _value(item: AuditAction | AuditResource | str) -> str:
    return item.value if isinstance(item, (AuditAction, AuditResource)) else str(item)



def _permission_name(permission: Permission | str) -> str:
    return permission.value if isinstance(permission, Permission) else str(permission)
