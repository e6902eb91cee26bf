from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

from .errors import DenyReason, UnknownRoleError
from .organizations import OrganizationGraph
from .principal import Principal
from .roles import Permission, Role, has_permission


@dataclass(frozen=True)
class ResourceDescriptor:
    """Ownership coordinates of a single record being accessed."""

    owner_id: Optional[str] = None
    organization_id: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return _ALLOW

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


_ALLOW = Decision(allowed=True)


class AccessDecision:
    """Pure allow/deny evaluation over the role table and organization graph.

    Never performs I/O and never writes audit entries; callers record the
    outcome themselves (usually through ``AuthorizationFacade``).
    """

    def __init__(self, graph: OrganizationGraph) -> None:
        self.graph = graph

    def authorize(
        self,
        principal: Principal,
        permission: Permission,
        resource: ResourceDescriptor | None = None,
    ) -> Decision:
        if not isinstance(principal.role, Role):
            raise UnknownRoleError(principal.role)

        if not has_permission(principal.role, permission):
            return Decision.deny(DenyReason.INSUFFICIENT_ROLE)

        if resource is None:
            return Decision.allow()

        if principal.role is Role.OWNER:
            return Decision.allow()

        if principal.is_self(resource.owner_id):
            return Decision.allow()

        if Permission(permission).is_read_only and principal.role is Role.VIEWER:
            return Decision.deny(DenyReason.VIEWER_RESTRICTED_TO_OWN)

        if self.graph.is_accessible(principal.organization_id, resource.organization_id):
            return Decision.allow()
        return Decision.deny(DenyReason.OUT_OF_SCOPE)

    def visible_organizations(self, principal: Principal) -> Optional[FrozenSet[str]]:
        """Organizations a principal may list records from; ``None`` means every one."""

        if principal.role is Role.OWNER:
            return None
        return self.graph.resolve_scope(principal.organization_id)
