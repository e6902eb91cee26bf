from __future__ import annotations

from typing import FrozenSet, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskgate.core.access import ResourceDescriptor
from taskgate.core.errors import NotFoundError, ValidationError
from taskgate.core.logging import logger
from taskgate.core.principal import Principal
from taskgate.core.roles import Permission, Role
from taskgate.models import Organization, Task, User
from taskgate.schemas.audit import AuditAction, AuditResource
from taskgate.schemas.orgs import OrganizationCreate, OrganizationUpdate

from .authorization import AuthorizationFacade
from .base import GuardedService


class OrganizationService(GuardedService):
    resource_type = AuditResource.ORGANIZATION.value

    def __init__(self, session: AsyncSession, authz: AuthorizationFacade) -> None:
        super().__init__(session, authz)

    async def list(self, principal: Principal) -> List[Organization]:
        await self.authz.enforce(
            principal,
            Permission.ORG_READ,
            action=AuditAction.ACCESS_DENIED,
            resource_type=self.resource_type,
        )
        query = (
            select(Organization)
            .options(selectinload(Organization.children))
            .order_by(Organization.created_at, Organization.name)
        )
        visible = self.visible_ids(principal)
        if visible is not None:
            query = query.where(Organization.id.in_(sorted(visible)))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def hierarchy(self, principal: Principal) -> List[Organization]:
        """Top-most visible organizations, each carrying its children.

        A child organization whose parent is out of view is returned as a top
        level entry of its own.
        """

        organizations = await self.list(principal)
        visible = {org.id for org in organizations}
        return [org for org in organizations if org.parent_id not in visible]

    async def get(self, principal: Principal, organization_id: str) -> Organization:
        organization = await self._load(organization_id)
        if organization is None:
            raise NotFoundError("organization_not_found")
        # a principal's own organization counts as its own record
        resource = (
            None
            if organization.id == principal.organization_id
            else ResourceDescriptor(organization_id=organization.id)
        )
        await self.authz.enforce(
            principal,
            Permission.ORG_READ,
            resource,
            action=AuditAction.ACCESS_DENIED,
            resource_type=self.resource_type,
            resource_id=organization.id,
        )
        return organization

    async def create(self, principal: Principal, payload: OrganizationCreate) -> Organization:
        action = AuditAction.ORGANIZATION_CREATED.value
        await self.authz.enforce(
            principal,
            Permission.ORG_MANAGE,
            action=action,
            resource_type=self.resource_type,
            details={"name": payload.name},
        )
        if payload.parent_id is not None:
            parent = await self.session.get(Organization, payload.parent_id)
            if parent is None:
                await self._fail(
                    principal,
                    action,
                    None,
                    NotFoundError("parent_organization_not_found"),
                    {"name": payload.name, "parent_id": payload.parent_id},
                )
            if parent.parent_id is not None:
                await self._fail(
                    principal,
                    action,
                    None,
                    ValidationError("organization_depth_exceeded"),
                    {"name": payload.name, "parent_id": payload.parent_id},
                )

        organization = Organization(
            name=payload.name,
            description=payload.description,
            parent_id=payload.parent_id,
        )
        self.session.add(organization)
        await self._commit(
            principal, action, None, {"name": payload.name, "parent_id": payload.parent_id}
        )
        organization = await self._load(organization.id)
        logger.info("organization.created", organization_id=organization.id, name=organization.name)
        await self.authz.record(
            principal,
            action,
            self.resource_type,
            organization.id,
            True,
            {"name": organization.name, "parent_id": organization.parent_id},
        )
        return organization

    async def update(
        self, principal: Principal, organization_id: str, payload: OrganizationUpdate
    ) -> Organization:
        action = AuditAction.ORGANIZATION_UPDATED.value
        organization = await self._load(organization_id)
        if organization is None:
            await self._fail(principal, action, organization_id, NotFoundError("organization_not_found"))
        await self.authz.enforce(
            principal,
            Permission.ORG_UPDATE,
            ResourceDescriptor(organization_id=organization.id),
            action=action,
            resource_type=self.resource_type,
            resource_id=organization.id,
        )
        before = {"name": organization.name, "description": organization.description}
        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if field == "name" and value is None:
                continue
            setattr(organization, field, value)
        await self._commit(principal, action, organization_id, {"before": before})
        organization = await self._load(organization_id)
        logger.info("organization.updated", organization_id=organization_id, fields=sorted(changes))
        await self.authz.record(
            principal,
            action,
            self.resource_type,
            organization_id,
            True,
            {"before": before, "after": {"name": organization.name, "description": organization.description}},
        )
        return organization

    async def delete(self, principal: Principal, organization_id: str) -> None:
        action = AuditAction.ORGANIZATION_DELETED.value
        organization = await self._load(organization_id)
        if organization is None:
            await self._fail(principal, action, organization_id, NotFoundError("organization_not_found"))
        await self.authz.enforce(
            principal,
            Permission.ORG_MANAGE,
            ResourceDescriptor(organization_id=organization.id),
            action=action,
            resource_type=self.resource_type,
            resource_id=organization.id,
        )
        if organization.children:
            await self._fail(
                principal, action, organization_id, ValidationError("organization_has_children")
            )
        user_count = await self.session.scalar(
            select(func.count()).select_from(User).where(User.organization_id == organization_id)
        )
        if user_count:
            await self._fail(
                principal, action, organization_id, ValidationError("organization_has_users")
            )
        task_count = await self.session.scalar(
            select(func.count()).select_from(Task).where(Task.organization_id == organization_id)
        )
        if task_count:
            await self._fail(
                principal, action, organization_id, ValidationError("organization_has_tasks")
            )

        name = organization.name
        await self.session.delete(organization)
        await self._commit(principal, action, organization_id, {"name": name})
        logger.info("organization.deleted", organization_id=organization_id)
        await self.authz.record(principal, action, self.resource_type, organization_id, True, {"name": name})

    async def _load(self, organization_id: str) -> Organization | None:
        result = await self.session.execute(
            select(Organization)
            .options(selectinload(Organization.children))
            .where(Organization.id == organization_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def visible_ids(self, principal: Principal) -> FrozenSet[str] | None:
        """Organizations whose records the principal may see; ``None`` means all."""

        if principal.role is Role.VIEWER:
            return frozenset({principal.organization_id})
        return self.authz.access.visible_organizations(principal)
