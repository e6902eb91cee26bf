from __future__ import annotations

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.core.access import ResourceDescriptor
from taskgate.core.errors import AccessDeniedError, ConflictError, DenyReason, NotFoundError
from taskgate.core.logging import logger
from taskgate.core.principal import Principal
from taskgate.core.roles import Permission, Role
from taskgate.core.security import hash_password
from taskgate.models import Organization, User
from taskgate.schemas.audit import AuditAction, AuditResource
from taskgate.schemas.users import UserCreate, UserUpdate

from .authorization import AuthorizationFacade
from .base import GuardedService


def _descriptor(user: User) -> ResourceDescriptor:
    return ResourceDescriptor(owner_id=user.id, organization_id=user.organization_id)


class UserService(GuardedService):
    resource_type = AuditResource.USER.value

    def __init__(self, session: AsyncSession, authz: AuthorizationFacade) -> None:
        super().__init__(session, authz)

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def list(self, principal: Principal, organization_id: str | None = None) -> List[User]:
        await self.authz.enforce(
            principal,
            Permission.USER_READ,
            action=AuditAction.ACCESS_DENIED,
            resource_type=self.resource_type,
        )
        query = select(User)
        if principal.role is Role.VIEWER:
            query = query.where(User.id == principal.id)
        else:
            visible = self.authz.access.visible_organizations(principal)
            if visible is not None:
                query = query.where(User.organization_id.in_(sorted(visible)))
        if organization_id is not None:
            query = query.where(User.organization_id == organization_id)
        result = await self.session.execute(query.order_by(User.email))
        return list(result.scalars().all())

    async def get(self, principal: Principal, user_id: str) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("user_not_found")
        await self.authz.enforce(
            principal,
            Permission.USER_READ,
            _descriptor(user),
            action=AuditAction.ACCESS_DENIED,
            resource_type=self.resource_type,
            resource_id=user.id,
        )
        return user

    async def create(self, principal: Principal, payload: UserCreate) -> User:
        action = AuditAction.USER_REGISTERED.value
        details = {"email": payload.email, "role": payload.role.value}
        await self.authz.enforce(
            principal,
            Permission.USER_CREATE,
            ResourceDescriptor(organization_id=payload.organization_id),
            action=action,
            resource_type=self.resource_type,
            details=details,
        )
        if not principal.is_at_least(payload.role):
            # nobody may grant a role above their own
            await self._fail(
                principal, action, None, AccessDeniedError(DenyReason.INSUFFICIENT_ROLE), details
            )
        if await self.session.get(Organization, payload.organization_id) is None:
            await self._fail(principal, action, None, NotFoundError("organization_not_found"), details)
        if await self.get_by_email(payload.email) is not None:
            await self._fail(principal, action, None, ConflictError("email_already_registered"), details)

        user = User(
            email=payload.email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=payload.role,
            organization_id=payload.organization_id,
        )
        self.session.add(user)
        await self._commit(principal, action, None, details, refresh=user)
        logger.info("user.created", user_id=user.id, organization_id=user.organization_id)
        await self.authz.record(principal, action, self.resource_type, user.id, True, details)
        return user

    async def update(self, principal: Principal, user_id: str, payload: UserUpdate) -> User:
        """Edit a profile. Anyone may edit their own; role changes are for owners only."""

        action = AuditAction.USER_UPDATED.value
        user = await self.session.get(User, user_id)
        if user is None:
            await self._fail(principal, action, user_id, NotFoundError("user_not_found"))
        if not principal.is_self(user.id):
            await self.authz.enforce(
                principal,
                Permission.USER_UPDATE,
                _descriptor(user),
                action=action,
                resource_type=self.resource_type,
                resource_id=user.id,
            )

        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        before = {"email": user.email, "role": user.role.value}
        new_role = changes.get("role")
        if new_role is not None and new_role is not user.role and not principal.is_owner:
            await self._fail(
                principal,
                action,
                user.id,
                AccessDeniedError(DenyReason.INSUFFICIENT_ROLE),
                {"before": before, "role": new_role.value},
            )
        new_email = changes.get("email")
        if new_email is not None and new_email != user.email:
            if await self.get_by_email(new_email) is not None:
                await self._fail(
                    principal, action, user.id, ConflictError("email_already_registered"), {"before": before}
                )

        password = changes.pop("password", None)
        if password is not None:
            user.password_hash = hash_password(password)
        for field, value in changes.items():
            setattr(user, field, value)
        await self._commit(principal, action, user.id, {"before": before}, refresh=user)
        logger.info("user.updated", user_id=user.id, fields=sorted(payload.model_fields_set))
        await self.authz.record(
            principal,
            action,
            self.resource_type,
            user.id,
            True,
            {
                "before": before,
                "after": {"email": user.email, "role": user.role.value},
                "password_changed": password is not None,
            },
        )
        return user

    async def delete(self, principal: Principal, user_id: str) -> None:
        action = AuditAction.USER_DELETED.value
        user = await self.session.get(User, user_id)
        if user is None:
            await self._fail(principal, action, user_id, NotFoundError("user_not_found"))
        await self.authz.enforce(
            principal,
            Permission.USER_DELETE,
            _descriptor(user),
            action=action,
            resource_type=self.resource_type,
            resource_id=user.id,
        )
        email = user.email
        await self.session.delete(user)
        await self._commit(principal, action, user_id, {"email": email})
        logger.info("user.deleted", user_id=user_id)
        # actor_email stays on past entries; this one keeps the deleted address in details
        await self.authz.record(principal, action, self.resource_type, user_id, True, {"email": email})
