from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.core.errors import AuthenticationError
from taskgate.core.logging import logger
from taskgate.core.principal import Principal
from taskgate.core.security import create_access_token, verify_password
from taskgate.core.settings import settings
from taskgate.models import User
from taskgate.schemas.audit import AuditAction, AuditResource

from .authorization import AuthorizationFacade
from .base import GuardedService

INVALID_CREDENTIALS = "invalid_credentials"


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    expires_in: int
    user: User
    principal: Principal


class AuthService(GuardedService):
    """Password login and logout. Every attempt lands in the audit trail."""

    resource_type = AuditResource.AUTH.value

    def __init__(self, session: AsyncSession, authz: AuthorizationFacade) -> None:
        super().__init__(session, authz)

    async def login(
        self,
        email: str,
        password: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        action = AuditAction.LOGIN_FAILED.value
        request_meta = {"ip_address": ip_address, "user_agent": user_agent}
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()

        if user is None:
            logger.info("auth.login_failed", reason="user_not_found")
            await self._fail(
                None,
                action,
                None,
                AuthenticationError(INVALID_CREDENTIALS),
                {"reason": "user_not_found"},
                actor_email=email,
                **request_meta,
            )

        principal = self._principal_for(user)
        if not user.is_active:
            logger.info("auth.login_failed", reason="account_deactivated", user_id=user.id)
            await self._fail(
                principal,
                action,
                None,
                AuthenticationError("account_deactivated"),
                {"reason": "account_deactivated"},
                **request_meta,
            )
        if not verify_password(password, user.password_hash):
            logger.info("auth.login_failed", reason="invalid_password", user_id=user.id)
            await self._fail(
                principal,
                action,
                None,
                AuthenticationError(INVALID_CREDENTIALS),
                {"reason": "invalid_password"},
                **request_meta,
            )

        token = create_access_token(principal)
        await self.authz.record(
            principal,
            AuditAction.LOGIN,
            self.resource_type,
            None,
            True,
            {"method": "password"},
            **request_meta,
        )
        logger.info("auth.login", user_id=user.id)
        return LoginResult(
            access_token=token,
            expires_in=settings.jwt_expires_hours * 3600,
            user=user,
            principal=principal,
        )

    async def logout(self, principal: Principal) -> None:
        await self.authz.record(principal, AuditAction.LOGOUT, self.resource_type, None, True)

    @staticmethod
    def _principal_for(user: User) -> Principal:
        return Principal(
            id=user.id,
            role=user.role,
            organization_id=user.organization_id,
            email=user.email,
        )
