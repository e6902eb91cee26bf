from __future__ import annotations

from typing import Any, AsyncIterator, Mapping, NoReturn

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskgate.core.errors import TaskGateError
from taskgate.core.logging import logger
from taskgate.core.principal import Principal
from taskgate.core.settings import settings

from .authorization import AuthorizationFacade

_engine = create_async_engine(settings.database_dsn, echo=False, future=True)
SessionLocal = async_sessionmaker(bind=_engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


async def get_authorization(session: AsyncSession = Depends(get_session)) -> AuthorizationFacade:
    # Audit rows commit through their own sessions, independent of the request's.
    return await AuthorizationFacade.for_session(session, SessionLocal)


class ServiceBase:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session


class GuardedService(ServiceBase):
    """Service whose operations authorize through, and report to, the facade."""

    resource_type: str = ""

    def __init__(self, session: AsyncSession, authz: AuthorizationFacade) -> None:
        super().__init__(session)
        self.authz = authz

    async def _fail(
        self,
        principal: Principal | None,
        action: str,
        resource_id: str | None,
        error: TaskGateError,
        details: Mapping[str, Any] | None = None,
        **extra: Any,
    ) -> NoReturn:
        await self.authz.record(
            principal,
            action,
            self.resource_type,
            resource_id,
            False,
            details,
            error.message,
            **extra,
        )
        raise error

    async def _commit(
        self,
        principal: Principal,
        action: str,
        resource_id: str | None,
        details: Mapping[str, Any] | None = None,
        *,
        refresh: Any = None,
    ) -> None:
        """Commit the pending mutation; a failed commit is recorded before it propagates."""

        try:
            await self.session.commit()
            if refresh is not None:
                await self.session.refresh(refresh)
        except Exception as exc:
            await self.session.rollback()
            logger.error(
                "service.commit_failed",
                action=action,
                resource_type=self.resource_type,
                error_type=type(exc).__name__,
            )
            await self.authz.record(
                principal,
                action,
                self.resource_type,
                resource_id,
                False,
                details,
                type(exc).__name__,
            )
            raise


def provide_service(service_cls):
    async def dependency(
        session: AsyncSession = Depends(get_session),
        authz: AuthorizationFacade = Depends(get_authorization),
    ):
        return service_cls(session, authz)

    return dependency
