from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Protocol

from taskgate.core.access import AccessDecision
from taskgate.core.errors import AccessDeniedError, AuditWriteFailed, DenyReason
from taskgate.core.logging import get_logger
from taskgate.core.principal import Principal
from taskgate.core.roles import Permission
from taskgate.core.settings import settings
from taskgate.schemas.audit import (
    LOGIN_ACTIONS,
    AuditAction,
    AuditEntry,
    AuditEntryCreate,
    AuditFilter,
)

from .audit_store import AuditStore

logger = get_logger("taskgate.audit")

Clock = Callable[[], datetime]

FAILED_LOGIN_LIMIT = 50
LOGIN_HISTORY_LIMIT = 50
ACTOR_HISTORY_LIMIT = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditFailureSink(Protocol):
    def report(self, failure: AuditWriteFailed) -> None:
        ...


class LoggingFailureSink:
    """Reports failed audit writes as error events.

    Error-level records are forwarded to Sentry by its logging integration
    whenever Sentry is initialised.
    """

    def report(self, failure: AuditWriteFailed) -> None:
        logger.error("audit.write_failed", **failure.as_log_fields())


class RecordingFailureSink:
    def __init__(self) -> None:
        self.failures: List[AuditWriteFailed] = []

    def report(self, failure: AuditWriteFailed) -> None:
        self.failures.append(failure)


class AuditTrail:
    """Append-only audit log with organization-scoped reads."""

    def __init__(
        self,
        store: AuditStore,
        access: AccessDecision,
        failure_sink: AuditFailureSink | None = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.access = access
        self.failure_sink = failure_sink or LoggingFailureSink()
        self._clock = clock

    async def append(self, entry: AuditEntryCreate) -> Optional[int]:
        """Persist one entry and return its id, or ``None`` if the store failed.

        Store failures are reported once to the failure sink and swallowed so
        the caller's primary action is never blocked by audit availability.
        """

        timestamp = self._clock()
        try:
            entry_id = await self.store.add(entry, timestamp)
        except Exception as exc:  # noqa: BLE001 - any store error must stay out of the caller's path
            failure = AuditWriteFailed(
                action=entry.action, resource_type=entry.resource_type, cause=exc
            )
            try:
                self.failure_sink.report(failure)
            except Exception as sink_exc:  # noqa: BLE001
                logger.error(
                    "audit.failure_sink_failed",
                    sink_error_type=type(sink_exc).__name__,
                    **failure.as_log_fields(),
                )
            return None
        logger.info(
            "audit.appended",
            entry_id=entry_id,
            action=entry.action,
            resource_type=entry.resource_type,
            resource_id=entry.resource_id,
            actor_email=entry.actor_email or "anonymous",
            success=entry.success,
        )
        return entry_id

    async def query(self, principal: Principal, filters: AuditFilter | None = None) -> List[AuditEntry]:
        decision = self.access.authorize(principal, Permission.AUDIT_READ)
        if not decision:
            raise AccessDeniedError(decision.reason or DenyReason.INSUFFICIENT_ROLE)
        filters = filters or AuditFilter()
        scope = self.access.visible_organizations(principal)
        return await self.store.list(scope, filters, self._limit(filters))

    async def for_resource(
        self, principal: Principal, resource_type: str, resource_id: str
    ) -> List[AuditEntry]:
        return await self.query(
            principal, AuditFilter(resource_type=resource_type, resource_id=resource_id)
        )

    async def for_actor(self, principal: Principal, actor_id: str) -> List[AuditEntry]:
        return await self.query(principal, AuditFilter(actor_id=actor_id, limit=ACTOR_HISTORY_LIMIT))

    async def login_history(
        self, principal: Principal, actor_id: str, *, days: int | None = None
    ) -> List[AuditEntry]:
        window = timedelta(days=settings.login_history_days if days is None else days)
        return await self.query(
            principal,
            AuditFilter(
                actor_id=actor_id,
                actions=LOGIN_ACTIONS,
                start=self._clock() - window,
                limit=LOGIN_HISTORY_LIMIT,
            ),
        )

    async def failed_logins(
        self, principal: Principal, *, email: str | None = None, hours: int | None = None
    ) -> List[AuditEntry]:
        """Failed login attempts across every organization. Owners only."""

        if not principal.is_owner:
            raise AccessDeniedError(DenyReason.INSUFFICIENT_ROLE)
        window = timedelta(hours=settings.failed_login_window_hours if hours is None else hours)
        filters = AuditFilter(
            action=AuditAction.LOGIN_FAILED.value,
            success=False,
            actor_email=email,
            start=self._clock() - window,
            limit=FAILED_LOGIN_LIMIT,
        )
        return await self.store.list(None, filters, self._limit(filters))

    @staticmethod
    def _limit(filters: AuditFilter) -> int:
        return min(filters.limit or settings.audit_default_limit, settings.audit_max_limit)
