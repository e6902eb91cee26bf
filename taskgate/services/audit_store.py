"""Append-only storage backends for the audit trail.

A store exposes exactly two operations, ``add`` and ``list``. There is no
update or delete path, and none should be added.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import FrozenSet, List, Optional, Protocol, runtime_checkable

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskgate.models import AuditLog
from taskgate.schemas.audit import AuditEntry, AuditEntryCreate, AuditFilter


@runtime_checkable
class AuditStore(Protocol):
    async def add(self, entry: AuditEntryCreate, timestamp: datetime) -> int:
        ...

    async def list(
        self,
        organization_ids: Optional[FrozenSet[str]],
        filters: AuditFilter,
        limit: int,
    ) -> List[AuditEntry]:
        """Return matching entries, newest first, insertion order on ties.

        ``organization_ids=None`` means no organization restriction.
        """
        ...


class InMemoryAuditStore:
    """Process-local store used by tests and single-process tooling."""

    def __init__(self) -> None:
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        return tuple(self._entries)

    async def add(self, entry: AuditEntryCreate, timestamp: datetime) -> int:
        with self._lock:
            entry_id = len(self._entries) + 1
            self._entries.append(
                AuditEntry(**entry.model_dump(), id=entry_id, timestamp=timestamp)
            )
        return entry_id

    async def list(
        self,
        organization_ids: Optional[FrozenSet[str]],
        filters: AuditFilter,
        limit: int,
    ) -> List[AuditEntry]:
        with self._lock:
            snapshot = list(self._entries)
        matches = [
            entry
            for entry in snapshot
            if (organization_ids is None or entry.organization_id in organization_ids)
            and filters.matches(entry)
        ]
        # snapshot is already in insertion order and sort() is stable
        matches.sort(key=lambda entry: entry.timestamp, reverse=True)
        return matches[filters.offset : filters.offset + limit]


class SqlAuditStore:
    """``audit_logs`` table backend.

    Each append runs in its own session and commits immediately, so an audit
    row survives a rollback of the caller's primary transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, entry: AuditEntryCreate, timestamp: datetime) -> int:
        async with self._session_factory() as session:
            row = AuditLog(**entry.model_dump(), timestamp=timestamp)
            session.add(row)
            await session.flush()
            entry_id = row.id
            await session.commit()
            return entry_id

    async def list(
        self,
        organization_ids: Optional[FrozenSet[str]],
        filters: AuditFilter,
        limit: int,
    ) -> List[AuditEntry]:
        if organization_ids is not None and not organization_ids:
            return []
        query = self._build_query(organization_ids, filters)
        query = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.asc())
        query = query.offset(filters.offset).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [AuditEntry.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    def _build_query(
        organization_ids: Optional[FrozenSet[str]], filters: AuditFilter
    ) -> Select[tuple[AuditLog]]:
        query = select(AuditLog)
        if organization_ids is not None:
            query = query.where(AuditLog.organization_id.in_(sorted(organization_ids)))
        if filters.action is not None:
            query = query.where(AuditLog.action == filters.action)
        if filters.actions is not None:
            query = query.where(AuditLog.action.in_(sorted(filters.actions)))
        if filters.resource_type is not None:
            query = query.where(AuditLog.resource_type == filters.resource_type)
        if filters.resource_id is not None:
            query = query.where(AuditLog.resource_id == filters.resource_id)
        if filters.organization_id is not None:
            query = query.where(AuditLog.organization_id == filters.organization_id)
        if filters.actor_id is not None:
            query = query.where(AuditLog.actor_id == filters.actor_id)
        if filters.actor_email is not None:
            query = query.where(func.lower(AuditLog.actor_email) == filters.actor_email.lower())
        if filters.start is not None:
            query = query.where(AuditLog.timestamp >= filters.start)
        if filters.end is not None:
            query = query.where(AuditLog.timestamp <= filters.end)
        if filters.success is not None:
            query = query.where(AuditLog.success.is_(filters.success))
        return query
