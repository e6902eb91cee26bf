from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AuditAction(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCESS_DENIED = "ACCESS_DENIED"
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_DELETED = "TASK_DELETED"
    TASKS_REORDERED = "TASKS_REORDERED"
    USER_REGISTERED = "USER_REGISTERED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    ORGANIZATION_CREATED = "ORGANIZATION_CREATED"
    ORGANIZATION_UPDATED = "ORGANIZATION_UPDATED"
    ORGANIZATION_DELETED = "ORGANIZATION_DELETED"
    AUDIT_VIEWED = "AUDIT_VIEWED"


class AuditResource(str, Enum):
    AUTH = "auth"
    TASK = "task"
    USER = "user"
    ORGANIZATION = "organization"
    AUDIT = "audit"


LOGIN_ACTIONS = frozenset(
    {AuditAction.LOGIN.value, AuditAction.LOGOUT.value, AuditAction.LOGIN_FAILED.value}
)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuditEntryCreate(BaseModel):
    """A security-relevant event as reported by a caller, before it is stamped."""

    model_config = ConfigDict(frozen=True)

    action: str
    resource_type: str
    resource_id: str | None = None
    actor_id: str | None = None
    actor_email: str | None = None
    organization_id: str | None = None
    details: Dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    error_reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class AuditEntry(AuditEntryCreate):
    """Persisted audit entry. Field names are a stable export contract."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class AuditFilter(BaseModel):
    """Conjunctive filter applied on top of the caller's organization scope."""

    model_config = ConfigDict(frozen=True)

    action: str | None = None
    actions: frozenset[str] | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    organization_id: str | None = None
    actor_id: str | None = None
    actor_email: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    success: bool | None = None
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)

    @field_validator("start", "end")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @model_validator(mode="after")
    def check_range(self) -> "AuditFilter":
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    def matches(self, entry: AuditEntry) -> bool:
        if self.action is not None and entry.action != self.action:
            return False
        if self.actions is not None and entry.action not in self.actions:
            return False
        if self.resource_type is not None and entry.resource_type != self.resource_type:
            return False
        if self.resource_id is not None and entry.resource_id != self.resource_id:
            return False
        if self.organization_id is not None and entry.organization_id != self.organization_id:
            return False
        if self.actor_id is not None and entry.actor_id != self.actor_id:
            return False
        if self.actor_email is not None and (entry.actor_email or "").lower() != self.actor_email.lower():
            return False
        if self.start is not None and entry.timestamp < self.start:
            return False
        if self.end is not None and entry.timestamp > self.end:
            return False
        if self.success is not None and entry.success is not self.success:
            return False
        return True


class AuditPage(BaseModel):
    data: list[AuditEntry]
    limit: int
    offset: int
