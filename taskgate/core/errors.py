from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class DenyReason(str, Enum):
    """Reason codes attached to a negative access decision.

    These are for logs and the audit trail only; end users always receive a
    generic forbidden response.
    """

    INSUFFICIENT_ROLE = "insufficient_role"
    OUT_OF_SCOPE = "out_of_scope"
    VIEWER_RESTRICTED_TO_OWN = "viewer_restricted_to_own"


class TaskGateError(Exception):
    code: str = "error_internal"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class UnknownRoleError(TaskGateError):
    """A principal carried a role outside the closed role set."""

    code = "error_unknown_role"

    def __init__(self, value: object) -> None:
        super().__init__(f"unknown role: {value!r}")
        self.value = value


class AccessDeniedError(TaskGateError):
    code = "error_forbidden"

    def __init__(self, reason: DenyReason) -> None:
        super().__init__(reason.value)
        self.reason = reason


class AuthenticationError(TaskGateError):
    code = "error_unauthorized"


class NotFoundError(TaskGateError):
    code = "error_not_found"


class ConflictError(TaskGateError):
    code = "error_conflict"


class ValidationError(TaskGateError):
    code = "error_invalid_request"


class AuditWriteFailed(TaskGateError):
    """An audit entry could not be persisted.

    Never raised into a caller's control flow; it is handed to an
    ``AuditFailureSink`` once and then discarded.
    """

    code = "error_audit_write_failed"

    def __init__(self, *, action: str, resource_type: str, cause: BaseException) -> None:
        super().__init__(f"failed to append audit entry {action}/{resource_type}: {cause}")
        self.action = action
        self.resource_type = resource_type
        self.cause = cause

    def as_log_fields(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "resource_type": self.resource_type,
            "error_type": type(self.cause).__name__,
            "error": str(self.cause),
        }
