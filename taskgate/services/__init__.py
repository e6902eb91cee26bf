from .audit import AuditFailureSink, AuditTrail, LoggingFailureSink, RecordingFailureSink
from .audit_store import AuditStore, InMemoryAuditStore, SqlAuditStore
from .auth import AuthService
from .authorization import AuthorizationFacade
from .orgs import OrganizationService
from .tasks import TaskService
from .users import UserService

__all__ = [
    "AuditFailureSink",
    "AuditTrail",
    "LoggingFailureSink",
    "RecordingFailureSink",
    "AuditStore",
    "InMemoryAuditStore",
    "SqlAuditStore",
    "AuthService",
    "AuthorizationFacade",
    "OrganizationService",
    "TaskService",
    "UserService",
]
