from .access import AccessDecision, Decision, ResourceDescriptor
from .errors import (
    AccessDeniedError,
    AuditWriteFailed,
    AuthenticationError,
    ConflictError,
    DenyReason,
    NotFoundError,
    TaskGateError,
    UnknownRoleError,
    ValidationError,
)
from .logging import configure_logging, logger
from .organizations import OrganizationGraph, OrganizationNode
from .principal import Principal
from .rbac import get_principal
from .roles import Permission, Role, has_permission, permissions_of, rank_of
from .security import create_access_token, decode_token, hash_password, verify_password
from .settings import settings

__all__ = [
    "AccessDecision",
    "Decision",
    "ResourceDescriptor",
    "AccessDeniedError",
    "AuditWriteFailed",
    "AuthenticationError",
    "ConflictError",
    "DenyReason",
    "NotFoundError",
    "TaskGateError",
    "UnknownRoleError",
    "ValidationError",
    "configure_logging",
    "logger",
    "OrganizationGraph",
    "OrganizationNode",
    "Principal",
    "get_principal",
    "Permission",
    "Role",
    "has_permission",
    "permissions_of",
    "rank_of",
    "create_access_token",
    "decode_token",
    "hash_password",
    "verify_password",
    "settings",
]
