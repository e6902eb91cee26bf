from . import audit_router, auth_router, org_router, tasks_router, users_router

__all__ = [
    "audit_router",
    "auth_router",
    "org_router",
    "tasks_router",
    "users_router",
]
