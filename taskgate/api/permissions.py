"""Route id -> required permissions.

Every authenticated route declares its id here; ``require_permission`` is the
only place that reads this table. Record-level checks (ownership, scope) stay
in the services, which pass a resource descriptor to the facade.
"""

from __future__ import annotations

from typing import FrozenSet, Mapping

from taskgate.core.roles import Permission

ROUTE_PERMISSIONS: Mapping[str, FrozenSet[Permission]] = {
    "auth.me": frozenset(),
    "auth.logout": frozenset(),
    "tasks.list": frozenset({Permission.TASK_READ}),
    "tasks.stats": frozenset({Permission.TASK_READ}),
    "tasks.get": frozenset({Permission.TASK_READ}),
    "tasks.create": frozenset({Permission.TASK_CREATE}),
    "tasks.update": frozenset({Permission.TASK_UPDATE}),
    "tasks.delete": frozenset({Permission.TASK_DELETE}),
    "tasks.reorder": frozenset({Permission.TASK_UPDATE}),
    "orgs.list": frozenset({Permission.ORG_READ}),
    "orgs.hierarchy": frozenset({Permission.ORG_READ}),
    "orgs.get": frozenset({Permission.ORG_READ}),
    "orgs.create": frozenset({Permission.ORG_MANAGE}),
    "orgs.update": frozenset({Permission.ORG_UPDATE}),
    "orgs.delete": frozenset({Permission.ORG_MANAGE}),
    "users.list": frozenset({Permission.USER_READ}),
    "users.get": frozenset({Permission.USER_READ}),
    "users.create": frozenset({Permission.USER_CREATE}),
    # self-edits are open to every role; editing others needs user:update in the service
    "users.update": frozenset(),
    "users.delete": frozenset({Permission.USER_DELETE}),
    "audit.list": frozenset({Permission.AUDIT_READ}),
    "audit.by_user": frozenset({Permission.AUDIT_READ}),
    "audit.by_resource": frozenset({Permission.AUDIT_READ}),
    "audit.login_history": frozenset({Permission.AUDIT_READ}),
    "audit.failed_logins": frozenset({Permission.AUDIT_READ}),
}


def permissions_for(route_id: str) -> FrozenSet[Permission]:
    try:
        return ROUTE_PERMISSIONS[route_id]
    except KeyError:
        raise LookupError(f"route {route_id!r} has no permission entry") from None
