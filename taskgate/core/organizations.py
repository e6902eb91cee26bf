"""Two-level organization hierarchy and scope resolution.

Visibility flows down only: a root organization sees itself and its direct
children, a child organization sees itself and nothing else. Parents are never
visible from a child, and siblings are never visible from each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .logging import logger


@dataclass(frozen=True)
class OrganizationNode:
    id: str
    parent_id: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class OrganizationGraph:
    """Immutable snapshot of the organization store.

    Lookups never touch the database, so access decisions built on top of a
    graph stay free of I/O. Load a fresh graph per request with :meth:`load`.
    """

    def __init__(self, nodes: Iterable[OrganizationNode] = ()) -> None:
        self._nodes: Dict[str, OrganizationNode] = {}
        children: Dict[str, set[str]] = {}
        for node in nodes:
            self._nodes[node.id] = node
            if node.parent_id is not None:
                children.setdefault(node.parent_id, set()).add(node.id)
        self._children: Mapping[str, FrozenSet[str]] = {
            parent_id: frozenset(ids) for parent_id, ids in children.items()
        }

    @classmethod
    def from_records(
        cls, records: Iterable[Tuple[str, Optional[str]] | Mapping[str, Optional[str]]]
    ) -> "OrganizationGraph":
        """Build a graph from ``(id, parent_id)`` pairs or mappings with those keys."""

        nodes = []
        for record in records:
            if isinstance(record, Mapping):
                nodes.append(OrganizationNode(str(record["id"]), record.get("parent_id")))
            else:
                org_id, parent_id = record
                nodes.append(OrganizationNode(str(org_id), parent_id))
        return cls(nodes)

    @classmethod
    async def load(cls, session: AsyncSession) -> "OrganizationGraph":
        from taskgate.models import Organization

        result = await session.execute(select(Organization.id, Organization.parent_id))
        return cls(OrganizationNode(org_id, parent_id) for org_id, parent_id in result.all())

    def __contains__(self, org_id: object) -> bool:
        return org_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def children_of(self, org_id: str) -> FrozenSet[str]:
        return self._children.get(org_id, frozenset())

    def resolve_scope(self, principal_org_id: str) -> FrozenSet[str]:
        node = self._nodes.get(principal_org_id)
        if node is None:
            logger.info("organizations.scope_unknown_org", organization_id=principal_org_id)
            return frozenset({principal_org_id})

        if not node.is_root:
            if self._children.get(principal_org_id):
                # More than two levels exist in the store. Treat the node as a
                # child and never descend past depth 1.
                logger.warning(
                    "organizations.depth_violation",
                    organization_id=principal_org_id,
                    parent_id=node.parent_id,
                )
            return frozenset({principal_org_id})

        return frozenset({principal_org_id}) | self.children_of(principal_org_id)

    def is_accessible(self, principal_org_id: str, target_org_id: Optional[str]) -> bool:
        if target_org_id is None:
            return False
        return target_org_id in self.resolve_scope(principal_org_id)
