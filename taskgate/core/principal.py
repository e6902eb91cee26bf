from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import AuthenticationError, UnknownRoleError
from .roles import Role, coerce_role, is_at_least


@dataclass(frozen=True)
class Principal:
    """Security principal resolved from a verified credential.

    Built fresh for every request and never persisted.
    """

    id: str
    role: Role
    organization_id: str
    email: Optional[str] = None

    def __post_init__(self) -> None:
        role = coerce_role(self.role)
        if role is None:
            raise UnknownRoleError(self.role)
        object.__setattr__(self, "role", role)

    @property
    def is_owner(self) -> bool:
        return self.role is Role.OWNER

    def is_at_least(self, required: Role) -> bool:
        return is_at_least(self.role, required)

    def is_self(self, user_id: str | None) -> bool:
        return user_id is not None and str(user_id) == self.id

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Principal":
        subject = claims.get("sub")
        organization_id = claims.get("organization_id")
        if not subject or not organization_id:
            raise AuthenticationError("credential_missing_claims")
        return cls(
            id=str(subject),
            role=claims.get("role"),  # type: ignore[arg-type]
            organization_id=str(organization_id),
            email=claims.get("email"),
        )

    def to_claims(self) -> dict[str, Any]:
        claims: dict[str, Any] = {
            "sub": self.id,
            "role": self.role.value,
            "organization_id": self.organization_id,
        }
        if self.email:
            claims["email"] = self.email
        return claims
