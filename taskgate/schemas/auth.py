from __future__ import annotations

from pydantic import BaseModel, EmailStr

from taskgate.core.roles import Role

from .users import UserRead


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class PrincipalRead(BaseModel):
    id: str
    role: Role
    organization_id: str
    email: str | None = None
    permissions: list[str]
