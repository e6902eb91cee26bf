from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class OrganizationBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class OrganizationCreate(OrganizationBase):
    parent_id: str | None = None


class OrganizationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class OrganizationSummary(BaseModel):
    id: str
    name: str


class OrganizationRead(OrganizationBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str | None = None
    level: int = 0
    children: list[OrganizationSummary] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
