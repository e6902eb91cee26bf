from __future__ import annotations

from typing import FrozenSet

from fastapi import APIRouter, Depends, Response, status

from taskgate.core.principal import Principal
from taskgate.models import Organization
from taskgate.schemas.orgs import (
    OrganizationCreate,
    OrganizationRead,
    OrganizationSummary,
    OrganizationUpdate,
)
from taskgate.services.base import provide_service
from taskgate.services.orgs import OrganizationService

from .dependencies import require_permission

router = APIRouter(prefix="/api/orgs", tags=["organizations"])


def _to_read(organization: Organization, visible: FrozenSet[str] | None) -> OrganizationRead:
    # children outside the caller's view are not listed
    children = [
        child for child in organization.children if visible is None or child.id in visible
    ]
    return OrganizationRead(
        id=organization.id,
        name=organization.name,
        description=organization.description,
        parent_id=organization.parent_id,
        level=organization.level,
        children=[OrganizationSummary(id=child.id, name=child.name) for child in children],
        created_at=organization.created_at,
        updated_at=organization.updated_at,
    )


@router.get("/", response_model=list[OrganizationRead])
async def list_orgs(
    principal: Principal = Depends(require_permission("orgs.list")),
    service: OrganizationService = Depends(provide_service(OrganizationService)),
) -> list[OrganizationRead]:
    organizations = await service.list(principal)
    visible = service.visible_ids(principal)
    return [_to_read(org, visible) for org in organizations]


@router.get("/hierarchy", response_model=list[OrganizationRead])
async def org_hierarchy(
    principal: Principal = Depends(require_permission("orgs.hierarchy")),
    service: OrganizationService = Depends(provide_service(OrganizationService)),
) -> list[OrganizationRead]:
    organizations = await service.hierarchy(principal)
    visible = service.visible_ids(principal)
    return [_to_read(org, visible) for org in organizations]


@router.get("/{organization_id}", response_model=OrganizationRead)
async def get_org(
    organization_id: str,
    principal: Principal = Depends(require_permission("orgs.get")),
    service: OrganizationService = Depends(provide_service(OrganizationService)),
) -> OrganizationRead:
    organization = await service.get(principal, organization_id)
    return _to_read(organization, service.visible_ids(principal))


@router.post("/", response_model=OrganizationRead, status_code=status.HTTP_201_CREATED)
async def create_org(
    payload: OrganizationCreate,
    principal: Principal = Depends(require_permission("orgs.create")),
    service: OrganizationService = Depends(provide_service(OrganizationService)),
) -> OrganizationRead:
    organization = await service.create(principal, payload)
    return _to_read(organization, service.visible_ids(principal))


@router.patch("/{organization_id}", response_model=OrganizationRead)
async def update_org(
    organization_id: str,
    payload: OrganizationUpdate,
    principal: Principal = Depends(require_permission("orgs.update")),
    service: OrganizationService = Depends(provide_service(OrganizationService)),
) -> OrganizationRead:
    organization = await service.update(principal, organization_id, payload)
    return _to_read(organization, service.visible_ids(principal))


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_org(
    organization_id: str,
    principal: Principal = Depends(require_permission("orgs.delete")),
    service: OrganizationService = Depends(provide_service(OrganizationService)),
) -> Response:
    await service.delete(principal, organization_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
