"""
Organization management endpoints.

Create, read, sub-organizations and member management.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.database import get_db
from taskboard.core.dependencies import get_current_user
from taskboard.models.user import User
from taskboard.schemas.organization import (
    MemberAddRequest,
    MemberResponse,
    MemberRoleUpdateRequest,
    MembersListResponse,
    OrganizationCreateRequest,
    OrganizationResponse,
)
from taskboard.services.organization_service import OrganizationService

router = APIRouter()


def get_org_service(db: AsyncSession = Depends(get_db)) -> OrganizationService:
    """Dependency that constructs OrganizationService."""
    return OrganizationService(db=db)


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """
    Create a new organization.

    The authenticated user becomes its owner. Pass `parent_id` to create a
    sub-organization of a root organization you administer.
    """
    return await service.create_organization(data, current_user)


@router.get(
    "",
    response_model=list[OrganizationResponse],
    summary="List organizations the current user belongs to",
)
async def list_my_organizations(
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> list[OrganizationResponse]:
    return await service.list_user_organizations(current_user)


@router.get(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Get organization details",
)
async def get_organization(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    return await service.get_organization(org_id, current_user)


@router.get(
    "/{org_id}/children",
    response_model=list[OrganizationResponse],
    summary="List sub-organizations",
)
async def list_sub_organizations(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> list[OrganizationResponse]:
    return await service.list_sub_organizations(org_id, current_user)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/members",
    response_model=MembersListResponse,
    summary="List organization members",
)
async def list_members(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> MembersListResponse:
    return await service.list_members(org_id, current_user)


@router.post(
    "/{org_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a member",
)
async def add_member(
    org_id: UUID,
    data: MemberAddRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    return await service.add_member(org_id, data, current_user)


@router.patch(
    "/{org_id}/members/{user_id}",
    response_model=MemberResponse,
    summary="Change a member's role",
)
async def update_member_role(
    org_id: UUID,
    user_id: UUID,
    data: MemberRoleUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    return await service.update_member_role(org_id, user_id, data.role, current_user)


@router.delete(
    "/{org_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
)
async def remove_member(
    org_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> Response:
    await service.remove_member(org_id, user_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
