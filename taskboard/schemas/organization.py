"""
Organization schemas.

Request/response models for organization and member management endpoints.
"""

from __future__ import annotations

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from taskboard.models.member import OrgRole

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    """Request body for POST /organizations."""

    name: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=3, max_length=50)
    description: str | None = Field(default=None, max_length=1000)
    parent_id: UUID | None = None

    @field_validator("slug")
    @classmethod
    def slug_must_be_valid(cls, v: str) -> str:
        if not SLUG_PATTERN.match(v):
            raise ValueError(
                "Slug must be lowercase alphanumeric and hyphens only, "
                "and cannot start or end with a hyphen"
            )
        return v


class OrganizationResponse(BaseModel):
    """Organization detail response."""

    id: UUID
    name: str
    slug: str
    description: str | None
    parent_id: UUID | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MemberAddRequest(BaseModel):
    """Request body for POST /organizations/{org_id}/members."""

    user_id: UUID
    role: OrgRole = OrgRole.viewer


class MemberRoleUpdateRequest(BaseModel):
    """Request body for PATCH /organizations/{org_id}/members/{user_id}."""

    role: OrgRole


class MemberResponse(BaseModel):
    """Single org member with user info and role."""

    id: UUID
    org_id: UUID
    user_id: UUID
    email: str
    display_name: str
    role: OrgRole
    joined_at: datetime


class MembersListResponse(BaseModel):
    """Response for GET /organizations/{org_id}/members."""

    members: list[MemberResponse]
    total: int
