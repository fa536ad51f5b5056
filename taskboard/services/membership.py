"""
Membership lookups backed by the org_members table.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.models.member import OrgMember, OrgRole


class MembershipRepository:
    """Storage-backed MembershipLookup."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_membership(self, user_id: UUID, org_id: UUID) -> OrgRole | None:
        result = await self.db.execute(
            select(OrgMember.role).where(
                OrgMember.user_id == user_id,
                OrgMember.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_member(self, user_id: UUID, org_id: UUID) -> OrgMember | None:
        result = await self.db.execute(
            select(OrgMember).where(
                OrgMember.user_id == user_id,
                OrgMember.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()
