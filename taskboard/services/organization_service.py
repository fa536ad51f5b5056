"""
Organization business logic.

Handles org creation (with one level of sub-organizations) and member
management. Every organization keeps at least one owner: demoting or
removing an owner runs under the org's owners lock and re-counts owners
inside the transaction.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.exceptions import (
    BadRequest,
    Conflict,
    DenialReason,
    Forbidden,
    LastOwnerError,
    ResourceMissing,
)
from taskboard.core.transactions import TransactionCoordinator, owners_key
from taskboard.models.member import OrgMember, OrgRole, satisfies
from taskboard.models.organization import Organization
from taskboard.models.user import User
from taskboard.schemas.organization import (
    MemberAddRequest,
    MemberResponse,
    MembersListResponse,
    OrganizationCreateRequest,
    OrganizationResponse,
)
from taskboard.services.authorization import AuthorizationPolicy, Decision
from taskboard.services.membership import MembershipRepository

logger = logging.getLogger(__name__)


def _member_response(member: OrgMember, user: User) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        org_id=member.org_id,
        user_id=member.user_id,
        email=user.email,
        display_name=user.display_name,
        role=member.role,
        joined_at=member.joined_at,
    )


class OrganizationService:
    """Handles all organization operations."""

    def __init__(
        self,
        db: AsyncSession,
        coordinator: TransactionCoordinator | None = None,
    ) -> None:
        self.db = db
        self.memberships = MembershipRepository(db)
        self.policy = AuthorizationPolicy(self.memberships)
        self.coordinator = coordinator or TransactionCoordinator(db)

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(
        self, data: OrganizationCreateRequest, owner: User
    ) -> OrganizationResponse:
        """
        Create a new organization with the creator as its owner.

        A sub-organization names a root organization as parent; the creator
        must be admin or owner there. Parents that are themselves children
        are rejected.
        """
        existing = await self.db.execute(
            select(Organization.id).where(Organization.slug == data.slug)
        )
        if existing.scalar_one_or_none() is not None:
            raise Conflict("Organization slug is already taken", code="SLUG_TAKEN")

        if data.parent_id is not None:
            parent = await self.db.get(Organization, data.parent_id)
            if parent is None:
                raise ResourceMissing("Parent organization not found", code="PARENT_NOT_FOUND")
            role = await self.memberships.get_membership(owner.id, parent.id)
            if role is None or not satisfies(role, OrgRole.admin):
                raise Forbidden(DenialReason.insufficient_role if role else DenialReason.not_a_member)
            if parent.parent_id is not None:
                raise BadRequest(
                    "Cannot create a sub-organization of a sub-organization",
                    code="NESTING_TOO_DEEP",
                )

        async def _create(db: AsyncSession) -> Organization:
            org = Organization(
                name=data.name,
                slug=data.slug,
                description=data.description,
                parent_id=data.parent_id,
            )
            db.add(org)
            await db.flush()
            db.add(OrgMember(org_id=org.id, user_id=owner.id, role=OrgRole.owner))
            await db.flush()
            return org

        org = await self.coordinator.run_in_transaction(_create)
        await self.db.refresh(org)
        logger.info("Organization %s created by %s", org.slug, owner.id)
        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    async def get_organization(self, org_id: UUID, actor: User) -> OrganizationResponse:
        """Members only."""
        self._ensure(await self.policy.membership(actor.id, org_id))
        org = await self.db.get(Organization, org_id)
        if org is None:
            raise ResourceMissing("Organization not found", code="ORG_NOT_FOUND")
        return OrganizationResponse.model_validate(org)

    async def list_user_organizations(self, user: User) -> list[OrganizationResponse]:
        result = await self.db.execute(
            select(Organization)
            .join(OrgMember, OrgMember.org_id == Organization.id)
            .where(OrgMember.user_id == user.id, Organization.is_active.is_(True))
            .order_by(Organization.name)
        )
        return [OrganizationResponse.model_validate(o) for o in result.scalars().all()]

    async def list_sub_organizations(self, org_id: UUID, actor: User) -> list[OrganizationResponse]:
        self._ensure(await self.policy.membership(actor.id, org_id))
        result = await self.db.execute(
            select(Organization)
            .where(Organization.parent_id == org_id)
            .order_by(Organization.name)
        )
        return [OrganizationResponse.model_validate(o) for o in result.scalars().all()]

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def list_members(self, org_id: UUID, actor: User) -> MembersListResponse:
        """List all members of an organization with user details."""
        self._ensure(await self.policy.membership(actor.id, org_id))
        result = await self.db.execute(
            select(OrgMember, User)
            .join(User, OrgMember.user_id == User.id)
            .where(OrgMember.org_id == org_id)
            .order_by(OrgMember.joined_at)
        )
        members = [_member_response(member, user) for member, user in result.all()]
        return MembersListResponse(members=members, total=len(members))

    async def add_member(
        self, org_id: UUID, data: MemberAddRequest, actor: User
    ) -> MemberResponse:
        """Admins add admins and viewers; granting owner needs an owner."""
        self._ensure(await self.policy.authorize_member_change(actor.id, org_id, None, data.role))

        user = await self.db.get(User, data.user_id)
        if user is None:
            raise ResourceMissing("User not found", code="USER_NOT_FOUND")
        if await self.memberships.get_member(data.user_id, org_id) is not None:
            raise Conflict("User is already a member of this organization", code="ALREADY_MEMBER")

        async def _add(db: AsyncSession) -> OrgMember:
            member = OrgMember(org_id=org_id, user_id=data.user_id, role=data.role)
            db.add(member)
            try:
                await db.flush()
            except IntegrityError:
                raise Conflict(
                    "User is already a member of this organization", code="ALREADY_MEMBER"
                ) from None
            return member

        member = await self.coordinator.run_in_transaction(_add)
        await self.db.refresh(member)
        return _member_response(member, user)

    async def update_member_role(
        self,
        org_id: UUID,
        target_user_id: UUID,
        new_role: OrgRole,
        actor: User,
    ) -> MemberResponse:
        """
        Change a member's role.

        Owners may demote themselves; demoting the last owner raises
        LastOwnerError.
        """
        actor_id = actor.id
        self._ensure(await self.policy.membership(actor_id, org_id))
        target = await self._get_member(org_id, target_user_id)
        self._ensure(
            await self.policy.authorize_member_change(actor_id, org_id, target.role, new_role)
        )

        async def _update(db: AsyncSession) -> OrgMember:
            member = await self._lock_member(org_id, target_user_id)
            # the role may have changed since the check above
            self._ensure(
                await self.policy.authorize_member_change(actor_id, org_id, member.role, new_role)
            )
            if member.role is OrgRole.owner and new_role is not OrgRole.owner:
                await self._ensure_other_owner(org_id)
            member.role = new_role
            await db.flush()
            return member

        member = await self.coordinator.run_in_transaction(
            _update, lock_keys=[owners_key(org_id)]
        )
        user = await self.db.get(User, target_user_id)
        logger.info(
            "Member %s in org %s set to %s by %s", target_user_id, org_id, new_role.value, actor_id
        )
        return _member_response(member, user)

    async def remove_member(self, org_id: UUID, target_user_id: UUID, actor: User) -> None:
        """
        Remove a member, or leave when `target_user_id` is the actor.

        Removing the last owner raises LastOwnerError.
        """
        actor_id = actor.id
        self._ensure(await self.policy.membership(actor_id, org_id))
        target = await self._get_member(org_id, target_user_id)
        if target_user_id != actor_id:
            self._ensure(
                await self.policy.authorize_member_change(actor_id, org_id, target.role, None)
            )

        async def _remove(db: AsyncSession) -> None:
            member = await self._lock_member(org_id, target_user_id)
            if target_user_id != actor_id:
                self._ensure(
                    await self.policy.authorize_member_change(actor_id, org_id, member.role, None)
                )
            if member.role is OrgRole.owner:
                await self._ensure_other_owner(org_id)
            await db.delete(member)
            await db.flush()

        await self.coordinator.run_in_transaction(_remove, lock_keys=[owners_key(org_id)])
        logger.info("Member %s removed from org %s by %s", target_user_id, org_id, actor_id)

    # -----------------------------------------------------------------------
    # Private Helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _ensure(decision: Decision) -> OrgRole:
        return decision.enforce()

    async def _get_member(self, org_id: UUID, user_id: UUID) -> OrgMember:
        member = await self.memberships.get_member(user_id, org_id)
        if member is None:
            raise ResourceMissing("Member not found", code="MEMBER_NOT_FOUND")
        return member

    async def _lock_member(self, org_id: UUID, user_id: UUID) -> OrgMember:
        stmt = (
            select(OrgMember)
            .where(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(self.coordinator.for_update(stmt))
        member = result.scalar_one_or_none()
        if member is None:
            raise ResourceMissing("Member not found", code="MEMBER_NOT_FOUND")
        return member

    async def _ensure_other_owner(self, org_id: UUID) -> None:
        """Raise LastOwnerError unless the org has at least two owners."""
        stmt = select(OrgMember.id).where(
            OrgMember.org_id == org_id, OrgMember.role == OrgRole.owner
        )
        result = await self.db.execute(self.coordinator.for_update(stmt))
        if len(result.all()) <= 1:
            raise LastOwnerError()
