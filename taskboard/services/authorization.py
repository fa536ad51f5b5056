"""
Authorization policy for task and organization operations.

Every mutation path calls into AuthorizationPolicy explicitly; the full
rule set lives here so it can be read and tested without a web framework.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from taskboard.core.exceptions import DenialReason, Forbidden
from taskboard.models.member import OrgRole, satisfies


class TaskAction(str, enum.Enum):
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"
    reorder = "reorder"


class MembershipLookup(Protocol):
    """Resolves a user's role in an organization, or None."""

    async def get_membership(self, user_id: UUID, org_id: UUID) -> OrgRole | None: ...


class TaskSnapshot(Protocol):
    created_by_id: UUID
    assignee_id: UUID | None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    role: OrgRole | None = None
    reason: DenialReason | None = None

    def enforce(self) -> OrgRole:
        """Return the actor's role, or raise Forbidden carrying the reason."""
        if not self.allowed or self.role is None:
            raise Forbidden(self.reason or DenialReason.not_a_member)
        return self.role


def _deny(reason: DenialReason, role: OrgRole | None = None) -> Decision:
    return Decision(allowed=False, role=role, reason=reason)


class AuthorizationPolicy:
    """Fixed rule set: role floor per action plus creator/assignee exceptions."""

    # Minimum role per action; None means any membership.
    ROLE_FLOOR: dict[TaskAction, OrgRole | None] = {
        TaskAction.create: OrgRole.admin,
        TaskAction.read: None,
        TaskAction.update: None,
        TaskAction.delete: OrgRole.admin,
        TaskAction.reorder: None,
    }

    def __init__(self, memberships: MembershipLookup) -> None:
        self.memberships = memberships

    async def membership(self, actor_id: UUID, org_id: UUID) -> Decision:
        """Fail closed when the actor holds no membership."""
        role = await self.memberships.get_membership(actor_id, org_id)
        if role is None:
            return _deny(DenialReason.not_a_member)
        return Decision(allowed=True, role=role)

    async def authorize(
        self,
        actor_id: UUID,
        org_id: UUID,
        action: TaskAction,
        task: TaskSnapshot | None = None,
        new_assignee_id: UUID | None = None,
        role: OrgRole | None = None,
    ) -> Decision:
        """
        Decide whether `actor_id` may perform `action` in `org_id`.

        `new_assignee_id` is the assignee named by a create payload or
        introduced by an update; it must be a member too. Pass `role`
        when membership was already resolved by the caller.
        """
        if role is None:
            found = await self.membership(actor_id, org_id)
            if not found.allowed:
                return found
            role = found.role

        floor = self.ROLE_FLOOR[action]
        if floor is not None and not satisfies(role, floor):
            return _deny(DenialReason.insufficient_role, role)

        if action is TaskAction.update and not satisfies(role, OrgRole.admin):
            if task is None or actor_id not in (task.created_by_id, task.assignee_id):
                return _deny(DenialReason.not_creator_or_assignee, role)

        if new_assignee_id is not None and action in (TaskAction.create, TaskAction.update):
            assignee_role = await self.memberships.get_membership(new_assignee_id, org_id)
            if assignee_role is None:
                return _deny(DenialReason.assignee_not_member, role)

        return Decision(allowed=True, role=role)

    # -----------------------------------------------------------------------
    # Organization administration
    # -----------------------------------------------------------------------

    async def authorize_member_change(
        self,
        actor_id: UUID,
        org_id: UUID,
        target_current_role: OrgRole | None,
        target_new_role: OrgRole | None,
    ) -> Decision:
        """
        Gate add / role change / removal of a membership.

        Admins manage admins and viewers; anything that grants, changes or
        removes the owner role needs an owner.
        """
        found = await self.membership(actor_id, org_id)
        if not found.allowed:
            return found
        role = found.role
        if not satisfies(role, OrgRole.admin):
            return _deny(DenialReason.insufficient_role, role)
        touches_owner = OrgRole.owner in (target_current_role, target_new_role)
        if touches_owner and role is not OrgRole.owner:
            return _deny(DenialReason.owner_required, role)
        return Decision(allowed=True, role=role)

    async def authorize_audit_read(self, actor_id: UUID, org_id: UUID) -> Decision:
        found = await self.membership(actor_id, org_id)
        if found.allowed and not satisfies(found.role, OrgRole.admin):
            return _deny(DenialReason.insufficient_role, found.role)
        return found
