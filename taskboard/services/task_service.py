"""
Task business logic.

Handles task CRUD, in-column reorder and cross-column moves. Every entry
point validates input, resolves membership, loads the task scoped by
org_id and asks the AuthorizationPolicy before touching anything. Position
changes run as one coordinated transaction; audit events are emitted
after the outcome is known.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, NoReturn
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings
from taskboard.core.exceptions import Conflict, DenialReason, Forbidden, NotFound
from taskboard.core.transactions import TransactionCoordinator, column_key
from taskboard.models.member import OrgRole
from taskboard.models.task import Task, TaskStatus
from taskboard.models.user import User
from taskboard.schemas.task import (
    TaskCreateRequest,
    TaskFilters,
    TaskListResponse,
    TaskResponse,
    TaskUpdateRequest,
)
from taskboard.services.audit_service import AuditAction, AuditRecorder, emit
from taskboard.services.authorization import (
    AuthorizationPolicy,
    Decision,
    MembershipLookup,
    TaskAction,
)
from taskboard.services.membership import MembershipRepository
from taskboard.services.positioning import (
    PositionPlan,
    Shift,
    insert_into_column,
    move_across_columns,
    move_within_column,
    validate_position,
)

logger = logging.getLogger(__name__)

# Fields a PATCH may set directly. status and position go through the engine.
EDITABLE_FIELDS = ("title", "description", "priority", "category", "due_date", "assignee_id")
NON_NULLABLE_FIELDS = frozenset({"title", "priority", "category"})


class _ColumnChanged(Exception):
    """The task left the column we locked before we could re-read it."""


@dataclass
class MoveResult:
    task: Task
    plan: PositionPlan
    old_status: TaskStatus
    old_position: int
    changes: dict[str, dict[str, Any]] = field(default_factory=dict)


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class TaskService:
    """Handles all task operations."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditRecorder,
        memberships: MembershipLookup | None = None,
        coordinator: TransactionCoordinator | None = None,
    ) -> None:
        self.db = db
        self.audit = audit
        self.policy = AuthorizationPolicy(memberships or MembershipRepository(db))
        self.coordinator = coordinator or TransactionCoordinator(db)

    # -----------------------------------------------------------------------
    # List Tasks
    # -----------------------------------------------------------------------

    async def list_tasks(
        self,
        org_id: UUID,
        actor: User,
        filters: TaskFilters | None = None,
        page: int = 1,
        limit: int = settings.DEFAULT_PAGE_LIMIT,
    ) -> TaskListResponse:
        """List an organization's tasks by position, newest first on ties."""
        actor_id = actor.id
        await self._resolve(actor_id, org_id, TaskAction.read)

        page = max(1, page)
        limit = min(max(1, limit), settings.MAX_PAGE_LIMIT)
        filters = filters or TaskFilters()

        stmt = select(Task).where(Task.org_id == org_id)
        if filters.status is not None:
            stmt = stmt.where(Task.status == filters.status)
        if filters.category is not None:
            stmt = stmt.where(Task.category == filters.category)
        if filters.priority is not None:
            stmt = stmt.where(Task.priority == filters.priority)
        if filters.assignee_id is not None:
            stmt = stmt.where(Task.assignee_id == filters.assignee_id)
        if filters.created_by_id is not None:
            stmt = stmt.where(Task.created_by_id == filters.created_by_id)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.db.execute(count_stmt)).scalar_one()

        stmt = (
            stmt.order_by(Task.position, Task.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        tasks = [TaskResponse.model_validate(t) for t in result.scalars().all()]

        return TaskListResponse(
            data=tasks,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    # -----------------------------------------------------------------------
    # Get Task
    # -----------------------------------------------------------------------

    async def get_task(self, task_id: UUID, org_id: UUID, actor: User) -> TaskResponse:
        actor_id = actor.id
        _, task = await self._resolve(actor_id, org_id, TaskAction.read, task_id)
        return TaskResponse.model_validate(task)

    # -----------------------------------------------------------------------
    # Create Task
    # -----------------------------------------------------------------------

    async def create_task(
        self,
        org_id: UUID,
        data: TaskCreateRequest,
        actor: User,
    ) -> TaskResponse:
        """
        Create a task in its status column.

        Appends to the column unless `data.position` names a slot, in which
        case later siblings move down one. Requires admin; an assignee must
        be a member.
        """
        validate_position(data.position)
        actor_id = actor.id
        role, _ = await self._resolve(actor_id, org_id, TaskAction.create)
        decision = await self.policy.authorize(
            actor_id, org_id, TaskAction.create, new_assignee_id=data.assignee_id, role=role
        )
        await self._check(decision, actor_id, org_id, TaskAction.create)

        async def _insert(db: AsyncSession) -> Task:
            column_max = await self._column_max(org_id, data.status)
            plan = insert_into_column(data.status, data.position, column_max)
            await self._apply_shifts(org_id, None, plan.shifts)
            task = Task(
                org_id=org_id,
                title=data.title,
                description=data.description,
                status=plan.status,
                priority=data.priority,
                category=data.category,
                due_date=data.due_date,
                position=plan.position,
                created_by_id=actor_id,
                assignee_id=data.assignee_id,
            )
            db.add(task)
            await db.flush()
            return task

        task = await self.coordinator.run_in_transaction(
            _insert, lock_keys=[column_key(org_id, data.status)]
        )
        await self.db.refresh(task)

        await self._record(
            AuditAction.create,
            task.id,
            actor_id,
            org_id,
            {"title": task.title, "status": task.status.value, "position": task.position},
        )
        return TaskResponse.model_validate(task)

    # -----------------------------------------------------------------------
    # Update Task
    # -----------------------------------------------------------------------

    async def update_task(
        self,
        task_id: UUID,
        org_id: UUID,
        data: TaskUpdateRequest,
        actor: User,
    ) -> TaskResponse:
        """
        Partially update a task.

        A status change moves the task to the destination column (appended,
        or at `data.position`); a position alone reorders within the
        current column. Admins may edit any task, others only tasks they
        created or are assigned to.
        """
        validate_position(data.position)
        actor_id = actor.id
        role, task = await self._resolve(actor_id, org_id, TaskAction.update, task_id)

        fields = data.model_fields_set
        new_assignee = None
        if "assignee_id" in fields and data.assignee_id is not None:
            if data.assignee_id != task.assignee_id:
                new_assignee = data.assignee_id
        decision = await self.policy.authorize(
            actor_id,
            org_id,
            TaskAction.update,
            task=task,
            new_assignee_id=new_assignee,
            role=role,
        )
        await self._check(decision, actor_id, org_id, TaskAction.update, task_id)

        moving = (data.status is not None and data.status != task.status) or (
            data.position is not None and data.position != task.position
        )

        if moving:
            result = await self._move(
                task, data.status, data.position, mutate=lambda t: self._apply_fields(t, data)
            )
        else:
            async def _edit(db: AsyncSession) -> MoveResult:
                locked = await self._lock_task(task_id, org_id)
                if locked is None:
                    raise NotFound()
                changes = self._apply_fields(locked, data)
                await db.flush()
                plan = PositionPlan(status=locked.status, position=locked.position, noop=True)
                return MoveResult(locked, plan, locked.status, locked.position, changes)

            result = await self.coordinator.run_in_transaction(_edit)

        task = result.task
        await self.db.refresh(task)

        changes = dict(result.changes)
        if task.status != result.old_status:
            changes["status"] = {"old": result.old_status.value, "new": task.status.value}
            await self._record(
                AuditAction.status_change,
                task.id,
                actor_id,
                org_id,
                {
                    "title": task.title,
                    "old_status": result.old_status.value,
                    "new_status": task.status.value,
                    "old_position": result.old_position,
                    "new_position": task.position,
                },
            )
        if task.position != result.old_position:
            changes["position"] = {"old": result.old_position, "new": task.position}
        if changes:
            await self._record(
                AuditAction.update, task.id, actor_id, org_id, {"title": task.title, "changes": changes}
            )
        return TaskResponse.model_validate(task)

    # -----------------------------------------------------------------------
    # Reorder Task
    # -----------------------------------------------------------------------

    async def reorder_task(
        self,
        task_id: UUID,
        org_id: UUID,
        new_position: int,
        actor: User,
    ) -> TaskResponse:
        """
        Move a task within its current column.

        Targets past the end of the column are clamped to its last slot.
        Moving to the current position writes nothing and records nothing.
        """
        validate_position(new_position)
        actor_id = actor.id
        role, task = await self._resolve(actor_id, org_id, TaskAction.reorder, task_id)
        decision = await self.policy.authorize(
            actor_id, org_id, TaskAction.reorder, task=task, role=role
        )
        await self._check(decision, actor_id, org_id, TaskAction.reorder, task_id)

        if new_position == task.position:
            return TaskResponse.model_validate(task)

        result = await self._move(task, None, new_position)
        task = result.task
        if result.plan.noop:
            return TaskResponse.model_validate(task)

        await self.db.refresh(task)
        await self._record(
            AuditAction.reorder,
            task.id,
            actor_id,
            org_id,
            {
                "title": task.title,
                "status": task.status.value,
                "old_position": result.old_position,
                "new_position": task.position,
            },
        )
        return TaskResponse.model_validate(task)

    # -----------------------------------------------------------------------
    # Delete Task
    # -----------------------------------------------------------------------

    async def delete_task(self, task_id: UUID, org_id: UUID, actor: User) -> None:
        """Delete a task. Admins only. Sibling positions are left as they are."""
        actor_id = actor.id
        role, task = await self._resolve(actor_id, org_id, TaskAction.delete, task_id)
        decision = await self.policy.authorize(
            actor_id, org_id, TaskAction.delete, task=task, role=role
        )
        await self._check(decision, actor_id, org_id, TaskAction.delete, task_id)

        snapshot = {
            "title": task.title,
            "status": task.status.value,
            "position": task.position,
        }

        async def _delete(db: AsyncSession) -> None:
            locked = await self._lock_task(task_id, org_id)
            if locked is None:
                raise NotFound()
            await db.delete(locked)
            await db.flush()

        await self.coordinator.run_in_transaction(_delete)
        await self._record(AuditAction.delete, task_id, actor_id, org_id, snapshot)

    # -----------------------------------------------------------------------
    # Private Helpers
    # -----------------------------------------------------------------------

    async def _move(
        self,
        task: Task,
        target_status: TaskStatus | None,
        target_position: int | None,
        mutate: Callable[[Task], dict[str, dict[str, Any]]] | None = None,
    ) -> MoveResult:
        """
        Move `task` to (`target_status`, `target_position`) in one transaction.

        A `target_status` of None keeps the task in whatever column it is in
        once locked, so a reorder never changes status.

        Both column keys are taken before the row is re-read under lock. If
        a concurrent move took the task to another column in between, the
        unit is rolled back and retried against the fresh column.
        """
        task_id, org_id = task.id, task.org_id
        source = task.status

        for attempt in range(1, settings.MOVE_RETRY_ATTEMPTS + 1):
            async def _unit(db: AsyncSession, expected: TaskStatus = source) -> MoveResult:
                locked = await self._lock_task(task_id, org_id)
                if locked is None:
                    raise NotFound()
                if locked.status != expected:
                    raise _ColumnChanged(locked.status)

                old_status, old_position = locked.status, locked.position
                destination = locked.status if target_status is None else target_status
                if destination == locked.status:
                    column_max = await self._column_max(org_id, locked.status)
                    position = old_position if target_position is None else target_position
                    plan = move_within_column(locked.status, old_position, position, column_max)
                else:
                    destination_max = await self._column_max(org_id, destination)
                    plan = move_across_columns(
                        old_status, old_position, destination, target_position, destination_max
                    )

                changes = mutate(locked) if mutate is not None else {}
                if not plan.noop:
                    await self._apply_shifts(org_id, task_id, plan.shifts)
                    locked.status = plan.status
                    locked.position = plan.position
                await db.flush()
                return MoveResult(locked, plan, old_status, old_position, changes)

            keys = [column_key(org_id, source)]
            if target_status is not None:
                keys.append(column_key(org_id, target_status))
            try:
                return await self.coordinator.run_in_transaction(_unit, lock_keys=keys)
            except _ColumnChanged as exc:
                source = exc.args[0]
                logger.warning(
                    "Task %s moved to %s concurrently, retrying (attempt %d)",
                    task_id,
                    source.value,
                    attempt,
                )

        raise Conflict("Task was moved concurrently, try again", code="CONCURRENT_MOVE")

    def _apply_fields(self, task: Task, data: TaskUpdateRequest) -> dict[str, dict[str, Any]]:
        """Copy explicitly-set payload fields onto `task`; return old/new per changed field."""
        changes: dict[str, dict[str, Any]] = {}
        for name in EDITABLE_FIELDS:
            if name not in data.model_fields_set:
                continue
            value = getattr(data, name)
            if value is None and name in NON_NULLABLE_FIELDS:
                continue
            old = getattr(task, name)
            if value != old:
                changes[name] = {"old": _jsonable(old), "new": _jsonable(value)}
                setattr(task, name, value)
        return changes

    async def _column_max(self, org_id: UUID, status: TaskStatus) -> int | None:
        result = await self.db.execute(
            select(func.max(Task.position)).where(Task.org_id == org_id, Task.status == status)
        )
        return result.scalar()

    async def _apply_shifts(
        self,
        org_id: UUID,
        task_id: UUID | None,
        shifts: Iterable[Shift],
    ) -> None:
        """One UPDATE per shift; the moved task is excluded by id."""
        for shift in shifts:
            stmt = update(Task).where(
                Task.org_id == org_id,
                Task.status == shift.status,
                Task.position >= shift.start,
            )
            if shift.end is not None:
                stmt = stmt.where(Task.position <= shift.end)
            if task_id is not None:
                stmt = stmt.where(Task.id != task_id)
            await self.db.execute(stmt.values(position=Task.position + shift.delta))

    async def _get_task(self, task_id: UUID, org_id: UUID) -> Task | None:
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id, Task.org_id == org_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_task(self, task_id: UUID, org_id: UUID) -> Task | None:
        stmt = (
            select(Task)
            .where(Task.id == task_id, Task.org_id == org_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(self.coordinator.for_update(stmt))
        return result.scalar_one_or_none()

    async def _resolve(
        self,
        actor_id: UUID,
        org_id: UUID,
        action: TaskAction,
        task_id: UUID | None = None,
    ) -> tuple[OrgRole, Task | None]:
        """Membership first, then the org-scoped task; either failure is a denial."""
        decision = await self.policy.membership(actor_id, org_id)
        role = await self._check(decision, actor_id, org_id, action, task_id)
        task = None
        if task_id is not None:
            task = await self._get_task(task_id, org_id)
            if task is None:
                await self._refuse(NotFound(), actor_id, org_id, action, task_id)
        return role, task

    async def _check(
        self,
        decision: Decision,
        actor_id: UUID,
        org_id: UUID,
        action: TaskAction,
        task_id: UUID | None = None,
    ) -> OrgRole:
        if decision.allowed and decision.role is not None:
            return decision.role
        reason = decision.reason or DenialReason.not_a_member
        await self._refuse(Forbidden(reason), actor_id, org_id, action, task_id)

    async def _refuse(
        self,
        exc: Forbidden,
        actor_id: UUID,
        org_id: UUID,
        action: TaskAction,
        task_id: UUID | None,
    ) -> NoReturn:
        logger.info(
            "Denied %s on task %s for user %s in org %s: %s",
            action.value,
            task_id,
            actor_id,
            org_id,
            exc.reason.value,
        )
        await self._record(
            AuditAction.access_denied,
            task_id,
            actor_id,
            org_id,
            {"attempted_action": action.value, "reason": exc.reason.value},
        )
        raise exc

    async def _record(
        self,
        action: AuditAction,
        task_id: UUID | None,
        actor_id: UUID,
        org_id: UUID,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await emit(self.audit, action, "task", task_id, actor_id, org_id, metadata)
