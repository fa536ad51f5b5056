"""
Position engine.

Pure functions that decide where a task lands inside its (org, status)
column and which siblings shift to keep the column a dense 0..k-1 run.
The same plans drive the SQL updates in TaskService and the in-memory
prediction in BoardState.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from taskboard.core.exceptions import InvalidPosition
from taskboard.models.task import TaskStatus


@dataclass(frozen=True)
class Shift:
    """Add `delta` to every sibling in `status` whose position is in [start, end]."""

    status: TaskStatus
    start: int
    end: int | None
    delta: int

    def covers(self, position: int) -> bool:
        if position < self.start:
            return False
        return self.end is None or position <= self.end


@dataclass(frozen=True)
class PositionPlan:
    """Target slot for the moved task plus the sibling shifts that make room."""

    status: TaskStatus
    position: int
    shifts: tuple[Shift, ...] = ()
    noop: bool = False


class Positioned(Protocol):
    id: UUID
    status: TaskStatus
    position: int


def validate_position(position: int | None) -> None:
    """Reject negative targets before anything is read."""
    if position is not None and position < 0:
        raise InvalidPosition()


def append_position(column_max: int | None) -> int:
    """Next free slot at the end of a column (0 when the column is empty)."""
    return 0 if column_max is None else column_max + 1


def insert_into_column(
    status: TaskStatus,
    new_position: int | None,
    column_max: int | None,
) -> PositionPlan:
    """
    Plan a new card entering a column.

    Appends when no target is given; otherwise clamps to the tail and opens
    a slot by pushing later siblings down.
    """
    validate_position(new_position)
    tail = append_position(column_max)
    target = tail if new_position is None else min(new_position, tail)
    if target < tail:
        return PositionPlan(
            status=status,
            position=target,
            shifts=(Shift(status=status, start=target, end=None, delta=1),),
        )
    return PositionPlan(status=status, position=target)


def move_within_column(
    status: TaskStatus,
    old_position: int,
    new_position: int,
    column_max: int | None = None,
) -> PositionPlan:
    """
    Plan a move inside one column.

    `column_max` is the highest position currently in the column (the
    moved task included); targets past it are clamped to it.
    """
    validate_position(new_position)
    if column_max is not None:
        new_position = min(new_position, max(column_max, old_position))

    if new_position == old_position:
        return PositionPlan(status=status, position=old_position, noop=True)

    if new_position > old_position:
        shift = Shift(status=status, start=old_position + 1, end=new_position, delta=-1)
    else:
        shift = Shift(status=status, start=new_position, end=old_position - 1, delta=1)
    return PositionPlan(status=status, position=new_position, shifts=(shift,))


def move_across_columns(
    old_status: TaskStatus,
    old_position: int,
    new_status: TaskStatus,
    new_position: int | None,
    destination_max: int | None,
) -> PositionPlan:
    """
    Plan a move from one column into another.

    Closes the hole left in the source column and opens a slot in the
    destination. Without an explicit target the task is appended.
    """
    if new_status == old_status:
        return move_within_column(
            old_status,
            old_position,
            old_position if new_position is None else new_position,
            destination_max,
        )

    landing = insert_into_column(new_status, new_position, destination_max)
    close_hole = Shift(status=old_status, start=old_position + 1, end=None, delta=-1)
    return PositionPlan(
        status=new_status,
        position=landing.position,
        shifts=(close_hole, *landing.shifts),
    )


def apply_plan(
    items: Iterable[Positioned],
    task_id: UUID,
    plan: PositionPlan,
) -> None:
    """
    Apply a plan to in-memory cards.

    The moved card is set directly and never touched by the sibling pass.
    Callers must pass the column as it was when the plan was computed.
    """
    if plan.noop:
        return
    moved = None
    for item in items:
        if item.id == task_id:
            moved = item
            continue
        for shift in plan.shifts:
            if item.status == shift.status and shift.covers(item.position):
                item.position += shift.delta
                break
    if moved is not None:
        moved.status = plan.status
        moved.position = plan.position


def column_positions(items: Iterable[Positioned], status: TaskStatus) -> list[int]:
    return sorted(item.position for item in items if item.status == status)


def is_dense(positions: Iterable[int]) -> bool:
    """True when positions are exactly 0..k-1."""
    ordered = sorted(positions)
    return ordered == list(range(len(ordered)))
