"""
Position engine tests.

Pure planning functions plus the in-memory application used by the board.
"""

import uuid
from dataclasses import dataclass

import pytest

from taskboard.core.exceptions import InvalidPosition
from taskboard.models.task import TaskStatus
from taskboard.services.positioning import (
    Shift,
    append_position,
    apply_plan,
    column_positions,
    insert_into_column,
    is_dense,
    move_across_columns,
    move_within_column,
    validate_position,
)

TODO = TaskStatus.todo
DONE = TaskStatus.done


@dataclass
class Card:
    id: uuid.UUID
    status: TaskStatus
    position: int


def make_column(status: TaskStatus, count: int) -> list[Card]:
    return [Card(uuid.uuid4(), status, i) for i in range(count)]


# ---------------------------------------------------------------------------
# Append / validation
# ---------------------------------------------------------------------------

def test_append_to_empty_column_is_zero():
    assert append_position(None) == 0


def test_append_goes_after_max():
    assert append_position(2) == 3


def test_negative_target_rejected():
    with pytest.raises(InvalidPosition):
        validate_position(-1)


def test_none_and_zero_are_valid_targets():
    validate_position(None)
    validate_position(0)


def test_move_within_column_rejects_negative():
    with pytest.raises(InvalidPosition):
        move_within_column(TODO, 1, -1, 2)


def test_move_across_columns_rejects_negative():
    with pytest.raises(InvalidPosition):
        move_across_columns(TODO, 0, DONE, -3, None)


# ---------------------------------------------------------------------------
# Within a column
# ---------------------------------------------------------------------------

def test_same_position_is_noop():
    plan = move_within_column(TODO, 1, 1, 2)
    assert plan.noop
    assert plan.shifts == ()


def test_move_down_decrements_range_between():
    plan = move_within_column(TODO, 0, 2, 2)
    assert plan.position == 2
    assert plan.shifts == (Shift(TODO, 1, 2, -1),)


def test_move_up_increments_range_between():
    plan = move_within_column(TODO, 3, 1, 3)
    assert plan.position == 1
    assert plan.shifts == (Shift(TODO, 1, 2, 1),)


def test_target_past_end_is_clamped_to_last_slot():
    plan = move_within_column(TODO, 0, 99, 2)
    assert plan.position == 2


def test_clamped_target_equal_to_current_is_noop():
    plan = move_within_column(TODO, 2, 10, 2)
    assert plan.noop


def test_reorder_first_to_last_scenario():
    cards = make_column(TODO, 3)
    first, second, third = cards
    plan = move_within_column(TODO, 0, 2, 2)
    apply_plan(cards, first.id, plan)
    assert (second.position, third.position, first.position) == (0, 1, 2)


@pytest.mark.parametrize("old,new", [(0, 4), (4, 0), (2, 3), (3, 1), (1, 1)])
def test_within_column_moves_keep_column_dense(old, new):
    cards = make_column(TODO, 5)
    moved = cards[old]
    apply_plan(cards, moved.id, move_within_column(TODO, old, new, 4))
    assert is_dense(column_positions(cards, TODO))
    assert moved.position == new


# ---------------------------------------------------------------------------
# Across columns
# ---------------------------------------------------------------------------

def test_move_to_empty_column_appends():
    plan = move_across_columns(TODO, 1, DONE, None, None)
    assert plan.status == DONE
    assert plan.position == 0
    assert plan.shifts == (Shift(TODO, 2, None, -1),)


def test_move_across_with_target_opens_slot():
    plan = move_across_columns(TODO, 0, DONE, 1, 2)
    assert plan.position == 1
    assert Shift(DONE, 1, None, 1) in plan.shifts


def test_move_across_target_past_end_is_appended():
    plan = move_across_columns(TODO, 0, DONE, 50, 2)
    assert plan.position == 3
    assert all(shift.status == TODO for shift in plan.shifts)


def test_move_across_same_status_delegates_to_within():
    plan = move_across_columns(TODO, 0, TODO, 2, 2)
    assert plan == move_within_column(TODO, 0, 2, 2)


def test_cross_column_conservation():
    source = make_column(TODO, 3)
    destination = make_column(DONE, 4)
    cards = source + destination
    moved = source[1]
    plan = move_across_columns(TODO, 1, DONE, 2, 3)
    apply_plan(cards, moved.id, plan)

    assert column_positions(cards, TODO) == [0, 1]
    assert column_positions(cards, DONE) == [0, 1, 2, 3, 4]
    assert (moved.status, moved.position) == (DONE, 2)


def test_todo_to_empty_done_scenario():
    cards = make_column(TODO, 3)
    moved = cards[1]
    apply_plan(cards, moved.id, move_across_columns(TODO, 1, DONE, None, None))
    assert [c.position for c in cards if c.status == TODO] == [0, 1]
    assert (moved.status, moved.position) == (DONE, 0)


# ---------------------------------------------------------------------------
# Insert
# ---------------------------------------------------------------------------

def test_insert_without_target_appends_without_shifts():
    plan = insert_into_column(TODO, None, 2)
    assert plan.position == 3
    assert plan.shifts == ()


def test_insert_at_head_shifts_everyone():
    plan = insert_into_column(TODO, 0, 2)
    assert plan.position == 0
    assert plan.shifts == (Shift(TODO, 0, None, 1),)


def test_apply_plan_never_shifts_moved_card():
    cards = make_column(TODO, 3)
    moved = cards[2]
    apply_plan(cards, moved.id, move_within_column(TODO, 2, 0, 2))
    assert moved.position == 0
    assert sorted(c.position for c in cards) == [0, 1, 2]


def test_is_dense():
    assert is_dense([])
    assert is_dense([2, 0, 1])
    assert not is_dense([0, 2])
    assert not is_dense([0, 1, 1])
