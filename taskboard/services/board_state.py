"""
Client-side board state.

Predicts the result of a reorder or move with the same position engine the
server uses, then confirms it against the authoritative call. If that call
fails the board is put back exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from typing import TypeVar
from uuid import UUID

from taskboard.models.task import TaskStatus
from taskboard.services.positioning import (
    PositionPlan,
    apply_plan,
    move_across_columns,
    move_within_column,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BoardCard:
    id: UUID
    status: TaskStatus
    position: int
    title: str = ""


class BoardState:
    """In-memory cards of one organization's board."""

    def __init__(self, cards: Iterable[BoardCard] = ()) -> None:
        self.cards: list[BoardCard] = list(cards)

    @classmethod
    def from_tasks(cls, tasks: Iterable[object]) -> BoardState:
        """Build from anything shaped like TaskResponse."""
        return cls(
            BoardCard(id=t.id, status=t.status, position=t.position, title=t.title)
            for t in tasks
        )

    def column(self, status: TaskStatus) -> list[BoardCard]:
        return sorted((c for c in self.cards if c.status == status), key=lambda c: c.position)

    def card(self, task_id: UUID) -> BoardCard:
        for card in self.cards:
            if card.id == task_id:
                return card
        raise KeyError(task_id)

    def snapshot(self) -> list[BoardCard]:
        return [replace(c) for c in self.cards]

    def restore(self, snapshot: list[BoardCard]) -> None:
        self.cards = [replace(c) for c in snapshot]

    def _column_max(self, status: TaskStatus) -> int | None:
        positions = [c.position for c in self.cards if c.status == status]
        return max(positions) if positions else None

    def predict_reorder(self, task_id: UUID, new_position: int) -> PositionPlan:
        """Apply a within-column move locally and return the plan used."""
        card = self.card(task_id)
        plan = move_within_column(
            card.status, card.position, new_position, self._column_max(card.status)
        )
        apply_plan(self.cards, task_id, plan)
        return plan

    def predict_move(
        self,
        task_id: UUID,
        new_status: TaskStatus,
        new_position: int | None = None,
    ) -> PositionPlan:
        """Apply a cross-column move locally (append when no position)."""
        card = self.card(task_id)
        plan = move_across_columns(
            card.status,
            card.position,
            new_status,
            new_position,
            self._column_max(new_status),
        )
        apply_plan(self.cards, task_id, plan)
        return plan

    async def optimistic(
        self,
        predict: Callable[[], object],
        commit: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run `predict` now and `commit` against the server.

        On any failure of `commit` the pre-prediction snapshot is restored
        and the error re-raised.
        """
        saved = self.snapshot()
        predict()
        try:
            return await commit()
        except Exception:
            logger.info("Authoritative call failed, restoring board snapshot")
            self.restore(saved)
            raise
