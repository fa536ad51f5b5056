"""
Transaction coordinator.

Runs one unit of work (position shifts plus the row mutation) atomically:
commit on success, rollback on any exception, so partial shifts never
persist.

Locking is picked at runtime from the SQLAlchemy dialect:

- row strategy (PostgreSQL, MySQL, ...): rows are read with FOR UPDATE.
  Column-wide serialization, which covers the max(position) aggregate and
  empty columns, uses transaction-scoped advisory locks on PostgreSQL.
- isolation strategy (SQLite and anything without FOR UPDATE): transaction
  isolation only. Named keys are serialized by an in-process asyncio.Lock
  held until commit. This protects a single process only; it does not
  coordinate several workers.

Keys are always acquired in sorted order so two units locking overlapping
columns cannot deadlock.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import Select, text
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROW_LOCK_DIALECTS = frozenset({"postgresql", "mysql", "mariadb", "oracle", "mssql"})
ADVISORY_LOCK_DIALECTS = frozenset({"postgresql"})


@dataclass(frozen=True)
class LockCapabilities:
    row_locks: bool
    advisory_locks: bool

    @property
    def strategy(self) -> str:
        return "row" if self.row_locks else "isolation"


def detect_capabilities(dialect_name: str, mode: str = "auto") -> LockCapabilities:
    """Map a dialect name and the ROW_LOCKING setting to what we may use."""
    if mode == "off":
        return LockCapabilities(row_locks=False, advisory_locks=False)
    advisory = dialect_name in ADVISORY_LOCK_DIALECTS
    if mode == "on":
        return LockCapabilities(row_locks=True, advisory_locks=advisory)
    return LockCapabilities(row_locks=dialect_name in ROW_LOCK_DIALECTS, advisory_locks=advisory)


def column_key(org_id: UUID, status: Any) -> str:
    return f"column:{org_id}:{getattr(status, 'value', status)}"


def owners_key(org_id: UUID) -> str:
    return f"owners:{org_id}"


def advisory_key(key: str) -> int:
    """Stable signed 64-bit id for pg_advisory_xact_lock."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class LocalLockRegistry:
    """Named asyncio locks, one per key, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


local_locks = LocalLockRegistry()


class TransactionCoordinator:
    """Executes units of work on one session with the best locking available."""

    def __init__(
        self,
        db: AsyncSession,
        mode: str | None = None,
        registry: LocalLockRegistry | None = None,
    ) -> None:
        self.db = db
        self.registry = registry if registry is not None else local_locks
        dialect = db.get_bind().dialect.name
        self.capabilities = detect_capabilities(dialect, mode or settings.ROW_LOCKING)
        logger.debug(
            "Transaction strategy for dialect %s: %s", dialect, self.capabilities.strategy
        )

    def for_update(self, stmt: Select) -> Select:
        """Add FOR UPDATE when the backend honours it."""
        if self.capabilities.row_locks:
            return stmt.with_for_update()
        return stmt

    async def run_in_transaction(
        self,
        fn: Callable[[AsyncSession], Awaitable[T]],
        lock_keys: Iterable[str] = (),
    ) -> T:
        """
        Run `fn` and commit, holding every key in `lock_keys` until commit.

        Any exception rolls the whole unit back and propagates.
        """
        keys = sorted(set(lock_keys))
        async with AsyncExitStack() as stack:
            if keys and not self.capabilities.advisory_locks:
                for key in keys:
                    await stack.enter_async_context(self.registry.get(key))
            try:
                if self.capabilities.advisory_locks:
                    for key in keys:
                        await self.db.execute(
                            text("SELECT pg_advisory_xact_lock(:key)"),
                            {"key": advisory_key(key)},
                        )
                result = await fn(self.db)
                await self.db.commit()
            except BaseException:
                await self.db.rollback()
                raise
        return result
