"""
Audit trail.

Write side: an AuditRecorder takes one event per task mutation or denial.
Emission is best-effort; `emit` logs and swallows recorder failures so an
unavailable audit sink never fails the primary operation.

Read side: AuditService lists an organization's trail for admins.
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings
from taskboard.core.database import AsyncSessionLocal
from taskboard.core.exceptions import Forbidden
from taskboard.models.audit_log import AuditLog
from taskboard.schemas.audit import AuditLogListResponse, AuditLogResponse
from taskboard.services.authorization import AuthorizationPolicy, MembershipLookup
from taskboard.services.membership import MembershipRepository

logger = logging.getLogger(__name__)


class AuditAction(str, enum.Enum):
    create = "create"
    update = "update"
    status_change = "status_change"
    delete = "delete"
    reorder = "reorder"
    access_denied = "access_denied"


class AuditRecorder(Protocol):
    async def record(
        self,
        action: str,
        resource: str,
        resource_id: UUID | None,
        actor_id: UUID | None,
        org_id: UUID | None,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class DatabaseAuditRecorder:
    """
    Writes each event in its own session.

    A separate session keeps the event independent of the caller's
    transaction: denials are recorded even though nothing else commits.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        action: str,
        resource: str,
        resource_id: UUID | None,
        actor_id: UUID | None,
        org_id: UUID | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        async with self.session_factory() as session:
            session.add(
                AuditLog(
                    action=action,
                    resource=resource,
                    resource_id=resource_id,
                    actor_id=actor_id,
                    org_id=org_id,
                    metadata_json=metadata,
                )
            )
            await session.commit()


class CeleryAuditRecorder:
    """Fire-and-forget: enqueue the event for the audit worker."""

    async def record(
        self,
        action: str,
        resource: str,
        resource_id: UUID | None,
        actor_id: UUID | None,
        org_id: UUID | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        # Deferred to avoid importing Celery at module load.
        from taskboard.workers.audit_tasks import write_audit_event

        write_audit_event.delay(
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id else None,
            actor_id=str(actor_id) if actor_id else None,
            org_id=str(org_id) if org_id else None,
            metadata=metadata,
        )


def get_audit_recorder() -> AuditRecorder:
    """FastAPI dependency: recorder chosen by AUDIT_BACKEND."""
    if settings.AUDIT_BACKEND == "celery":
        return CeleryAuditRecorder()
    return DatabaseAuditRecorder()


async def emit(
    recorder: AuditRecorder,
    action: AuditAction,
    resource: str,
    resource_id: UUID | None,
    actor_id: UUID | None,
    org_id: UUID | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Record one event; failures are logged, never raised."""
    try:
        await recorder.record(
            action=action.value,
            resource=resource,
            resource_id=resource_id,
            actor_id=actor_id,
            org_id=org_id,
            metadata=metadata,
        )
    except Exception:
        logger.warning(
            "Audit event %s for %s %s could not be recorded",
            action.value,
            resource,
            resource_id,
            exc_info=True,
        )


class AuditService:
    """Read access to an organization's audit trail."""

    def __init__(self, db: AsyncSession, memberships: MembershipLookup | None = None) -> None:
        self.db = db
        self.policy = AuthorizationPolicy(memberships or MembershipRepository(db))

    async def list_audit_logs(
        self,
        org_id: UUID,
        actor_id: UUID,
        action: str | None = None,
        resource_id: UUID | None = None,
        page: int = 1,
        limit: int = settings.DEFAULT_PAGE_LIMIT,
    ) -> AuditLogListResponse:
        """Newest first. Admins and owners only."""
        decision = await self.policy.authorize_audit_read(actor_id, org_id)
        if not decision.allowed:
            raise Forbidden(decision.reason)

        page = max(1, page)
        limit = min(max(1, limit), settings.MAX_PAGE_LIMIT)

        stmt = select(AuditLog).where(AuditLog.org_id == org_id)
        if action is not None:
            stmt = stmt.where(AuditLog.action == action)
        if resource_id is not None:
            stmt = stmt.where(AuditLog.resource_id == resource_id)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.db.execute(count_stmt)).scalar_one()

        stmt = (
            stmt.order_by(AuditLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        logs = [AuditLogResponse.model_validate(row) for row in result.scalars().all()]

        return AuditLogListResponse(
            data=logs,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
        )
