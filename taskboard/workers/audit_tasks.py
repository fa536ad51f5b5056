"""
Audit background tasks.

Persists audit events enqueued by CeleryAuditRecorder.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from taskboard.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="taskboard.workers.audit_tasks.write_audit_event",
    bind=True,
    max_retries=3,
    default_retry_delay=10,
)
def write_audit_event(
    self,
    action: str,
    resource: str,
    resource_id: str | None,
    actor_id: str | None,
    org_id: str | None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, str]:
    """Insert one audit_logs row."""
    try:
        # Fresh loop per task: forked workers can inherit a closed one.
        from taskboard.core.database import async_engine

        async_engine.sync_engine.dispose()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(
                _write(action, resource, resource_id, actor_id, org_id, metadata)
            )
        finally:
            loop.close()
        return {"status": "recorded", "action": action}
    except Exception as exc:
        logger.error("write_audit_event failed: %s", exc)
        raise self.retry(exc=exc)


def _as_uuid(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


async def _write(
    action: str,
    resource: str,
    resource_id: str | None,
    actor_id: str | None,
    org_id: str | None,
    metadata: dict[str, Any] | None,
) -> None:
    from taskboard.services.audit_service import DatabaseAuditRecorder

    await DatabaseAuditRecorder().record(
        action=action,
        resource=resource,
        resource_id=_as_uuid(resource_id),
        actor_id=_as_uuid(actor_id),
        org_id=_as_uuid(org_id),
        metadata=metadata,
    )
