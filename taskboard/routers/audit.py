"""
Audit log endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings
from taskboard.core.database import get_db
from taskboard.core.dependencies import get_current_user
from taskboard.models.user import User
from taskboard.schemas.audit import AuditLogListResponse
from taskboard.services.audit_service import AuditService

router = APIRouter()


def get_audit_service(db: AsyncSession = Depends(get_db)) -> AuditService:
    return AuditService(db=db)


@router.get(
    "/organizations/{org_id}/audit-logs",
    response_model=AuditLogListResponse,
    summary="List an organization's audit trail",
)
async def list_audit_logs(
    org_id: UUID,
    action: str | None = Query(default=None, max_length=50),
    resource_id: UUID | None = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_LIMIT),
    current_user: User = Depends(get_current_user),
    service: AuditService = Depends(get_audit_service),
) -> AuditLogListResponse:
    """Admins and owners only. Newest first."""
    return await service.list_audit_logs(
        org_id,
        current_user.id,
        action=action,
        resource_id=resource_id,
        page=page,
        limit=limit,
    )
