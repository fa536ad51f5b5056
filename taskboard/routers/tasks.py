"""
Task management endpoints.

CRUD, reorder and listing for an organization's tasks. Authorization is
decided inside TaskService.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings
from taskboard.core.database import get_db
from taskboard.core.dependencies import get_current_user
from taskboard.models.task import TaskCategory, TaskPriority, TaskStatus
from taskboard.models.user import User
from taskboard.schemas.task import (
    TaskCreateRequest,
    TaskFilters,
    TaskListResponse,
    TaskReorderRequest,
    TaskResponse,
    TaskUpdateRequest,
)
from taskboard.services.audit_service import AuditRecorder, get_audit_recorder
from taskboard.services.task_service import TaskService

router = APIRouter()


def get_task_service(
    db: AsyncSession = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> TaskService:
    return TaskService(db=db, audit=audit)


# ---------------------------------------------------------------------------
# List Tasks
# ---------------------------------------------------------------------------

@router.get(
    "/organizations/{org_id}/tasks",
    response_model=TaskListResponse,
    summary="List tasks in an organization",
)
async def list_tasks(
    org_id: UUID,
    page: int = Query(default=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_LIMIT),
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    category: TaskCategory | None = Query(default=None),
    priority: TaskPriority | None = Query(default=None),
    assignee_id: UUID | None = Query(default=None),
    created_by_id: UUID | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskListResponse:
    filters = TaskFilters(
        status=task_status,
        category=category,
        priority=priority,
        assignee_id=assignee_id,
        created_by_id=created_by_id,
    )
    return await service.list_tasks(org_id, current_user, filters, page=page, limit=limit)


# ---------------------------------------------------------------------------
# Create Task
# ---------------------------------------------------------------------------

@router.post(
    "/organizations/{org_id}/tasks",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new task",
)
async def create_task(
    org_id: UUID,
    data: TaskCreateRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await service.create_task(org_id=org_id, data=data, actor=current_user)


# ---------------------------------------------------------------------------
# Get Task
# ---------------------------------------------------------------------------

@router.get(
    "/organizations/{org_id}/tasks/{task_id}",
    response_model=TaskResponse,
    summary="Get a task",
)
async def get_task(
    org_id: UUID,
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await service.get_task(task_id, org_id, current_user)


# ---------------------------------------------------------------------------
# Update Task
# ---------------------------------------------------------------------------

@router.patch(
    "/organizations/{org_id}/tasks/{task_id}",
    response_model=TaskResponse,
    summary="Update a task",
)
async def update_task(
    org_id: UUID,
    task_id: UUID,
    data: TaskUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    """Partial update; a status change moves the task to the new column."""
    return await service.update_task(task_id, org_id, data, current_user)


# ---------------------------------------------------------------------------
# Reorder Task
# ---------------------------------------------------------------------------

@router.patch(
    "/organizations/{org_id}/tasks/{task_id}/reorder",
    response_model=TaskResponse,
    summary="Move a task within its column",
)
async def reorder_task(
    org_id: UUID,
    task_id: UUID,
    data: TaskReorderRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await service.reorder_task(task_id, org_id, data.new_position, current_user)


# ---------------------------------------------------------------------------
# Delete Task
# ---------------------------------------------------------------------------

@router.delete(
    "/organizations/{org_id}/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a task",
)
async def delete_task(
    org_id: UUID,
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> Response:
    await service.delete_task(task_id, org_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
