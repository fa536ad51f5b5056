"""
Task schemas.

Request/response models for task CRUD, reorder and listing endpoints.
Positions are plain ints here; negative values are rejected by the
service with INVALID_POSITION rather than by validation.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from taskboard.models.task import TaskCategory, TaskPriority, TaskStatus


# ---------------------------------------------------------------------------
# Task Create
# ---------------------------------------------------------------------------

class TaskCreateRequest(BaseModel):
    """Request body for POST /organizations/{org_id}/tasks."""

    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    status: TaskStatus = TaskStatus.todo
    priority: TaskPriority = TaskPriority.medium
    category: TaskCategory = TaskCategory.other
    due_date: datetime | None = None
    assignee_id: UUID | None = None
    position: int | None = None


# ---------------------------------------------------------------------------
# Task Update
# ---------------------------------------------------------------------------

class TaskUpdateRequest(BaseModel):
    """
    Request body for PATCH /organizations/{org_id}/tasks/{task_id}.

    Only fields present in the payload are applied; an explicit null clears
    description, due_date or assignee_id.
    """

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    category: TaskCategory | None = None
    due_date: datetime | None = None
    assignee_id: UUID | None = None
    position: int | None = None


# ---------------------------------------------------------------------------
# Reorder within column
# ---------------------------------------------------------------------------

class TaskReorderRequest(BaseModel):
    """Request body for PATCH /organizations/{org_id}/tasks/{task_id}/reorder."""

    new_position: int


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TaskFilters(BaseModel):
    status: TaskStatus | None = None
    category: TaskCategory | None = None
    priority: TaskPriority | None = None
    assignee_id: UUID | None = None
    created_by_id: UUID | None = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    category: TaskCategory
    due_date: datetime | None
    position: int
    created_by_id: UUID
    assignee_id: UUID | None
    created_at: datetime
    updated_at: datetime


class TaskListResponse(BaseModel):
    data: list[TaskResponse]
    total: int
    page: int
    limit: int
    total_pages: int
