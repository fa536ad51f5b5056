"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
"""

from taskboard.models.base import Base, TimestampMixin, UUIDMixin
from taskboard.models.member import OrgMember, OrgRole
from taskboard.models.organization import Organization
from taskboard.models.user import User
from taskboard.models.task import Task, TaskCategory, TaskPriority, TaskStatus
from taskboard.models.audit_log import AuditLog

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "Organization",
    "User",
    "OrgMember",
    "OrgRole",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "TaskCategory",
    "AuditLog",
]
