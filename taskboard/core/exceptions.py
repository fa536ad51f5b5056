"""
Service-layer exceptions.

Framework-free: services raise these, main.py translates them into HTTP
responses. Forbidden carries an internal reason that is logged and audited
but never rendered to the caller.
"""

from __future__ import annotations

import enum


class DenialReason(str, enum.Enum):
    """Why a request was denied. Internal only."""

    not_a_member = "not_a_member"
    insufficient_role = "insufficient_role"
    assignee_not_member = "assignee_not_member"
    not_creator_or_assignee = "not_creator_or_assignee"
    owner_required = "owner_required"
    not_found = "not_found"


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    code = "SERVICE_ERROR"
    message = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Forbidden(ServiceError):
    """Uniform permission denial."""

    code = "FORBIDDEN"
    message = "Access denied"

    def __init__(self, reason: DenialReason) -> None:
        super().__init__()
        self.reason = reason

    def __repr__(self) -> str:
        return f"<{type(self).__name__} reason={self.reason.value}>"


class NotFound(Forbidden):
    """
    Missing or cross-tenant record.

    Subclasses Forbidden so the boundary reports it exactly like a denial.
    """

    def __init__(self, resource: str = "task") -> None:
        super().__init__(DenialReason.not_found)
        self.resource = resource


class BadRequest(ServiceError):
    code = "BAD_REQUEST"
    message = "Invalid request"

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class InvalidPosition(BadRequest):
    code = "INVALID_POSITION"
    message = "Position cannot be negative"


class Conflict(ServiceError):
    code = "CONFLICT"
    message = "Request conflicts with the current state"

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class LastOwnerError(Conflict):
    code = "LAST_OWNER"
    message = "An organization must keep at least one owner"


class ResourceMissing(ServiceError):
    """A referenced non-task resource (e.g. parent organization) does not exist."""

    code = "NOT_FOUND"
    message = "Resource not found"

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
