from __future__ import annotations

from fastapi import status


class WorkflowError(Exception):
    """Base class for failures surfaced by the review workflow.

    Each subclass carries a stable ``code`` and the HTTP status the API layer
    renders it with, so clients can tell "already claimed by another doctor"
    apart from "regeneration failed, please retry".
    """

    code: str = "WORKFLOW_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(WorkflowError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(WorkflowError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class RoleConflict(WorkflowError):
    code = "ROLE_CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class Conflict(WorkflowError):
    """A conditional update lost its race; the caller should re-fetch."""

    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(WorkflowError):
    code = "INVALID_TRANSITION"
    status_code = 422


class ValidationFailed(WorkflowError):
    code = "VALIDATION_FAILED"
    status_code = status.HTTP_400_BAD_REQUEST


class RegenerationFailed(WorkflowError):
    code = "REGENERATION_FAILED"
    status_code = status.HTTP_502_BAD_GATEWAY
