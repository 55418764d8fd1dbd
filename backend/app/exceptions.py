"""Service errors.

Every error a service raises is an ``HTTPException`` subclass carrying a
machine-readable code, so routers let them propagate and FastAPI renders
``{"detail": {"message": ..., "code": ...}}`` without extra handlers.

    ValidationError     422  malformed input (empty name, bad email, bad code)
    PermissionDenied    403  role check failed
    NotFound            404  dangling id
    Conflict            409  uniqueness or state conflict
    DependencyFailure   503  store or channel unreachable
"""
from typing import Any, Optional

from fastapi import HTTPException


class ServiceError(HTTPException):
    """Base error with a message and error code."""

    status_code_default = 500
    code_default = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Any] = None):
        self.message = message
        self.code = code or self.code_default
        detail: dict[str, Any] = {"message": message, "code": self.code}
        if details is not None:
            detail["details"] = details
        super().__init__(status_code=self.status_code_default, detail=detail)

    def __str__(self) -> str:
        return self.message


class ValidationError(ServiceError):
    status_code_default = 422
    code_default = "VALIDATION_ERROR"


class PermissionDenied(ServiceError):
    status_code_default = 403
    code_default = "PERMISSION_DENIED"


class NotFound(ServiceError):
    status_code_default = 404
    code_default = "NOT_FOUND"


class Conflict(ServiceError):
    status_code_default = 409
    code_default = "CONFLICT"


class AlreadyMember(Conflict):
    code_default = "ALREADY_MEMBER"


class DuplicateInvitation(Conflict):
    code_default = "DUPLICATE_INVITATION"


class DuplicateCodeError(Conflict):
    """Join-code generation exhausted its retries."""

    code_default = "DUPLICATE_CODE"


class InvitationNotPending(Conflict):
    """The invitation already reached a terminal state."""

    code_default = "INVITATION_NOT_PENDING"


class DependencyFailure(ServiceError):
    status_code_default = 503
    code_default = "DEPENDENCY_FAILURE"
