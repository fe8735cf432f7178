"""Application errors raised by the SyncSphere services.

Every error carries the HTTP status the API layer answers with and a short
machine readable ``code`` for clients.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class NotFoundError(AppError):
    """Resource is absent or not owned by the requesting user."""

    status_code = 404
    code = "NOT_FOUND_ERROR"


class InvalidStateError(AppError):
    """Operation attempted while the resource is in the wrong status."""

    status_code = 400
    code = "INVALID_STATE_ERROR"


class LimitExceededError(AppError):
    status_code = 429
    code = "LIMIT_EXCEEDED_ERROR"


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT_ERROR"


class InternalError(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"
