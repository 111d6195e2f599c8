"""Domain errors raised by the service layer and rendered by the API boundary."""

from typing import Dict, List, Optional


class AppError(Exception):
    status_code = 500
    message = "Something went wrong"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        self.message = message or self.message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class ConflictError(AppError):
    status_code = 400
    message = "Resource already exists"


class NotFoundError(AppError):
    status_code = 404
    message = "Not found"


class UnauthenticatedError(AppError):
    status_code = 401
    message = "Could not validate credentials"


class InvalidOrExpiredError(AppError):
    status_code = 400
    message = "Invalid or expired reset token"


class InternalError(AppError):
    status_code = 500
    message = "Something went wrong"
