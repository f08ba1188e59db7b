"""
Error taxonomy.

Every error raised on purpose inside the pipeline or a handler is an
`AppError`. The error handlers in `core.error_handlers` turn it into
`{"success": false, "error": <message>}` with `status_code`.
"""

from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = (message or "").strip() or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {"success": False, "error": self.message}


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request data."


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required."


class Forbidden(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(AppError):
    status_code = 404
    default_message = "Not Found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource already exists."


class PayloadTooLarge(AppError):
    status_code = 413
    default_message = "Request payload too large."


class DependencyError(AppError):
    status_code = 500
    default_message = "Database error"


class InternalError(AppError):
    status_code = 500
    default_message = "Internal Server Error"
