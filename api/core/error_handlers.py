"""
Global exception handlers.

Every failure leaves the API as `{"success": false, "error": <message>}`:

- AppError -> its own status / message
- route not found / method not allowed -> 404 / 405 from Starlette
- RequestValidationError -> 400 with field details
- asyncpg errors -> 409 / 400 / 500 depending on the error class
- anything else -> 500, details only in the server log
"""

from __future__ import annotations

import asyncio
import logging

import asyncpg
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import AppError, ConflictError, DependencyError, InternalError, NotFound, ValidationError

logger = logging.getLogger(__name__)


def to_app_error(exc: BaseException) -> AppError:
    """
    Classify any exception into the error taxonomy.
    """
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, asyncpg.UniqueViolationError):
        return ConflictError()
    if isinstance(exc, (asyncpg.IntegrityConstraintViolationError, asyncpg.DataError)):
        return ValidationError("Invalid or inconsistent field values.")
    if isinstance(exc, (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)):
        return DependencyError()
    return InternalError()


def error_response(exc: BaseException, *, headers: dict | None = None) -> JSONResponse:
    error = to_app_error(exc)
    return JSONResponse(status_code=error.status_code, content=error.to_response(), headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "%s on %s: %s",
            type(exc).__name__,
            request.url.path,
            exc.message,
            exc_info=exc if exc.status_code >= 500 and exc.__cause__ is not None else None,
            extra={"error_code": type(exc).__name__, "path": request.url.path},
        )
        return error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = NotFound.default_message
        else:
            message = exc.detail if isinstance(exc.detail, str) and exc.detail else "Request failed."
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "error": ValidationError.default_message,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                        "type": e["type"],
                    }
                    for e in exc.errors()
                ],
            },
        )

    @app.exception_handler(asyncpg.PostgresError)
    async def database_error_handler(request: Request, exc: asyncpg.PostgresError):
        error = to_app_error(exc)
        log = logger.error if error.status_code >= 500 else logger.info
        log("Database error on %s: %s", request.url.path, exc, exc_info=exc if error.status_code >= 500 else None)
        return error_response(error)

    @app.exception_handler(OSError)
    async def connection_error_handler(request: Request, exc: OSError):
        logger.error("Connection error on %s: %s", request.url.path, exc, exc_info=exc)
        return error_response(DependencyError())

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=exc)
        return error_response(exc)
