"""Typed operational errors and the app-wide exception handlers.

Every expected business failure is raised as an ``AppError`` carrying a
stable machine-readable ``code``. The handlers below turn it into the JSON
envelope clients rely on:

    {"success": false, "error": {"message": ..., "code": ..., "timestamp": ...}}

Anything that is not an ``AppError`` is a programmer or infrastructure error:
it is logged with its traceback and reported as an opaque 500.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, OperationalError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Operational error with an HTTP status and a stable error code."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        code: str = "BAD_REQUEST",
        details: Optional[Any] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(message)


class NotFoundError(AppError):
    def __init__(self, message: str, code: str):
        super().__init__(message, status.HTTP_404_NOT_FOUND, code)


class ConflictError(AppError):
    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message, status.HTTP_409_CONFLICT, code, details)


class PermissionDeniedError(AppError):
    def __init__(self, message: str, code: str = "PERMISSION_DENIED"):
        super().__init__(message, status.HTTP_403_FORBIDDEN, code)


def error_body(message: str, code: str, details: Optional[Any] = None) -> dict:
    error = {
        "message": message,
        "code": code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(
        "%s %s -> %d %s: %s",
        request.method, request.url.path, exc.status_code, exc.code, exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, exc.details),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(loc) for loc in err["loc"] if loc != "body"),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning("Validation error on %s %s: %s", request.method, request.url.path, details)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", "VALIDATION_ERROR", details),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body("Duplicate or conflicting record", "DUPLICATE_ENTRY"),
    )


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable while handling %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body("The database is busy. Please try again.", "SERVICE_UNAVAILABLE"),
        headers={"Retry-After": "10"},
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    client = request.client.host if request.client else "-"
    logger.warning("Rate limit hit by %s on %s %s", client, request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body("Too many requests, please try again later.", "RATE_LIMIT_EXCEEDED", str(exc.detail)),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while processing %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Something went wrong! Please try again later.", "INTERNAL_SERVER_ERROR"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
