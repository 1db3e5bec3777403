"""Centralized error handling with consistent categorization.

Every error leaves the API as `{"error": {"category", "code", "detail", ...}}`
so clients can branch on `code` without parsing messages.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from psycopg.errors import (
    CheckViolation as CheckViolationError,
    ForeignKeyViolation as ForeignKeyViolationError,
    NotNullViolation as NotNullViolationError,
    UniqueViolation as UniqueViolationError,
)
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import (
    IntegrityError,
    OperationalError,
)

from src.exceptions import ConflictError, ResourceNotFoundError, TransientStoreError


logger = logging.getLogger(__name__)


# === Error Categories ===


class ErrorCategory:
    """Error category constants."""

    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    DATABASE = "DATABASE_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFLICT = "CONFLICT_ERROR"
    INTERNAL = "INTERNAL_ERROR"


class ErrorCode:
    """Specific error codes for better client handling."""

    # Validation errors
    INVALID_INPUT = "INVALID_INPUT"

    # Authentication errors
    AUTH_REQUIRED = "AUTH_REQUIRED"

    # Database errors
    DB_CONNECTION_FAILED = "DB_CONNECTION_FAILED"
    DB_CONSTRAINT_VIOLATION = "DB_CONSTRAINT_VIOLATION"
    DB_UNIQUE_VIOLATION = "DB_UNIQUE_VIOLATION"
    DB_FOREIGN_KEY_VIOLATION = "DB_FOREIGN_KEY_VIOLATION"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"

    # Internal errors
    INTERNAL = "INTERNAL_ERROR"


# === Error Response Formatting ===


def format_error_response(
    category: str,
    code: str,
    detail: str,
    status_code: int,
    suggestions: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
) -> JSONResponse:
    """Format a consistent error response."""
    content = {
        "error": {
            "category": category,
            "code": code,
            "detail": detail,
        }
    }

    if suggestions:
        content["error"]["suggestions"] = suggestions

    if metadata:
        content["error"]["metadata"] = metadata

    return JSONResponse(status_code=status_code, content=content)


async def handle_validation_errors(request: Request, exc: Exception) -> JSONResponse:
    """Handle validation errors from Pydantic and custom validators."""
    logger.info(f"Validation error on {request.method} {request.url.path}", extra={"error": str(exc)})

    if isinstance(exc, (PydanticValidationError, RequestValidationError)):
        errors = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            errors.append({"field": field, "message": error["msg"], "type": error["type"]})

        return format_error_response(
            category=ErrorCategory.VALIDATION,
            code=ErrorCode.INVALID_INPUT,
            detail="Invalid input data",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            metadata={"errors": errors},
        )
    # Custom validation error
    return format_error_response(
        category=ErrorCategory.VALIDATION,
        code=ErrorCode.INVALID_INPUT,
        detail=str(exc),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def handle_not_found_errors(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    logger.info(f"Not found on {request.method} {request.url.path}: {exc}")
    return format_error_response(
        category=ErrorCategory.RESOURCE_NOT_FOUND,
        code=ErrorCode.NOT_FOUND,
        detail=str(exc),
        status_code=status.HTTP_404_NOT_FOUND,
        suggestions=["The requested resource does not exist"],
    )


async def handle_conflict_errors(request: Request, exc: ConflictError) -> JSONResponse:
    """Reject writes against a terminal state, echoing the stored result."""
    logger.warning(f"Conflict on {request.method} {request.url.path}: {exc}")
    return format_error_response(
        category=ErrorCategory.CONFLICT,
        code=ErrorCode.ALREADY_COMPLETED,
        detail=str(exc),
        status_code=status.HTTP_409_CONFLICT,
        metadata={"existing": exc.existing} if exc.existing else None,
    )


async def handle_transient_store_errors(request: Request, exc: TransientStoreError) -> JSONResponse:
    """Store failures underneath a mutation. Already logged where they were raised."""
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return format_error_response(
        category=ErrorCategory.DATABASE,
        code=ErrorCode.STORE_UNAVAILABLE,
        detail=str(exc),
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        suggestions=["Please try again later"],
    )


async def handle_authentication_errors(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle authentication failures (401)."""
    logger.warning(
        f"Authentication failed for {request.method} {request.url.path}: {exc.detail}",
        extra={"client_host": request.client.host if request.client else "unknown"},
    )
    return format_error_response(
        category=ErrorCategory.AUTHENTICATION,
        code=ErrorCode.AUTH_REQUIRED,
        detail=str(exc.detail),
        status_code=status.HTTP_401_UNAUTHORIZED,
        suggestions=["Ensure you are logged in", "Check if your session has expired"],
    )


# Driver violation -> (code, detail, status). Checked against `exc.orig`.
_CONSTRAINT_RESPONSES: list[tuple[tuple[type[Exception], ...], str, str, int]] = [
    ((UniqueViolationError,), ErrorCode.DB_UNIQUE_VIOLATION, "This record already exists", status.HTTP_409_CONFLICT),
    (
        (ForeignKeyViolationError,),
        ErrorCode.DB_FOREIGN_KEY_VIOLATION,
        "Referenced class, assessment or exam does not exist",
        status.HTTP_400_BAD_REQUEST,
    ),
    (
        (NotNullViolationError, CheckViolationError),
        ErrorCode.DB_CONSTRAINT_VIOLATION,
        "Required data is missing or invalid",
        status.HTTP_400_BAD_REQUEST,
    ),
]


def _classify_database_error(exc: Exception) -> tuple[str, str, int]:
    driver_error = getattr(exc, "orig", None)
    for driver_types, code, detail, status_code in _CONSTRAINT_RESPONSES:
        if isinstance(driver_error, driver_types):
            return code, detail, status_code

    # aiosqlite reports every constraint as a bare IntegrityError
    if isinstance(exc, IntegrityError) and "unique" in str(exc).lower():
        return ErrorCode.DB_UNIQUE_VIOLATION, "This record already exists", status.HTTP_409_CONFLICT
    if isinstance(exc, OperationalError):
        return ErrorCode.DB_CONNECTION_FAILED, "Database connection error", status.HTTP_503_SERVICE_UNAVAILABLE
    return ErrorCode.INTERNAL, "A database error occurred", status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_database_errors(request: Request, exc: Exception) -> JSONResponse:
    """Map SQLAlchemy failures that escaped the repositories onto the error envelope."""
    logger.error(
        f"Database error on {request.method} {request.url.path}: {type(exc).__name__}",
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    code, detail, status_code = _classify_database_error(exc)
    return format_error_response(
        category=ErrorCategory.DATABASE,
        code=code,
        detail=detail,
        status_code=status_code,
        suggestions=["Please try again later"] if status_code == status.HTTP_503_SERVICE_UNAVAILABLE else None,
    )


# === Utility Functions ===


def log_error_context(request: Request, exc: Exception, error_id: UUID | None = None) -> None:
    """Log comprehensive error context for debugging."""
    context = {
        "error_id": str(error_id) if error_id else None,
        "method": request.method,
        "path": request.url.path,
        "query_params": dict(request.query_params),
        "client_host": request.client.host if request.client else "unknown",
        "user_id": str(getattr(request.state, "user_id", None)),
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    # Request headers without credentials
    safe_headers = {
        k: v for k, v in request.headers.items() if k.lower() not in ["authorization", "cookie", "x-api-key"]
    }
    context["headers"] = safe_headers

    logger.error("Request failed", extra=context, exc_info=exc)
