"""
Custom exceptions and error handlers for consistent error responses.

Every application error carries an ErrorKind so callers branch on the kind,
never on message text. Lower-level error text is logged, not returned.
"""

import enum
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException
from typing import Any, Dict

logger = logging.getLogger("transfer_tracking.errors")


class ErrorKind(str, enum.Enum):
    """Error kinds surfaced by the tracking core."""
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TRACKING_NOT_ACTIVE = "TRACKING_NOT_ACTIVE"
    TERMINAL_STATE_VIOLATION = "TERMINAL_STATE_VIOLATION"
    CONFLICT = "CONFLICT"
    DELIVERY_FAILURE = "DELIVERY_FAILURE"
    INFRASTRUCTURE_ERROR = "INFRASTRUCTURE_ERROR"


class AppException(Exception):
    """Base application exception."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE_ERROR

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class TokenNotFoundError(AppException):
    """Raised when no tracking session matches the presented token."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self):
        # The token is a bearer capability; never echo it back.
        super().__init__(
            message="Tracking token not found",
            error_code="ERR_TRACKING_404",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": "tracking_token"}
        )


class TrackingValidationError(AppException):
    """Raised when a tracking request carries malformed input."""

    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            error_code="ERR_TRACKING_400",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"field": field} if field else {}
        )


class TrackingNotActiveError(AppException):
    """Raised when an operation needs an active session and the token is not active."""

    kind = ErrorKind.TRACKING_NOT_ACTIVE

    def __init__(self, current_status: str, message: str = None):
        super().__init__(
            message=message or "Tracking not active. Please start the job first.",
            error_code="ERR_TRACKING_409_INACTIVE",
            status_code=status.HTTP_409_CONFLICT,
            details={"status": current_status}
        )


class TerminalStateViolationError(AppException):
    """Raised when a completed session is started again or completed differently."""

    kind = ErrorKind.TERMINAL_STATE_VIOLATION

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_TRACKING_409_TERMINAL",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class OpenTokenConflictError(AppException):
    """Raised when an assignment already has a pending or active tracking token."""

    kind = ErrorKind.CONFLICT

    def __init__(self, assignment_id: int):
        super().__init__(
            message="Assignment already has an open tracking token",
            error_code="ERR_TRACKING_409_OPEN_TOKEN",
            status_code=status.HTTP_409_CONFLICT,
            details={"assignment_id": assignment_id}
        )


class InfrastructureError(AppException):
    """Raised when local storage is unavailable."""

    kind = ErrorKind.INFRASTRUCTURE_ERROR

    def __init__(self, message: str = "Storage is temporarily unavailable"):
        super().__init__(
            message=message,
            error_code="ERR_INFRASTRUCTURE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "kind": exc.kind.value,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for HTTPException (FastAPI and routing) with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        405: "ERR_METHOD_NOT_ALLOWED",
        500: "ERR_INTERNAL_SERVER"
    }

    kind_map = {
        400: ErrorKind.VALIDATION_ERROR,
        404: ErrorKind.NOT_FOUND,
        405: ErrorKind.VALIDATION_ERROR,
        409: ErrorKind.CONFLICT,
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")
    kind = kind_map.get(exc.status_code, ErrorKind.INFRASTRUCTURE_ERROR)

    return JSONResponse(
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
        content={
            "error_code": error_code,
            "kind": kind.value,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "kind": ErrorKind.VALIDATION_ERROR.value,
            "message": "Validation error",
            "details": {
                "errors": errors
            }
        }
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handler for storage failures. Driver messages stay in the log."""
    logger.error(
        "Storage failure",
        exc_info=exc,
        extra={"path": request.url.path, "error_type": type(exc).__name__}
    )
    return await app_exception_handler(request, InfrastructureError())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"path": request.url.path, "error_type": type(exc).__name__}
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "kind": ErrorKind.INFRASTRUCTURE_ERROR.value,
            "message": "An internal server error occurred",
            "details": {}
        }
    )
