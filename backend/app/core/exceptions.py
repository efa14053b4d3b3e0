"""
Custom exceptions and error handlers for consistent error responses.

Every failure path ends in the same JSON shape:

    {"success": false, "error_code": "...", "message": "...", **details}
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

from backend.app.core.config import settings

logger = logging.getLogger("gym.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised for malformed or missing input that passed schema validation."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

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


class ConflictError(AppException):
    """Raised when a unique key or idempotency reference already exists."""

    def __init__(self, message: str = "Resource already exists", error_code: str = "ERR_CONFLICT_001",
                 details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class AlreadyCheckedInError(ConflictError):
    """Raised when a member already has an open attendance record."""

    def __init__(self, member_id: int, attendance_id: int = None):
        super().__init__(
            message="Member already has an active check-in. Please check out first.",
            error_code="ERR_CONFLICT_CHECKED_IN",
            details={"member_id": member_id, "attendance_id": attendance_id}
        )


class AlreadyCheckedOutError(ConflictError):
    def __init__(self, attendance_id: int):
        super().__init__(
            message="Already checked out",
            error_code="ERR_CONFLICT_CHECKED_OUT",
            details={"attendance_id": attendance_id}
        )


class AlreadyEnrolledError(ConflictError):
    def __init__(self, member_id: int, class_id: int):
        super().__init__(
            message="Member already enrolled in this class",
            error_code="ERR_CONFLICT_ENROLLED",
            details={"member_id": member_id, "class_id": class_id}
        )


class InsufficientBalanceError(AppException):
    """Raised when a debit would drive a member's token balance negative."""

    def __init__(self, balance: int, requested: int, message: str = "Insufficient token balance",
                 error_code: str = "ERR_TOKENS_001"):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"balance": balance, "requested": requested}
        )


class InsufficientTokensError(InsufficientBalanceError):
    """Raised when a member cannot cover a check-in or class cost."""

    def __init__(self, balance: int, requested: int):
        super().__init__(
            balance=balance,
            requested=requested,
            message="Insufficient tokens. Please purchase more tokens.",
            error_code="ERR_TOKENS_002"
        )


class ClassFullError(AppException):
    def __init__(self, class_id: int, max_capacity: int):
        super().__init__(
            message="This class is full",
            error_code="ERR_CLASS_FULL",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"class_id": class_id, "max_capacity": max_capacity}
        )


class OperationTimeoutError(AppException):
    """Raised when a storage call or lock wait exceeds its bound. Safe to retry."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Operation '{operation}' timed out, please retry",
            error_code="ERR_TIMEOUT",
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            details={"operation": operation, "retryable": True}
        )


class PaymentGatewayError(AppException):
    """Raised when the payment gateway declines or fails a charge."""

    def __init__(self, message: str = "Payment could not be processed", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PAYMENT_GATEWAY",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )


class ServiceUnavailableError(AppException):
    """Raised when a dependency is short-circuited by its breaker."""

    def __init__(self, service: str):
        super().__init__(
            message=f"{service} is temporarily unavailable, please try again later",
            error_code="ERR_SERVICE_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"service": service, "retryable": True}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class TokenRevokedError(AppException):
    """Raised when token has been revoked."""

    def __init__(self):
        super().__init__(
            message="Token has been revoked",
            error_code="ERR_AUTH_002",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


def _error_body(error_code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    body = {"success": False, "error_code": error_code, "message": message}
    for key, value in (details or {}).items():
        # Never let details shadow the envelope keys
        if key not in body:
            body[key] = value
    return jsonable_encoder(body)


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error_code, exc.message, exc.details)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(error_code, exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for request body/query validation errors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("ERR_VALIDATION", "Validation error", {"errors": exc.errors()})
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    details = {}
    if settings.debug:
        details = {"error": f"{type(exc).__name__}: {exc}"}

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("ERR_INTERNAL_SERVER", "An internal server error occurred", details)
    )
