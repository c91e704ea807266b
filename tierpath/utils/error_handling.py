"""
Error Handling Module for TierPath Onboarding

This module provides centralized error handling with:
- Custom exception hierarchy
- Standardized error responses
- Error logging
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("tierpath.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Authorization Errors (403)
    FORBIDDEN = "FORBIDDEN"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    ONBOARDING_SESSION_NOT_FOUND = "ONBOARDING_SESSION_NOT_FOUND"
    RECOVERY_SESSION_NOT_FOUND = "RECOVERY_SESSION_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"

    # Business Logic Errors (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    TIER_NOT_ELIGIBLE = "TIER_NOT_ELIGIBLE"
    INVALID_TIER_TRANSITION = "INVALID_TIER_TRANSITION"

    # Rate Limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # External Service Errors (502/503)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    ONBOARDING_API_ERROR = "ONBOARDING_API_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
        message: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            message=message or (
                f"{resource} not found: {identifier}" if identifier else f"{resource} not found"
            ),
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "identifier": identifier} if identifier else {"resource": resource},
        )


class OnboardingSessionNotFoundException(NotFoundException):
    """Onboarding session missing or expired"""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Onboarding session",
            identifier=session_id,
            code=ErrorCode.ONBOARDING_SESSION_NOT_FOUND,
            message="Invalid or expired session",
        )


class RecoverySessionNotFoundException(NotFoundException):
    """Recovery session missing or expired"""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Recovery session",
            identifier=session_id,
            code=ErrorCode.RECOVERY_SESSION_NOT_FOUND,
            message="Recovery session not found or expired",
        )


# ============================================================================
# Business Logic Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation exception"""

    def __init__(
        self,
        message: str,
        rule: str,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        _details["rule"] = rule
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
        )


class TierNotEligibleException(BusinessRuleException):
    """Business profile exceeds the hard limits of the requested tier"""

    def __init__(self, tier: str, violations: List[str]):
        self.tier = tier
        self.violations = violations
        super().__init__(
            message=f"Tier not eligible: {', '.join(violations)}",
            rule="TIER_LIMITS",
            code=ErrorCode.TIER_NOT_ELIGIBLE,
            details={"tier": tier, "violations": violations},
        )


class InvalidTierTransitionException(BusinessRuleException):
    """Tier change that is not a strict upgrade or downgrade"""

    def __init__(self, from_tier: str, to_tier: str, direction: str = "change"):
        self.from_tier = from_tier
        self.to_tier = to_tier
        if from_tier == to_tier:
            message = f"Tier is already {to_tier}; nothing to {direction}"
        else:
            message = f"Invalid {direction} path: {from_tier} -> {to_tier}"
        super().__init__(
            message=message,
            rule="TIER_RANK",
            code=ErrorCode.INVALID_TIER_TRANSITION,
            details={"from_tier": from_tier, "to_tier": to_tier, "direction": direction},
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class ExternalServiceException(AppException):
    """External service error exception"""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        _details["service"] = service_name
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=_details,
            original_error=original_error,
        )


class OnboardingAPIException(ExternalServiceException):
    """
    Failure at the remote onboarding API boundary.

    The message is the textual failure reason; recovery classification
    reads nothing else. `field_errors` holds a field -> messages map when
    the API rejected the payload.
    """

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, List[str]]] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.field_errors = field_errors or {}
        self.operation = operation
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if self.field_errors:
            details["errors"] = self.field_errors
        super().__init__(
            service_name="Onboarding API",
            message=message,
            code=ErrorCode.ONBOARDING_API_ERROR,
            original_error=original_error,
            details=details,
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    logger.error(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMITED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "AppException",
    "ErrorCode",
    "ValidationException",
    "NotFoundException",
    "OnboardingSessionNotFoundException",
    "RecoverySessionNotFoundException",
    "BusinessRuleException",
    "TierNotEligibleException",
    "InvalidTierTransitionException",
    "ExternalServiceException",
    "OnboardingAPIException",
    "setup_exception_handlers",
    "create_error_response",
]
