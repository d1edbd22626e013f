"""
Application exceptions.

Services raise these; app.main turns them into JSON error responses
carrying the exception's HTTP status code.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    FORBIDDEN = "FORBIDDEN"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFLICT = "CONFLICT"
    ROOM_UNAVAILABLE = "ROOM_UNAVAILABLE"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"
    FRAUD_SIGNAL = "FRAUD_SIGNAL"


class AppException(Exception):
    """Base class for every error the services raise on purpose."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "code": self.error_code.value,
                "details": self.details,
                "type": self.__class__.__name__,
            }
        }

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message='{self.message}', error_code='{self.error_code.value}')"


class ValidationError(AppException):
    """Malformed input. Never retried."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details, 422)


class AuthenticationError(AppException):
    def __init__(self, message: str = "Not authenticated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.AUTHENTICATION_FAILED, details, 401)


class ForbiddenError(AppException):
    """Actor lacks the role, ownership or verification the action needs."""

    def __init__(self, message: str = "Not allowed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.FORBIDDEN, details, 403)


class NotFoundError(AppException):
    def __init__(self, resource_type: str = "Resource", resource_id: Any = None):
        message = f"{resource_type} not found"
        details = {"resource_type": resource_type}
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        super().__init__(message, ErrorCode.RESOURCE_NOT_FOUND, details, 404)


class ConflictError(AppException):
    """The current state does not allow the requested transition."""

    def __init__(
        self,
        message: str = "Conflict with current state",
        error_code: ErrorCode = ErrorCode.CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details, 409)


class PaymentGatewayError(AppException):
    """Upstream gateway failure. Callers may retry with the same reference."""

    def __init__(self, message: str = "Payment gateway error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PAYMENT_GATEWAY_ERROR, details, 502)


class FraudSignal(AppException):
    """Needs manual review: amount mismatch or duplicate identity."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.FRAUD_SIGNAL, details, 409)
