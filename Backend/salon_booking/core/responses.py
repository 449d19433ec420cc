"""
Standardized API Response Module

Provides consistent response formatting across all booking endpoints.

RESPONSE FORMAT:
    Success:
        {
            "data": <response data>,
            "status": "success"
        }

    Error:
        {
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "details": {...}  # Optional extra context
            },
            "status": "error"
        }

ERROR CODES:
    - VALIDATION_ERROR: Request data failed validation (per-field details)
    - SERVICE_NOT_FOUND / STAFF_NOT_FOUND / BOOKING_NOT_FOUND: Unknown or inactive resource
    - BUSINESS_HOURS_CLOSED: Requested window is outside the salon's open hours
    - TIME_CONFLICT: Slot was taken; the caller must pick another one
    - INVALID_STATUS: Attempted mutation of a terminal appointment
    - INTERNAL_ERROR: Server-side error (details are never exposed)
"""

from typing import Any, Generic, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Structured error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ApiResponse(BaseModel, Generic[T]):
    """
    Standardized API response wrapper.

    Usage:
        return ApiResponse.success({"appointmentId": "..."})
        return ApiResponse.error("TIME_CONFLICT", "Slot is no longer available")
    """
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None
    status: str = "success"

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(data=data, status="success")

    @classmethod
    def error(
        cls,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> "ApiResponse[None]":
        """Create an error response."""
        return cls(
            error=ErrorDetail(code=code, message=message, details=details or None),
            status="error"
        )


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes for API responses."""

    # Validation errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BUSINESS_HOURS_CLOSED = "BUSINESS_HOURS_CLOSED"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    STAFF_NOT_FOUND = "STAFF_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"

    # Conflict errors (409)
    TIME_CONFLICT = "TIME_CONFLICT"
    INVALID_STATUS = "INVALID_STATUS"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def success_response(data: Any) -> dict:
    """Create a standardized success response dict."""
    return ApiResponse.success(data).model_dump(exclude={"error"})


def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """
    Create a standardized error response dict.

    Empty details are left out of the payload.
    """
    payload = ApiResponse.error(code, message, details).model_dump(exclude={"data"})
    if payload["error"]["details"] is None:
        del payload["error"]["details"]
    return payload
