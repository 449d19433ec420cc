"""
Typed booking failures.

Every failure a caller can see is one of these; the HTTP layer renders them
through the standard error envelope.
"""

from typing import Any, Optional

from ..core.responses import ErrorCodes


class BookingError(Exception):
    code: str = ErrorCodes.INTERNAL_ERROR
    http_status: int = 500
    default_message: str = "Booking operation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class BookingValidationError(BookingError):
    code = ErrorCodes.VALIDATION_ERROR
    http_status = 422
    default_message = "Booking request is invalid"

    def __init__(self, field_errors: dict[str, str], message: Optional[str] = None):
        self.field_errors = dict(field_errors)
        super().__init__(message, details={"fields": self.field_errors})


class ServiceNotFoundError(BookingError):
    code = ErrorCodes.SERVICE_NOT_FOUND
    http_status = 404
    default_message = "One or more services are unknown or inactive"


class StaffNotFoundError(BookingError):
    code = ErrorCodes.STAFF_NOT_FOUND
    http_status = 404
    default_message = "Staff member not found or unavailable"


class BusinessHoursClosedError(BookingError):
    code = ErrorCodes.BUSINESS_HOURS_CLOSED
    http_status = 422
    default_message = "Salon is closed during requested time"


class TimeConflictError(BookingError):
    code = ErrorCodes.TIME_CONFLICT
    http_status = 409
    default_message = "Time slot is no longer available"


class BookingNotFoundError(BookingError):
    code = ErrorCodes.BOOKING_NOT_FOUND
    http_status = 404
    default_message = "Appointment not found"


class InvalidStatusError(BookingError):
    code = ErrorCodes.INVALID_STATUS
    http_status = 409
    default_message = "Appointment cannot be changed in its current status"


class SalonNotFoundError(BookingError):
    code = ErrorCodes.NOT_FOUND
    http_status = 404
    default_message = "Salon not found"


class InternalBookingError(BookingError):
    code = ErrorCodes.INTERNAL_ERROR
    http_status = 500
    default_message = "Unexpected error while processing the booking"
