"""
Booking & availability engine.

Storage-independent: everything here talks to a BookingStore, with a SQLAlchemy
implementation for production and an in-memory one for tests and demos.
"""
from .availability import AvailabilityCalculator, candidate_starts
from .conflicts import ConflictRegistry
from .coordinator import BookingState, BookingTransactionCoordinator
from .errors import (
    BookingError,
    BookingNotFoundError,
    BookingValidationError,
    BusinessHoursClosedError,
    InternalBookingError,
    InvalidStatusError,
    SalonNotFoundError,
    ServiceNotFoundError,
    StaffNotFoundError,
    TimeConflictError,
)
from .memory_store import InMemoryBookingStore
from .notifications import BookingEvent, BookingEventType, LoggingNotificationDispatcher
from .records import AppointmentRecord, BookingChange, BookingConfirmation, TimeSlot
from .sql_store import SqlBookingStore
from .staff_selector import StaffSelector
from .store import BookingStore, UnitOfWork
from .validation import BookingRequest
from .working_hours import WorkingHoursProvider

__all__ = [
    # Engine
    "AvailabilityCalculator",
    "BookingState",
    "BookingTransactionCoordinator",
    "ConflictRegistry",
    "StaffSelector",
    "WorkingHoursProvider",
    "candidate_starts",
    # Storage
    "BookingStore",
    "InMemoryBookingStore",
    "SqlBookingStore",
    "UnitOfWork",
    # Notifications
    "BookingEvent",
    "BookingEventType",
    "LoggingNotificationDispatcher",
    # Records
    "AppointmentRecord",
    "BookingChange",
    "BookingConfirmation",
    "BookingRequest",
    "TimeSlot",
    # Errors
    "BookingError",
    "BookingNotFoundError",
    "BookingValidationError",
    "BusinessHoursClosedError",
    "InternalBookingError",
    "InvalidStatusError",
    "SalonNotFoundError",
    "ServiceNotFoundError",
    "StaffNotFoundError",
    "TimeConflictError",
]
