"""
Outbound booking notifications.

The coordinator hands every committed change to a NotificationDispatcher.
Delivery is fire-and-forget: dispatcher failures are logged by the caller and
never undo or fail the booking.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .records import AppointmentRecord, SalonRecord

logger = logging.getLogger(__name__)


class BookingEventType(str, Enum):
    CREATED = "created"
    CANCELED = "canceled"
    RESCHEDULED = "rescheduled"
    STATUS_CHANGED = "status_changed"


@dataclass(frozen=True)
class BookingEvent:
    type: BookingEventType
    appointment: AppointmentRecord
    salon: SalonRecord
    reason: Optional[str] = None


class NotificationDispatcher(Protocol):
    async def dispatch(self, event: BookingEvent) -> None:
        ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records the event in the application log."""

    async def dispatch(self, event: BookingEvent) -> None:
        appointment = event.appointment
        logger.info(
            f"[BOOKING NOTIFICATION] {event.type.value} appointment {appointment.id} "
            f"for salon '{event.salon.name}' "
            f"(staff={appointment.staff_id}, start={appointment.start_at.isoformat()}, "
            f"code={appointment.confirmation_code})"
        )
