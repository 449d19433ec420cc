"""
Plain records exchanged across the storage boundary.

The booking engine only ever sees these frozen dataclasses; each store maps its
own rows (ORM instances, dicts) onto them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from ..models import ACTIVE_STATUSES, AppointmentStatus


class IntervalKind(str, Enum):
    APPOINTMENT = "APPOINTMENT"
    TIME_OFF = "TIME_OFF"


@dataclass(frozen=True)
class SalonRecord:
    id: int
    name: str
    timezone: str
    currency: str
    hours: Optional[dict] = None
    slug: Optional[str] = None


@dataclass(frozen=True)
class ServiceRecord:
    id: int
    salon_id: int
    code: str
    name: str
    duration_minutes: int
    price_cents: int
    active: bool = True


@dataclass(frozen=True)
class StaffRecord:
    id: int
    salon_id: int
    name: str
    active: bool = True
    spoken_locales: tuple[str, ...] = ()
    role: str = "STYLIST"


@dataclass(frozen=True)
class ClientRecord:
    id: int
    salon_id: int
    name: str
    phone: str
    email: Optional[str] = None
    preferred_locale: Optional[str] = None


@dataclass(frozen=True)
class ClientDetails:
    """Validated, normalized client data coming from a booking request."""
    name: str
    phone: str
    email: Optional[str] = None
    preferred_locale: Optional[str] = None


@dataclass(frozen=True)
class BlockingInterval:
    """An interval during which `staff_id` cannot take a new appointment."""
    staff_id: Optional[int]
    start_at: datetime
    end_at: datetime
    kind: IntervalKind
    source_id: Optional[str] = None

    def overlaps(self, start_at: datetime, end_at: datetime) -> bool:
        return overlaps(start_at, end_at, self.start_at, self.end_at)


@dataclass(frozen=True)
class AppointmentRecord:
    id: uuid.UUID
    salon_id: int
    client_id: int
    staff_id: Optional[int]
    start_at: datetime
    end_at: datetime
    status: AppointmentStatus
    confirmation_code: str
    notes: Optional[str] = None
    service_ids: tuple[int, ...] = ()
    client_phone: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)


@dataclass(frozen=True)
class NewAppointment:
    salon_id: int
    client_id: int
    staff_id: int
    start_at: datetime
    end_at: datetime
    service_ids: tuple[int, ...]
    confirmation_code: str
    notes: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.PENDING


@dataclass(frozen=True)
class OpenInterval:
    """Salon open range in minutes since local midnight, half-open."""
    start_minute: int
    end_minute: int

    def contains(self, start_minute: int, end_minute: int) -> bool:
        return self.start_minute <= start_minute and end_minute <= self.end_minute


@dataclass(frozen=True)
class TimeSlot:
    start_time: str  # HH:MM salon-local
    end_time: str
    start_at: datetime  # UTC
    staff_id: Optional[int]
    available: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class BookingTotals:
    duration_minutes: int
    price_cents: int
    currency: str


@dataclass(frozen=True)
class BookingConfirmation:
    appointment: AppointmentRecord
    client: ClientRecord
    staff: StaffRecord
    services: tuple[ServiceRecord, ...]
    totals: BookingTotals
    local_date: date
    start_time: str
    end_time: str
    warnings: list[str] = field(default_factory=list)
    notification_sent: bool = False


@dataclass(frozen=True)
class BookingChange:
    """Result of cancel / reschedule / status updates."""
    appointment: AppointmentRecord
    warnings: list[str] = field(default_factory=list)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap: [start_a, end_a) intersects [start_b, end_b)."""
    return start_a < end_b and end_a > start_b
