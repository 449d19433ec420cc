"""
Booking request models and structural validation.

Request models are deliberately lenient: missing or malformed values must come
back to the caller as per-field VALIDATION_ERROR messages, not as parser errors.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from .errors import BookingValidationError
from .localtime import parse_hhmm, to_utc_from_local
from .records import ClientDetails

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15

ServiceRef = Union[int, str]


class ClientRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    preferred_locale: Optional[str] = Field(default=None, alias="preferredLocale")

    model_config = {"populate_by_name": True}


class AppointmentRequest(BaseModel):
    date: Optional[str] = Field(default=None, description="Salon-local date, YYYY-MM-DD")
    start_time: Optional[str] = Field(default=None, alias="startTime", description="HH:MM, 24-hour")
    service_ids: list[ServiceRef] = Field(default_factory=list, alias="serviceIds")
    staff_id: Optional[int] = Field(default=None, alias="staffId")
    notes: Optional[str] = None

    model_config = {"populate_by_name": True}


class BookingRequest(BaseModel):
    """
    Public booking request.

    Example:
        {
            "client": {"name": "Anna", "phone": "+48 600 100 200"},
            "appointment": {"date": "2026-11-02", "startTime": "10:00", "serviceIds": [1, 2]}
        }
    """
    client: ClientRequest = Field(default_factory=ClientRequest)
    appointment: AppointmentRequest = Field(default_factory=AppointmentRequest)


@dataclass(frozen=True)
class ValidatedBooking:
    client: ClientDetails
    local_date: date
    start_minute: int
    start_at: datetime
    service_refs: tuple[ServiceRef, ...]
    staff_id: Optional[int]
    notes: Optional[str]


def normalize_phone(phone: str) -> str:
    """Strip formatting; keep a leading + when present."""
    if not phone:
        return ""
    phone = phone.strip()
    if phone.startswith("+"):
        return "+" + re.sub(r"\D", "", phone[1:])
    return re.sub(r"\D", "", phone)


def is_valid_phone(phone: str) -> bool:
    digits = phone.lstrip("+")
    return digits.isdigit() and MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email or not email.strip():
        return None
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def parse_local_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def validate_booking_request(
    request: BookingRequest,
    *,
    tz_name: str,
    now: datetime,
) -> ValidatedBooking:
    """
    Structural checks that need no stored data.

    Raises BookingValidationError listing every failing field at once.
    """
    errors: dict[str, str] = {}
    client = request.client
    appointment = request.appointment

    name = (client.name or "").strip()
    if not name:
        errors["client.name"] = "Client name is required"

    phone = normalize_phone(client.phone or "")
    if not phone:
        errors["client.phone"] = "Client phone is required"
    elif not is_valid_phone(phone):
        errors["client.phone"] = "Client phone is not a valid phone number"

    email = normalize_email(client.email)
    if email and not is_valid_email(email):
        errors["client.email"] = "Invalid email format"

    if not appointment.service_ids:
        errors["appointment.serviceIds"] = "At least one service must be selected"

    local_date = parse_local_date(appointment.date)
    if appointment.date is None:
        errors["appointment.date"] = "Appointment date is required"
    elif local_date is None:
        errors["appointment.date"] = "Date must be in YYYY-MM-DD format"

    start_minute = parse_hhmm(appointment.start_time or "")
    if appointment.start_time is None:
        errors["appointment.startTime"] = "Appointment start time is required"
    elif start_minute is None:
        errors["appointment.startTime"] = "Time must be in HH:MM format (24-hour)"

    start_at = None
    if local_date is not None and start_minute is not None:
        start_at = to_utc_from_local(local_date, start_minute, tz_name)
        if start_at <= now:
            errors["appointment.startTime"] = "Appointment must be in the future"

    if errors:
        raise BookingValidationError(errors)

    return ValidatedBooking(
        client=ClientDetails(
            name=name,
            phone=phone,
            email=email,
            preferred_locale=(client.preferred_locale or "").strip() or None,
        ),
        local_date=local_date,
        start_minute=start_minute,
        start_at=start_at,
        service_refs=tuple(dict.fromkeys(appointment.service_ids)),
        staff_id=appointment.staff_id,
        notes=(appointment.notes or "").strip() or None,
    )
