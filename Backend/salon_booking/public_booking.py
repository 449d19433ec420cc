"""
Public Booking API.

Tool-safe, public-facing endpoints for clients booking through the salon's
web widget or chat channels. The salon is the path parameter; every request is
scoped to it.

All endpoints:
- return the standard {data|error, status} envelope
- take and return salon-local dates ("YYYY-MM-DD") and times ("HH:MM")
- never retry a TIME_CONFLICT; the caller refreshes availability instead
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .booking import (
    BookingError,
    BookingRequest,
    BookingTransactionCoordinator,
    BookingValidationError,
    LoggingNotificationDispatcher,
    SqlBookingStore,
)
from .booking.records import AppointmentRecord, BookingConfirmation, TimeSlot
from .booking.validation import parse_local_date
from .core.config import get_settings
from .core.db import AsyncSessionLocal, CommitSessionLocal
from .core.responses import error_response, success_response
from .models import AppointmentStatus

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(prefix="/public/salons/{salon_id}", tags=["public-booking"])


# ────────────────────────────────────────────────────────────────
# Dependencies
# ────────────────────────────────────────────────────────────────

def get_coordinator() -> BookingTransactionCoordinator:
    """Coordinator backed by the configured database."""
    return BookingTransactionCoordinator.from_settings(
        SqlBookingStore(AsyncSessionLocal, CommitSessionLocal),
        settings,
        LoggingNotificationDispatcher(),
    )


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} ({exc.message})")
    return JSONResponse(
        status_code=exc.http_status,
        content=error_response(exc.code, exc.message, exc.details),
    )


# ────────────────────────────────────────────────────────────────
# Request models
# ────────────────────────────────────────────────────────────────

class CancelRequest(BaseModel):
    phone: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class RescheduleRequest(BaseModel):
    phone: Optional[str] = None
    new_date: Optional[str] = Field(default=None, alias="newDate")
    new_start_time: Optional[str] = Field(default=None, alias="newStartTime")
    new_staff_id: Optional[int] = Field(default=None, alias="newStaffId")

    model_config = {"populate_by_name": True}


class StatusUpdateRequest(BaseModel):
    status: str
    reason: Optional[str] = None


# ────────────────────────────────────────────────────────────────
# Serialization
# ────────────────────────────────────────────────────────────────

def serialize_slot(slot: TimeSlot) -> dict:
    data = {
        "startTime": slot.start_time,
        "endTime": slot.end_time,
        "startAt": slot.start_at.isoformat(),
        "staffId": slot.staff_id,
        "available": slot.available,
    }
    if slot.reason:
        data["reason"] = slot.reason
    return data


def serialize_appointment(appointment: AppointmentRecord) -> dict:
    return {
        "appointmentId": str(appointment.id),
        "clientId": appointment.client_id,
        "staffId": appointment.staff_id,
        "status": appointment.status.value,
        "confirmationCode": appointment.confirmation_code,
        "startAt": appointment.start_at.isoformat(),
        "endAt": appointment.end_at.isoformat(),
        "serviceIds": list(appointment.service_ids),
        "notes": appointment.notes,
    }


def serialize_confirmation(confirmation: BookingConfirmation) -> dict:
    appointment = confirmation.appointment
    return {
        "appointmentId": str(appointment.id),
        "clientId": confirmation.client.id,
        "status": appointment.status.value,
        "confirmationCode": appointment.confirmation_code,
        "details": {
            "date": confirmation.local_date.isoformat(),
            "startTime": confirmation.start_time,
            "endTime": confirmation.end_time,
            "services": [
                {
                    "id": s.id,
                    "code": s.code,
                    "name": s.name,
                    "durationMinutes": s.duration_minutes,
                    "priceCents": s.price_cents,
                }
                for s in confirmation.services
            ],
            "staff": {"id": confirmation.staff.id, "name": confirmation.staff.name},
            "totalDuration": confirmation.totals.duration_minutes,
            "totalPrice": confirmation.totals.price_cents,
            "currency": confirmation.totals.currency,
        },
        "warnings": list(confirmation.warnings),
        "notificationSent": confirmation.notification_sent,
    }


# ────────────────────────────────────────────────────────────────
# Endpoints
# ────────────────────────────────────────────────────────────────

@router.get("/availability")
async def check_availability(
    salon_id: int,
    date: Optional[str] = Query(default=None, description="Salon-local date, YYYY-MM-DD"),
    service_ids: Optional[str] = Query(default=None, alias="serviceIds", description="Comma-separated ids or codes"),
    staff_id: Optional[int] = Query(default=None, alias="staffId"),
    coordinator: BookingTransactionCoordinator = Depends(get_coordinator),
):
    """
    Slots for one salon-local date. Unavailable slots are listed too, with
    available=false and reason="busy".
    """
    errors = {}
    day = parse_local_date(date)
    if day is None:
        errors["date"] = "Date must be in YYYY-MM-DD format"
    refs = [ref.strip() for ref in (service_ids or "").split(",") if ref.strip()]
    if not refs:
        errors["serviceIds"] = "At least one service must be selected"
    if errors:
        raise BookingValidationError(errors)

    slots = await coordinator.get_available_slots(salon_id, day, refs, staff_id)
    return success_response(
        {
            "date": day.isoformat(),
            "slots": [serialize_slot(slot) for slot in slots],
        }
    )


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
async def create_booking(
    salon_id: int,
    payload: BookingRequest,
    coordinator: BookingTransactionCoordinator = Depends(get_coordinator),
):
    confirmation = await coordinator.create_booking(salon_id, payload)
    return success_response(serialize_confirmation(confirmation))


@router.get("/bookings/{appointment_id}")
async def get_booking(
    salon_id: int,
    appointment_id: str,
    coordinator: BookingTransactionCoordinator = Depends(get_coordinator),
):
    appointment = await coordinator.get_booking(salon_id, appointment_id)
    return success_response(serialize_appointment(appointment))


@router.post("/bookings/{appointment_id}/cancel")
async def cancel_booking(
    salon_id: int,
    appointment_id: str,
    payload: CancelRequest,
    coordinator: BookingTransactionCoordinator = Depends(get_coordinator),
):
    change = await coordinator.cancel_booking(
        salon_id, appointment_id, payload.phone or "", payload.reason
    )
    return success_response(
        {**serialize_appointment(change.appointment), "warnings": list(change.warnings)}
    )


@router.post("/bookings/{appointment_id}/reschedule")
async def reschedule_booking(
    salon_id: int,
    appointment_id: str,
    payload: RescheduleRequest,
    coordinator: BookingTransactionCoordinator = Depends(get_coordinator),
):
    change = await coordinator.reschedule_booking(
        salon_id,
        appointment_id,
        payload.phone or "",
        payload.new_date,
        payload.new_start_time,
        payload.new_staff_id,
    )
    return success_response(
        {**serialize_appointment(change.appointment), "warnings": list(change.warnings)}
    )


@router.patch("/bookings/{appointment_id}/status")
async def update_booking_status(
    salon_id: int,
    appointment_id: str,
    payload: StatusUpdateRequest,
    coordinator: BookingTransactionCoordinator = Depends(get_coordinator),
):
    try:
        new_status = AppointmentStatus(payload.status.upper())
    except ValueError:
        raise BookingValidationError(
            {"status": f"Status must be one of {', '.join(s.value for s in AppointmentStatus)}"}
        )
    change = await coordinator.update_status(salon_id, appointment_id, new_status, payload.reason)
    return success_response(serialize_appointment(change.appointment))
