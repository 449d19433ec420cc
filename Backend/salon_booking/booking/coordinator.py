"""
Booking transaction coordinator.

Turns a booking request into a committed appointment:

    REQUESTED -> VALIDATED -> COMMITTED
                          \\-> REJECTED

Validation, service/staff lookups and availability are lock-free advisory
reads. The only authoritative step is the commit: inside one unit of work the
exact (staff, [start, end)) window is re-checked against live data and the
appointment is written, or the attempt is rejected with TIME_CONFLICT. Losing
a race is never retried here; the caller picks another slot.

Cancel, reschedule and status changes re-read the appointment inside their unit
of work (row lock on PostgreSQL) so ownership and status are validated against
the same state that gets written.
"""

import functools
import inspect
import logging
import secrets
import string
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Sequence, Union

from ..core.config import Settings
from ..models import AppointmentStatus
from .availability import DEFAULT_BUFFER_MINUTES, DEFAULT_STEP_MINUTES, AvailabilityCalculator
from .catalog import resolve_services, resolve_staff
from .conflicts import ConflictRegistry
from .errors import (
    BookingError,
    BookingNotFoundError,
    BookingValidationError,
    BusinessHoursClosedError,
    InternalBookingError,
    InvalidStatusError,
    SalonNotFoundError,
    StaffNotFoundError,
    TimeConflictError,
)
from .localtime import format_minutes, local_minutes, parse_hhmm, to_utc_from_local, utc_now
from .notifications import BookingEvent, BookingEventType, LoggingNotificationDispatcher, NotificationDispatcher
from .records import (
    AppointmentRecord,
    BookingChange,
    BookingConfirmation,
    BookingTotals,
    NewAppointment,
    SalonRecord,
    TimeSlot,
)
from .staff_selector import StaffSelector
from .store import BookingStore
from .validation import BookingRequest, normalize_phone, parse_local_date, validate_booking_request
from .working_hours import WorkingHoursProvider

logger = logging.getLogger(__name__)

CONFIRMATION_CODE_ALPHABET = string.ascii_uppercase + string.digits
CONFIRMATION_CODE_LENGTH = 6

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELED: frozenset(),
}


class BookingState(str, Enum):
    REQUESTED = "REQUESTED"
    VALIDATED = "VALIDATED"
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"


@dataclass
class BookingAttempt:
    """Tracks one createBooking call through the state machine for logging."""
    salon_id: int
    reference: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: BookingState = BookingState.REQUESTED

    def advance(self, state: BookingState, detail: str = "") -> None:
        logger.info(
            f"Booking attempt {self.reference} (salon {self.salon_id}): "
            f"{self.state.value} -> {state.value}{f' ({detail})' if detail else ''}"
        )
        self.state = state


def generate_confirmation_code() -> str:
    return "".join(
        secrets.choice(CONFIRMATION_CODE_ALPHABET) for _ in range(CONFIRMATION_CODE_LENGTH)
    )


def append_note(notes: Optional[str], line: str) -> str:
    return f"{notes}\n\n{line}" if notes else line


def typed_errors(operation: str):
    """
    Let BookingError through unchanged; log anything else and replace it with
    InternalBookingError so no internals reach the caller. Only ids are logged;
    client details stay out of the error log.
    """
    def decorator(func):
        signature = inspect.signature(func)

        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except BookingError:
                raise
            except Exception as exc:
                bound = signature.bind_partial(self, *args, **kwargs).arguments
                logger.exception(
                    f"{operation} failed unexpectedly: "
                    f"salon_id={bound.get('salon_id')} appointment_id={bound.get('appointment_id')}"
                )
                raise InternalBookingError() from exc
        return wrapper
    return decorator


def _as_uuid(appointment_id: Union[uuid.UUID, str]) -> uuid.UUID:
    if isinstance(appointment_id, uuid.UUID):
        return appointment_id
    try:
        return uuid.UUID(str(appointment_id))
    except ValueError:
        raise BookingNotFoundError(details={"appointment_id": str(appointment_id)})


class BookingTransactionCoordinator:

    def __init__(
        self,
        store: BookingStore,
        notifier: Optional[NotificationDispatcher] = None,
        *,
        buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
        step_minutes: int = DEFAULT_STEP_MINUTES,
        max_advance_booking_days: int = 90,
        late_cancellation_hours: int = 24,
        clock=utc_now,
    ):
        self.store = store
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.clock = clock
        self.max_advance_booking_days = max_advance_booking_days
        self.late_cancellation_hours = late_cancellation_hours
        self.working_hours = WorkingHoursProvider(store)
        self.conflicts = ConflictRegistry(store)
        self.staff_selector = StaffSelector()
        self.availability = AvailabilityCalculator(
            store,
            self.working_hours,
            self.conflicts,
            buffer_minutes=buffer_minutes,
            step_minutes=step_minutes,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls,
        store: BookingStore,
        settings: Settings,
        notifier: Optional[NotificationDispatcher] = None,
    ) -> "BookingTransactionCoordinator":
        return cls(
            store,
            notifier,
            buffer_minutes=settings.booking_buffer_minutes,
            step_minutes=settings.slot_step_minutes,
            max_advance_booking_days=settings.max_advance_booking_days,
            late_cancellation_hours=settings.late_cancellation_hours,
        )

    # ────────────────────────────────────────────────────────────────
    # Reads
    # ────────────────────────────────────────────────────────────────

    @typed_errors("getAvailableSlots")
    async def get_available_slots(
        self,
        salon_id: int,
        day: date,
        service_refs: Sequence[Union[int, str]],
        staff_id: Optional[int] = None,
    ) -> list[TimeSlot]:
        if not service_refs:
            raise BookingValidationError({"serviceIds": "At least one service must be selected"})
        return await self.availability.get_available_slots(salon_id, day, service_refs, staff_id)

    @typed_errors("getBooking")
    async def get_booking(
        self, salon_id: int, appointment_id: Union[uuid.UUID, str]
    ) -> AppointmentRecord:
        appointment = await self.store.get_appointment(salon_id, _as_uuid(appointment_id))
        if appointment is None:
            raise BookingNotFoundError()
        return appointment

    # ────────────────────────────────────────────────────────────────
    # Create
    # ────────────────────────────────────────────────────────────────

    @typed_errors("createBooking")
    async def create_booking(self, salon_id: int, request: BookingRequest) -> BookingConfirmation:
        attempt = BookingAttempt(salon_id)
        try:
            return await self._create_booking(attempt, request)
        except BookingError as exc:
            attempt.advance(BookingState.REJECTED, exc.code)
            raise

    async def _create_booking(
        self, attempt: BookingAttempt, request: BookingRequest
    ) -> BookingConfirmation:
        salon = await self._get_salon(attempt.salon_id)
        now = self.clock()

        booking = validate_booking_request(request, tz_name=salon.timezone, now=now)
        services = await resolve_services(self.store, salon.id, booking.service_refs)
        duration = sum(s.duration_minutes for s in services)
        start_at = booking.start_at
        end_at = start_at + timedelta(minutes=duration)

        if not self.working_hours.is_open_during(
            salon, booking.local_date, booking.start_minute, booking.start_minute + duration
        ):
            raise BusinessHoursClosedError(
                details={
                    "date": booking.local_date.isoformat(),
                    "start_time": format_minutes(booking.start_minute),
                    "end_time": format_minutes(booking.start_minute + duration),
                }
            )

        staff = await resolve_staff(self.store, salon.id, booking.staff_id)
        intervals = await self.conflicts.blocking_intervals(salon, booking.local_date, booking.staff_id)
        if booking.staff_id is not None:
            chosen = staff[0]
            if not self.conflicts.is_free(chosen.id, start_at, end_at, intervals):
                raise TimeConflictError("Selected staff member is not available at requested time")
        else:
            chosen = self.staff_selector.select(staff, start_at, end_at, intervals)
            if chosen is None:
                raise StaffNotFoundError("No staff available for the selected time slot")

        attempt.advance(BookingState.VALIDATED, f"staff {chosen.id}, {start_at.isoformat()}")

        warnings = []
        if start_at > now + timedelta(days=self.max_advance_booking_days):
            warnings.append(
                f"Appointment is more than {self.max_advance_booking_days} days in advance"
            )
        language_warning = self.staff_selector.language_warning(chosen, booking.client.preferred_locale)
        if language_warning:
            warnings.append(language_warning)

        async with self.store.unit_of_work() as uow:
            live_conflicts = await uow.find_conflicts(salon.id, chosen.id, start_at, end_at)
            if live_conflicts:
                raise TimeConflictError(
                    details={"staff_id": chosen.id, "start_at": start_at.isoformat()}
                )
            client = await uow.upsert_client(salon.id, booking.client)
            appointment = await uow.add_appointment(
                NewAppointment(
                    salon_id=salon.id,
                    client_id=client.id,
                    staff_id=chosen.id,
                    start_at=start_at,
                    end_at=end_at,
                    service_ids=tuple(s.id for s in services),
                    confirmation_code=generate_confirmation_code(),
                    notes=booking.notes,
                )
            )
            await uow.commit()

        attempt.advance(BookingState.COMMITTED, f"appointment {appointment.id}")

        notification_sent = await self._notify(
            BookingEvent(BookingEventType.CREATED, appointment, salon)
        )
        return BookingConfirmation(
            appointment=appointment,
            client=client,
            staff=chosen,
            services=tuple(services),
            totals=BookingTotals(
                duration_minutes=duration,
                price_cents=sum(s.price_cents for s in services),
                currency=salon.currency,
            ),
            local_date=booking.local_date,
            start_time=format_minutes(booking.start_minute),
            end_time=format_minutes(local_minutes(end_at, salon.timezone)),
            warnings=warnings,
            notification_sent=notification_sent,
        )

    # ────────────────────────────────────────────────────────────────
    # Cancel / reschedule / status
    # ────────────────────────────────────────────────────────────────

    @typed_errors("cancelBooking")
    async def cancel_booking(
        self,
        salon_id: int,
        appointment_id: Union[uuid.UUID, str],
        requester_phone: str,
        reason: Optional[str] = None,
    ) -> BookingChange:
        salon = await self._get_salon(salon_id)
        appointment_id = _as_uuid(appointment_id)
        phone = normalize_phone(requester_phone or "")

        async with self.store.unit_of_work() as uow:
            current = await uow.load_appointment(salon.id, appointment_id)
            self._check_owner(current, phone)
            self._check_transition(current, AppointmentStatus.CANCELED)
            updated = await uow.save_appointment(
                current.id,
                staff_id=current.staff_id,
                start_at=current.start_at,
                end_at=current.end_at,
                status=AppointmentStatus.CANCELED,
                notes=append_note(current.notes, f"Cancelled: {reason or 'Client cancellation'}"),
            )
            await uow.commit()

        logger.info(f"Appointment {updated.id} canceled (salon {salon.id})")

        warnings = []
        if updated.start_at - self.clock() < timedelta(hours=self.late_cancellation_hours):
            warnings.append(
                f"Cancellation within {self.late_cancellation_hours} hours may incur fees"
            )
        await self._notify(BookingEvent(BookingEventType.CANCELED, updated, salon, reason=reason))
        return BookingChange(appointment=updated, warnings=warnings)

    @typed_errors("rescheduleBooking")
    async def reschedule_booking(
        self,
        salon_id: int,
        appointment_id: Union[uuid.UUID, str],
        requester_phone: str,
        new_date: str,
        new_start_time: str,
        new_staff_id: Optional[int] = None,
    ) -> BookingChange:
        salon = await self._get_salon(salon_id)
        appointment_id = _as_uuid(appointment_id)
        phone = normalize_phone(requester_phone or "")
        now = self.clock()

        errors = {}
        day = parse_local_date(new_date)
        if day is None:
            errors["newDate"] = "Date must be in YYYY-MM-DD format"
        start_minute = parse_hhmm(new_start_time or "")
        if start_minute is None:
            errors["newStartTime"] = "Time must be in HH:MM format (24-hour)"
        if not errors and to_utc_from_local(day, start_minute, salon.timezone) <= now:
            errors["newStartTime"] = "Appointment must be in the future"
        if errors:
            raise BookingValidationError(errors)

        # Advisory pre-check; repeated under lock below.
        existing = await self.store.get_appointment(salon.id, appointment_id)
        self._check_owner(existing, phone)
        if not existing.is_active:
            raise InvalidStatusError(details={"status": existing.status.value})

        duration = await self._linked_duration(salon.id, existing)
        new_start = to_utc_from_local(day, start_minute, salon.timezone)
        new_end = new_start + timedelta(minutes=duration)
        if not self.working_hours.is_open_during(salon, day, start_minute, start_minute + duration):
            raise BusinessHoursClosedError()

        staff_id = new_staff_id if new_staff_id is not None else existing.staff_id
        if staff_id is not None:
            # Kept staff must still be active, same as a newly requested one.
            await resolve_staff(self.store, salon.id, staff_id)
        else:
            staff = await resolve_staff(self.store, salon.id)
            intervals = [
                block
                for block in await self.conflicts.blocking_intervals(salon, day)
                if block.source_id != str(existing.id)
            ]
            chosen = self.staff_selector.select(staff, new_start, new_end, intervals)
            if chosen is None:
                raise StaffNotFoundError("No staff available for the selected time slot")
            staff_id = chosen.id

        async with self.store.unit_of_work() as uow:
            current = await uow.load_appointment(salon.id, appointment_id)
            self._check_owner(current, phone)
            if not current.is_active:
                raise InvalidStatusError(details={"status": current.status.value})
            live_conflicts = await uow.find_conflicts(
                salon.id, staff_id, new_start, new_end, exclude_appointment_id=current.id
            )
            if live_conflicts:
                raise TimeConflictError(
                    details={"staff_id": staff_id, "start_at": new_start.isoformat()}
                )
            updated = await uow.save_appointment(
                current.id,
                staff_id=staff_id,
                start_at=new_start,
                end_at=new_end,
                status=current.status,
                notes=append_note(current.notes, f"Rescheduled to {new_start.isoformat()}"),
            )
            await uow.commit()

        logger.info(
            f"Appointment {updated.id} rescheduled to {new_start.isoformat()} "
            f"with staff {staff_id} (salon {salon.id})"
        )
        await self._notify(BookingEvent(BookingEventType.RESCHEDULED, updated, salon))
        return BookingChange(appointment=updated)

    @typed_errors("updateStatus")
    async def update_status(
        self,
        salon_id: int,
        appointment_id: Union[uuid.UUID, str],
        status: AppointmentStatus,
        reason: Optional[str] = None,
    ) -> BookingChange:
        salon = await self._get_salon(salon_id)
        appointment_id = _as_uuid(appointment_id)
        status = AppointmentStatus(status)

        async with self.store.unit_of_work() as uow:
            current = await uow.load_appointment(salon.id, appointment_id)
            if current is None:
                raise BookingNotFoundError()
            self._check_transition(current, status)
            notes = current.notes
            if status == AppointmentStatus.CANCELED:
                notes = append_note(notes, f"Cancelled: {reason or 'Salon cancellation'}")
            updated = await uow.save_appointment(
                current.id,
                staff_id=current.staff_id,
                start_at=current.start_at,
                end_at=current.end_at,
                status=status,
                notes=notes,
            )
            await uow.commit()

        logger.info(
            f"Appointment {updated.id} status {current.status.value} -> {status.value} (salon {salon.id})"
        )
        event_type = (
            BookingEventType.CANCELED if status == AppointmentStatus.CANCELED
            else BookingEventType.STATUS_CHANGED
        )
        await self._notify(BookingEvent(event_type, updated, salon, reason=reason))
        return BookingChange(appointment=updated)

    # ────────────────────────────────────────────────────────────────
    # Helpers
    # ────────────────────────────────────────────────────────────────

    async def _get_salon(self, salon_id: int) -> SalonRecord:
        salon = await self.store.get_salon(salon_id)
        if salon is None:
            raise SalonNotFoundError(details={"salon_id": salon_id})
        return salon

    async def _linked_duration(self, salon_id: int, appointment: AppointmentRecord) -> int:
        services = await self.store.get_services(salon_id, appointment.service_ids)
        if appointment.service_ids and len(services) == len(set(appointment.service_ids)):
            return sum(s.duration_minutes for s in services)
        logger.warning(
            f"Appointment {appointment.id} has unresolved linked services; keeping stored duration"
        )
        return appointment.duration_minutes

    @staticmethod
    def _check_owner(appointment: Optional[AppointmentRecord], phone: str) -> None:
        # A phone mismatch is reported as not-found so appointment ids can't be probed.
        if appointment is None or not phone or appointment.client_phone != phone:
            raise BookingNotFoundError("Appointment not found or cannot be changed")

    @staticmethod
    def _check_transition(appointment: AppointmentRecord, status: AppointmentStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[appointment.status]:
            raise InvalidStatusError(
                f"Cannot change appointment from {appointment.status.value} to {status.value}",
                details={"status": appointment.status.value, "requested": status.value},
            )

    async def _notify(self, event: BookingEvent) -> bool:
        try:
            await self.notifier.dispatch(event)
        except Exception:
            logger.exception(
                f"Failed to dispatch {event.type.value} notification for appointment {event.appointment.id}"
            )
            return False
        return True

