"""
Availability calculation.

Candidate start times are generated on a fixed cadence inside each open
interval; a candidate is offered only when its service window plus the buffer
ends by closing time. Each candidate is then tested against every eligible
staff member's blocking intervals with half-open overlap on
[start, start + duration).

The result is an advisory, point-in-time read. The authoritative check is the
commit-time re-check in the coordinator.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Sequence, Union

from .catalog import resolve_services, resolve_staff
from .conflicts import ConflictRegistry
from .errors import SalonNotFoundError
from .localtime import format_minutes, to_utc_from_local, utc_now
from .records import BlockingInterval, OpenInterval, SalonRecord, StaffRecord, TimeSlot
from .store import BookingStore
from .working_hours import WorkingHoursProvider

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_MINUTES = 15
DEFAULT_STEP_MINUTES = 30


def candidate_starts(
    intervals: Sequence[OpenInterval],
    duration_minutes: int,
    buffer_minutes: int,
    step_minutes: int,
) -> list[int]:
    """Start minutes whose window + buffer fits inside an open interval."""
    starts = []
    for interval in intervals:
        minute = interval.start_minute
        while minute + duration_minutes + buffer_minutes <= interval.end_minute:
            starts.append(minute)
            minute += step_minutes
    return sorted(set(starts))


class AvailabilityCalculator:

    def __init__(
        self,
        store: BookingStore,
        working_hours: Optional[WorkingHoursProvider] = None,
        conflicts: Optional[ConflictRegistry] = None,
        *,
        buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
        step_minutes: int = DEFAULT_STEP_MINUTES,
        clock: Callable[[], datetime] = utc_now,
    ):
        if step_minutes <= 0:
            raise ValueError("step_minutes must be positive")
        self.store = store
        self.working_hours = working_hours or WorkingHoursProvider(store)
        self.conflicts = conflicts or ConflictRegistry(store)
        self.buffer_minutes = buffer_minutes
        self.step_minutes = step_minutes
        self.clock = clock

    async def get_available_slots(
        self,
        salon_id: int,
        day: date,
        service_refs: Sequence[Union[int, str]],
        staff_id: Optional[int] = None,
    ) -> list[TimeSlot]:
        salon = await self.store.get_salon(salon_id)
        if salon is None:
            raise SalonNotFoundError()
        services = await resolve_services(self.store, salon_id, service_refs)
        staff = await resolve_staff(self.store, salon_id, staff_id)
        duration = sum(s.duration_minutes for s in services)
        intervals = await self.conflicts.blocking_intervals(salon, day, staff_id)
        return self.calculate(salon, day, duration, staff, intervals)

    def calculate(
        self,
        salon: SalonRecord,
        day: date,
        duration_minutes: int,
        staff: Sequence[StaffRecord],
        intervals: Sequence[BlockingInterval],
    ) -> list[TimeSlot]:
        open_intervals = self.working_hours.intervals_for(salon, day)
        if not open_intervals:
            logger.info(f"Salon {salon.id} is closed on {day.isoformat()}")
            return []
        if not staff:
            logger.info(f"No active staff for salon {salon.id} on {day.isoformat()}")
            return []

        now = self.clock()
        duration = timedelta(minutes=duration_minutes)
        slots: list[TimeSlot] = []

        for minute in candidate_starts(
            open_intervals, duration_minutes, self.buffer_minutes, self.step_minutes
        ):
            start_at = to_utc_from_local(day, minute, salon.timezone)
            if start_at <= now:
                continue
            end_at = start_at + duration
            free = next(
                (m for m in staff if ConflictRegistry.is_free(m.id, start_at, end_at, intervals)),
                None,
            )
            slots.append(
                TimeSlot(
                    start_time=format_minutes(minute),
                    end_time=format_minutes(minute + duration_minutes),
                    start_at=start_at,
                    staff_id=free.id if free else None,
                    available=free is not None,
                    reason=None if free else "busy",
                )
            )

        return slots
