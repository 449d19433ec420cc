"""
Salon working hours.

A salon stores a weekday map of hour strings:

    {"monday": "09:00-12:00,14:00-18:00", "sat": "10:00-14:00", "sunday": "closed"}

Each day resolves to zero or more half-open OpenIntervals in minutes since
local midnight. Malformed ranges are dropped; a salon with no map at all uses
DEFAULT_WEEKLY_HOURS.
"""

import logging
from datetime import date
from typing import Optional

from .errors import SalonNotFoundError
from .localtime import parse_hhmm
from .records import OpenInterval, SalonRecord
from .store import BookingStore

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_WEEKLY_HOURS = {
    "monday": "09:00-18:00",
    "tuesday": "09:00-18:00",
    "wednesday": "09:00-18:00",
    "thursday": "09:00-18:00",
    "friday": "09:00-18:00",
    "saturday": "09:00-16:00",
    "sunday": "closed",
}


def parse_weekly_hours(hours: Optional[dict]) -> dict[str, Optional[str]]:
    """Normalize a weekday map, accepting full names or three-letter keys."""
    if not hours or not isinstance(hours, dict):
        return {}
    lowered = {str(key).strip().lower(): value for key, value in hours.items()}
    return {day: lowered.get(day) or lowered.get(day[:3]) for day in WEEKDAYS}


def parse_day_hours(day_hours: Optional[str]) -> list[OpenInterval]:
    if not day_hours or day_hours.strip().lower() == "closed":
        return []

    intervals = []
    for chunk in day_hours.split(","):
        start_text, sep, end_text = chunk.strip().partition("-")
        if not sep:
            logger.debug(f"Dropping malformed hours range {chunk!r}")
            continue
        start = parse_hhmm(start_text)
        end = parse_hhmm(end_text)
        if start is None or end is None or start >= end:
            logger.debug(f"Dropping malformed hours range {chunk!r}")
            continue
        intervals.append(OpenInterval(start, end))
    return sorted(intervals, key=lambda i: i.start_minute)


class WorkingHoursProvider:

    def __init__(self, store: BookingStore):
        self.store = store

    @staticmethod
    def intervals_for(salon: SalonRecord, day: date) -> list[OpenInterval]:
        weekly = parse_weekly_hours(salon.hours) if salon.hours else dict(DEFAULT_WEEKLY_HOURS)
        return parse_day_hours(weekly.get(WEEKDAYS[day.weekday()]))

    async def open_intervals(self, salon_id: int, day: date) -> list[OpenInterval]:
        salon = await self.store.get_salon(salon_id)
        if salon is None:
            raise SalonNotFoundError()
        return self.intervals_for(salon, day)

    @classmethod
    def is_open_during(
        cls, salon: SalonRecord, day: date, start_minute: int, end_minute: int
    ) -> bool:
        """True when [start_minute, end_minute) fits inside a single open interval."""
        return any(
            interval.contains(start_minute, end_minute)
            for interval in cls.intervals_for(salon, day)
        )
