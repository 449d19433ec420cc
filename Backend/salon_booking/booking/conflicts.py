import logging
from datetime import date, datetime
from typing import Iterable, Optional

from .localtime import local_day_bounds
from .records import BlockingInterval, SalonRecord
from .store import BookingStore

logger = logging.getLogger(__name__)


class ConflictRegistry:
    """
    Blocking intervals for a salon day: active (PENDING/CONFIRMED) appointments
    starting on that date plus time-off overlapping it.

    Results are advisory reads; the commit step re-checks inside its own unit
    of work.
    """

    def __init__(self, store: BookingStore):
        self.store = store

    async def blocking_intervals(
        self,
        salon: SalonRecord,
        day: date,
        staff_id: Optional[int] = None,
    ) -> list[BlockingInterval]:
        day_start, day_end = local_day_bounds(day, salon.timezone)
        return await self.store.list_blocking_intervals(salon.id, day_start, day_end, staff_id)

    @staticmethod
    def conflicts_for(
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        intervals: Iterable[BlockingInterval],
    ) -> list[BlockingInterval]:
        return [
            block for block in intervals
            if block.staff_id == staff_id and block.overlaps(start_at, end_at)
        ]

    @classmethod
    def is_free(
        cls,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        intervals: Iterable[BlockingInterval],
    ) -> bool:
        return not cls.conflicts_for(staff_id, start_at, end_at, intervals)
