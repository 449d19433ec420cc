import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from .conflicts import ConflictRegistry
from .records import BlockingInterval, StaffRecord

logger = logging.getLogger(__name__)


class StaffSelector:
    """
    First-available staff selection.

    Walks staff in their stable listing order (by id) and returns the first one
    with no blocking interval over the whole window. No workload balancing or
    specialization weighting is applied.
    """

    def select(
        self,
        staff: Sequence[StaffRecord],
        start_at: datetime,
        end_at: datetime,
        intervals: Iterable[BlockingInterval],
    ) -> Optional[StaffRecord]:
        intervals = list(intervals)
        for member in staff:
            if not member.active:
                continue
            if ConflictRegistry.is_free(member.id, start_at, end_at, intervals):
                logger.debug(f"Auto-selected staff {member.id} for {start_at.isoformat()}")
                return member
        return None

    @staticmethod
    def language_warning(staff: StaffRecord, client_locale: Optional[str]) -> Optional[str]:
        """Advisory only: never used to filter staff or reject a booking."""
        if not client_locale or not staff.spoken_locales:
            return None
        spoken = {locale.lower() for locale in staff.spoken_locales}
        if client_locale.lower() in spoken or client_locale.split("-")[0].lower() in spoken:
            return None
        return f"{staff.name} doesn't speak {client_locale}, but the salon provides translation assistance"
