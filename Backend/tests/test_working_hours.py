"""
Tests for salon working hours parsing and lookups.

Run with: pytest tests/test_working_hours.py -v
"""

import pytest

from salon_booking.booking.errors import SalonNotFoundError
from salon_booking.booking.records import OpenInterval
from salon_booking.booking.working_hours import (
    WorkingHoursProvider,
    parse_day_hours,
    parse_weekly_hours,
)

from conftest import MONDAY, SUNDAY


# ============================================================================
# DAY STRING PARSING
# ============================================================================

class TestParseDayHours:
    """Tests for parse_day_hours."""

    def test_single_range(self):
        assert parse_day_hours("09:00-18:00") == [OpenInterval(540, 1080)]

    def test_split_day(self):
        """Lunch break yields two intervals."""
        assert parse_day_hours("09:00-12:00,14:00-18:00") == [
            OpenInterval(540, 720),
            OpenInterval(840, 1080),
        ]

    def test_ranges_are_sorted(self):
        assert parse_day_hours("14:00-18:00, 09:00-12:00")[0] == OpenInterval(540, 720)

    def test_closed_and_empty(self):
        assert parse_day_hours("closed") == []
        assert parse_day_hours("Closed") == []
        assert parse_day_hours("") == []
        assert parse_day_hours(None) == []

    def test_malformed_ranges_are_dropped(self):
        """Bad chunks are skipped, good ones survive."""
        assert parse_day_hours("9am-5pm") == []
        assert parse_day_hours("18:00-09:00") == []
        assert parse_day_hours("10:00-10:00") == []
        assert parse_day_hours("25:00-26:00,10:00-12:00") == [OpenInterval(600, 720)]


class TestParseWeeklyHours:
    """Tests for parse_weekly_hours key normalization."""

    def test_three_letter_keys(self):
        weekly = parse_weekly_hours({"Mon": "10:00-14:00", "sun": "closed"})
        assert weekly["monday"] == "10:00-14:00"
        assert weekly["sunday"] == "closed"
        assert weekly["tuesday"] is None

    def test_non_dict_is_empty(self):
        assert parse_weekly_hours(None) == {}
        assert parse_weekly_hours("09:00-17:00") == {}


# ============================================================================
# PROVIDER
# ============================================================================

class TestWorkingHoursProvider:
    """Tests for WorkingHoursProvider lookups."""

    def test_default_hours_when_salon_has_none(self, salon):
        assert WorkingHoursProvider.intervals_for(salon, MONDAY) == [OpenInterval(540, 1080)]
        assert WorkingHoursProvider.intervals_for(salon, SUNDAY) == []

    def test_missing_day_is_closed(self, store):
        salon = store.add_salon(hours={"monday": "10:00-12:00"})
        assert WorkingHoursProvider.intervals_for(salon, SUNDAY) == []

    def test_window_must_fit_one_interval(self, store):
        """A window spanning the lunch break is not open, even if both ends are."""
        salon = store.add_salon(hours={"monday": "09:00-12:00,13:00-18:00"})
        assert WorkingHoursProvider.is_open_during(salon, MONDAY, 540, 720)
        assert WorkingHoursProvider.is_open_during(salon, MONDAY, 780, 1080)
        assert not WorkingHoursProvider.is_open_during(salon, MONDAY, 690, 810)
        assert not WorkingHoursProvider.is_open_during(salon, MONDAY, 1050, 1095)

    @pytest.mark.asyncio
    async def test_open_intervals_reads_salon(self, store, salon):
        provider = WorkingHoursProvider(store)
        assert await provider.open_intervals(salon.id, MONDAY) == [OpenInterval(540, 1080)]

    @pytest.mark.asyncio
    async def test_open_intervals_unknown_salon(self, store):
        provider = WorkingHoursProvider(store)
        with pytest.raises(SalonNotFoundError):
            await provider.open_intervals(999, MONDAY)
