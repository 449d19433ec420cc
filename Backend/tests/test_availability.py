"""
Tests for slot generation and availability calculation.

Run with: pytest tests/test_availability.py -v
"""

from datetime import timedelta

import pytest

from salon_booking.booking import AvailabilityCalculator, candidate_starts
from salon_booking.booking.errors import ServiceNotFoundError, StaffNotFoundError
from salon_booking.booking.records import OpenInterval
from salon_booking.booking.staff_selector import StaffSelector
from salon_booking.models import AppointmentStatus

from conftest import MONDAY, NOW, SUNDAY, at, booking_request, fixed_clock


def times(slots, available=True):
    return [s.start_time for s in slots if s.available is available]


# ============================================================================
# CANDIDATE STARTS
# ============================================================================

class TestCandidateStarts:
    """Tests for the candidate start generator."""

    def test_window_plus_buffer_fits_before_close(self):
        """45 min service + 15 min buffer, 09:00-18:00, every 30 min."""
        starts = candidate_starts([OpenInterval(540, 1080)], 45, 15, 30)
        assert starts[0] == 540
        assert starts[-1] == 1020  # 17:00 + 60 == 18:00
        assert 1005 not in starts  # 16:45 is off-cadence
        assert all(s + 60 <= 1080 for s in starts)

    def test_each_interval_restarts_cadence(self):
        starts = candidate_starts([OpenInterval(540, 660), OpenInterval(795, 900)], 30, 0, 30)
        assert starts == [540, 570, 600, 630, 795, 825, 855]

    def test_too_short_interval_yields_nothing(self):
        assert candidate_starts([OpenInterval(540, 570)], 45, 15, 30) == []


# ============================================================================
# CALCULATOR
# ============================================================================

class TestAvailabilityCalculator:
    """Tests for AvailabilityCalculator against the in-memory store."""

    @pytest.mark.asyncio
    async def test_open_day_single_free_staff(self, store, salon, haircut, anna):
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        slots = await calculator.get_available_slots(salon.id, MONDAY, [haircut.id])

        assert times(slots) == [
            "09:00", "09:30", "10:00", "10:30", "11:00", "11:30", "12:00", "12:30",
            "13:00", "13:30", "14:00", "14:30", "15:00", "15:30", "16:00", "16:30",
            "17:00",
        ]
        assert "16:45" not in times(slots)
        assert "17:30" not in times(slots)
        assert all(s.staff_id == anna.id for s in slots)
        assert slots[0].end_time == "09:45"
        assert slots[0].start_at == at(MONDAY, "09:00")

    @pytest.mark.asyncio
    async def test_closed_day_is_empty(self, store, salon, haircut, anna):
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        assert await calculator.get_available_slots(salon.id, SUNDAY, [haircut.id]) == []

    @pytest.mark.asyncio
    async def test_no_active_staff_is_empty(self, store, salon, haircut):
        store.add_staff(salon.id, "Retired", active=False)
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        assert await calculator.get_available_slots(salon.id, MONDAY, [haircut.id]) == []

    @pytest.mark.asyncio
    async def test_repeated_reads_are_identical(self, store, salon, haircut, anna, coordinator):
        """No writes in between, so a second read returns the same slots."""
        await coordinator.create_booking(salon.id, booking_request([haircut.id], "10:00"))
        store.add_time_off(anna.id, at(MONDAY, "13:00"), at(MONDAY, "14:00"))

        first = await coordinator.get_available_slots(salon.id, MONDAY, [haircut.id])
        second = await coordinator.get_available_slots(salon.id, MONDAY, [haircut.id])

        assert first == second
        assert times(first, available=False)
        assert times(first)

    @pytest.mark.asyncio
    async def test_durations_are_summed(self, store, salon, haircut, blow_dry, anna):
        """45 + 15 min services, 15 min buffer → last start 16:30 (17:00 + 75 > 18:00)."""
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        slots = await calculator.get_available_slots(
            salon.id, MONDAY, [haircut.id, blow_dry.code]
        )
        assert times(slots)[-1] == "16:30"
        assert slots[0].end_time == "10:00"

    @pytest.mark.asyncio
    async def test_busy_slots_are_marked(self, store, salon, haircut, anna, coordinator):
        await coordinator.create_booking(salon.id, booking_request([haircut.id], "10:00"))

        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        slots = {s.start_time: s for s in await calculator.get_available_slots(
            salon.id, MONDAY, [haircut.id]
        )}

        # [10:00, 10:45) blocks 09:30, 10:00 and 10:30 candidates
        for blocked in ("09:30", "10:00", "10:30"):
            assert slots[blocked].available is False
            assert slots[blocked].staff_id is None
            assert slots[blocked].reason == "busy"
        assert slots["09:00"].available
        assert slots["11:00"].available

    @pytest.mark.asyncio
    async def test_half_open_boundaries(self, store, salon, haircut, anna):
        """A slot ending exactly where time off starts is free."""
        store.add_time_off(anna.id, at(MONDAY, "12:45"), at(MONDAY, "14:00"))
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        slots = {s.start_time: s for s in await calculator.get_available_slots(
            salon.id, MONDAY, [haircut.id]
        )}
        assert slots["12:00"].available  # [12:00, 12:45)
        assert not slots["12:30"].available
        assert not slots["13:30"].available
        assert slots["14:00"].available

    @pytest.mark.asyncio
    async def test_second_staff_covers_busy_first(self, store, salon, haircut, anna):
        olga = store.add_staff(salon.id, "Olga")
        store.add_time_off(anna.id, at(MONDAY, "09:00"), at(MONDAY, "18:00"))
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        slots = await calculator.get_available_slots(salon.id, MONDAY, [haircut.id])
        assert slots and all(s.available and s.staff_id == olga.id for s in slots)

    @pytest.mark.asyncio
    async def test_requested_staff_only(self, store, salon, haircut, anna):
        olga = store.add_staff(salon.id, "Olga")
        store.add_time_off(anna.id, at(MONDAY, "09:00"), at(MONDAY, "18:00"))
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        slots = await calculator.get_available_slots(salon.id, MONDAY, [haircut.id], anna.id)
        assert times(slots) == []
        assert all(s.reason == "busy" for s in slots)

        slots = await calculator.get_available_slots(salon.id, MONDAY, [haircut.id], olga.id)
        assert times(slots)[0] == "09:00"

    @pytest.mark.asyncio
    async def test_canceled_appointments_do_not_block(
        self, store, salon, haircut, anna, coordinator
    ):
        confirmation = await coordinator.create_booking(salon.id, booking_request([haircut.id], "10:00"))
        await coordinator.update_status(
            salon.id, confirmation.appointment.id, AppointmentStatus.CANCELED
        )
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        slots = await calculator.get_available_slots(salon.id, MONDAY, [haircut.id])
        assert "10:00" in times(slots)

    @pytest.mark.asyncio
    async def test_past_slots_are_not_offered(self, store, salon, haircut, anna):
        calculator = AvailabilityCalculator(
            store, clock=lambda: at(MONDAY, "12:00")
        )
        slots = await calculator.get_available_slots(salon.id, MONDAY, [haircut.id])
        assert times(slots)[0] == "12:30"

    @pytest.mark.asyncio
    async def test_unknown_service(self, store, salon, anna):
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        with pytest.raises(ServiceNotFoundError):
            await calculator.get_available_slots(salon.id, MONDAY, [4242])

    @pytest.mark.asyncio
    async def test_inactive_service(self, store, salon, anna):
        retired = store.add_service(salon.id, "Perm", 120, active=False)
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        with pytest.raises(ServiceNotFoundError):
            await calculator.get_available_slots(salon.id, MONDAY, [retired.id])

    @pytest.mark.asyncio
    async def test_unknown_staff(self, store, salon, haircut, anna):
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        with pytest.raises(StaffNotFoundError):
            await calculator.get_available_slots(salon.id, MONDAY, [haircut.id], 4242)

    @pytest.mark.asyncio
    async def test_other_salon_staff_is_invisible(self, store, salon, haircut, anna):
        other = store.add_salon("Elsewhere")
        foreign = store.add_staff(other.id, "Foreign")
        calculator = AvailabilityCalculator(store, clock=fixed_clock)
        with pytest.raises(StaffNotFoundError):
            await calculator.get_available_slots(salon.id, MONDAY, [haircut.id], foreign.id)

    def test_step_must_be_positive(self, store):
        with pytest.raises(ValueError):
            AvailabilityCalculator(store, step_minutes=0)


# ============================================================================
# STAFF SELECTION
# ============================================================================

class TestStaffSelector:
    """Tests for first-available staff selection and language hints."""

    def test_first_free_by_listing_order(self, store, salon, anna):
        olga = store.add_staff(salon.id, "Olga")
        start = at(MONDAY, "10:00")
        end = start + timedelta(minutes=45)
        blocks = [store.add_time_off(anna.id, start, end)]
        assert StaffSelector().select([anna, olga], start, end, blocks) == olga
        assert StaffSelector().select([anna, olga], end, end + timedelta(minutes=30), blocks) == anna

    def test_nobody_free(self, store, salon, anna):
        start = at(MONDAY, "10:00")
        end = start + timedelta(minutes=45)
        blocks = [store.add_time_off(anna.id, start - timedelta(hours=1), end)]
        assert StaffSelector().select([anna], start, end, blocks) is None

    def test_language_warning(self, anna):
        assert StaffSelector.language_warning(anna, None) is None
        assert StaffSelector.language_warning(anna, "pl") is None
        assert StaffSelector.language_warning(anna, "en-GB") is None
        assert StaffSelector.language_warning(anna, "uk") == (
            "Anna doesn't speak uk, but the salon provides translation assistance"
        )

    def test_no_spoken_locales_means_no_warning(self, store, salon):
        quiet = store.add_staff(salon.id, "Quiet")
        assert StaffSelector.language_warning(quiet, "uk") is None


def test_fixed_clock_is_before_test_day():
    assert NOW < at(MONDAY, "09:00")
