"""
In-process BookingStore.

Units of work hold a single asyncio.Lock from entry to exit, so commits are
fully serialized, the in-memory equivalent of a SERIALIZABLE transaction.
Reads yield to the event loop once, like a network round trip would, so
concurrent requests interleave realistically.

Used by the test-suite and for local demos without a database.
"""

import asyncio
import itertools
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from ..models import AppointmentStatus
from .records import (
    AppointmentRecord,
    BlockingInterval,
    ClientDetails,
    ClientRecord,
    IntervalKind,
    NewAppointment,
    SalonRecord,
    ServiceRecord,
    StaffRecord,
    overlaps,
)
from .store import BookingStore, UnitOfWork


class InMemoryBookingStore(BookingStore):

    def __init__(self):
        self._ids = itertools.count(1)
        self.salons: dict[int, SalonRecord] = {}
        self.services: dict[int, ServiceRecord] = {}
        self.staff: dict[int, StaffRecord] = {}
        self.time_off: list[BlockingInterval] = []
        self.clients: dict[int, ClientRecord] = {}
        self.appointments: dict[uuid.UUID, AppointmentRecord] = {}
        self._commit_lock = asyncio.Lock()

    # ── Fixture helpers ────────────────────────────────────────────

    def add_salon(
        self,
        name: str = "Demo Salon",
        *,
        timezone: str = "Europe/Warsaw",
        currency: str = "PLN",
        hours: Optional[dict] = None,
        slug: Optional[str] = None,
    ) -> SalonRecord:
        salon = SalonRecord(
            id=next(self._ids), name=name, timezone=timezone,
            currency=currency, hours=hours, slug=slug,
        )
        self.salons[salon.id] = salon
        return salon

    def add_service(
        self,
        salon_id: int,
        name: str,
        duration_minutes: int,
        price_cents: int = 0,
        *,
        code: Optional[str] = None,
        active: bool = True,
    ) -> ServiceRecord:
        service_id = next(self._ids)
        service = ServiceRecord(
            id=service_id,
            salon_id=salon_id,
            code=code or f"service-{service_id}",
            name=name,
            duration_minutes=duration_minutes,
            price_cents=price_cents,
            active=active,
        )
        self.services[service.id] = service
        return service

    def add_staff(
        self,
        salon_id: int,
        name: str,
        *,
        active: bool = True,
        spoken_locales: Sequence[str] = (),
    ) -> StaffRecord:
        staff = StaffRecord(
            id=next(self._ids), salon_id=salon_id, name=name,
            active=active, spoken_locales=tuple(spoken_locales),
        )
        self.staff[staff.id] = staff
        return staff

    def add_time_off(self, staff_id: int, start_at: datetime, end_at: datetime) -> BlockingInterval:
        block = BlockingInterval(
            staff_id=staff_id,
            start_at=start_at,
            end_at=end_at,
            kind=IntervalKind.TIME_OFF,
            source_id=str(next(self._ids)),
        )
        self.time_off.append(block)
        return block

    # ── Reads ──────────────────────────────────────────────────────

    async def get_salon(self, salon_id: int) -> Optional[SalonRecord]:
        await asyncio.sleep(0)
        return self.salons.get(salon_id)

    async def get_services(
        self,
        salon_id: int,
        service_ids: Sequence[int] = (),
        codes: Sequence[str] = (),
    ) -> list[ServiceRecord]:
        await asyncio.sleep(0)
        return [
            s for s in self.services.values()
            if s.salon_id == salon_id and (s.id in service_ids or s.code in codes)
        ]

    async def list_active_staff(
        self, salon_id: int, staff_id: Optional[int] = None
    ) -> list[StaffRecord]:
        await asyncio.sleep(0)
        return sorted(
            (
                s for s in self.staff.values()
                if s.salon_id == salon_id and s.active and (staff_id is None or s.id == staff_id)
            ),
            key=lambda s: s.id,
        )

    async def list_blocking_intervals(
        self,
        salon_id: int,
        window_start: datetime,
        window_end: datetime,
        staff_id: Optional[int] = None,
    ) -> list[BlockingInterval]:
        await asyncio.sleep(0)
        blocks = [
            _as_interval(a) for a in self.appointments.values()
            if a.salon_id == salon_id
            and a.is_active
            and window_start <= a.start_at < window_end
            and (staff_id is None or a.staff_id == staff_id)
        ]
        salon_staff = {s.id for s in self.staff.values() if s.salon_id == salon_id}
        blocks.extend(
            b for b in self.time_off
            if b.staff_id in salon_staff
            and b.overlaps(window_start, window_end)
            and (staff_id is None or b.staff_id == staff_id)
        )
        return sorted(blocks, key=lambda b: (b.start_at, b.end_at))

    async def get_appointment(
        self, salon_id: int, appointment_id: uuid.UUID
    ) -> Optional[AppointmentRecord]:
        await asyncio.sleep(0)
        appointment = self.appointments.get(appointment_id)
        if appointment is None or appointment.salon_id != salon_id:
            return None
        return appointment

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator["InMemoryUnitOfWork"]:
        async with self._commit_lock:
            yield InMemoryUnitOfWork(self)


class InMemoryUnitOfWork(UnitOfWork):

    def __init__(self, store: InMemoryBookingStore):
        self._store = store
        self._clients: dict[int, ClientRecord] = {}
        self._appointments: dict[uuid.UUID, AppointmentRecord] = {}
        self._committed = False

    def _appointment_view(self) -> dict[uuid.UUID, AppointmentRecord]:
        view = dict(self._store.appointments)
        view.update(self._appointments)
        return view

    async def find_conflicts(
        self,
        salon_id: int,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> list[BlockingInterval]:
        await asyncio.sleep(0)
        conflicts = [
            _as_interval(a) for a in self._appointment_view().values()
            if a.salon_id == salon_id
            and a.staff_id == staff_id
            and a.is_active
            and a.id != exclude_appointment_id
            and overlaps(start_at, end_at, a.start_at, a.end_at)
        ]
        conflicts.extend(
            b for b in self._store.time_off
            if b.staff_id == staff_id and b.overlaps(start_at, end_at)
        )
        return conflicts

    async def upsert_client(self, salon_id: int, details: ClientDetails) -> ClientRecord:
        clients = dict(self._store.clients)
        clients.update(self._clients)
        existing = next(
            (c for c in clients.values() if c.salon_id == salon_id and c.phone == details.phone),
            None,
        )
        if existing is not None:
            client = replace(
                existing,
                name=details.name or existing.name,
                email=details.email or existing.email,
                preferred_locale=details.preferred_locale or existing.preferred_locale,
            )
        else:
            client = ClientRecord(
                id=next(self._store._ids),
                salon_id=salon_id,
                name=details.name,
                phone=details.phone,
                email=details.email,
                preferred_locale=details.preferred_locale,
            )
        self._clients[client.id] = client
        return client

    async def add_appointment(self, new: NewAppointment) -> AppointmentRecord:
        client = self._clients.get(new.client_id) or self._store.clients.get(new.client_id)
        appointment = AppointmentRecord(
            id=uuid.uuid4(),
            salon_id=new.salon_id,
            client_id=new.client_id,
            staff_id=new.staff_id,
            start_at=new.start_at,
            end_at=new.end_at,
            status=new.status,
            confirmation_code=new.confirmation_code,
            notes=new.notes,
            service_ids=tuple(new.service_ids),
            client_phone=client.phone if client else None,
        )
        self._appointments[appointment.id] = appointment
        return appointment

    async def load_appointment(
        self, salon_id: int, appointment_id: uuid.UUID
    ) -> Optional[AppointmentRecord]:
        await asyncio.sleep(0)
        appointment = self._appointment_view().get(appointment_id)
        if appointment is None or appointment.salon_id != salon_id:
            return None
        return appointment

    async def save_appointment(
        self,
        appointment_id: uuid.UUID,
        *,
        staff_id: Optional[int],
        start_at: datetime,
        end_at: datetime,
        status: AppointmentStatus,
        notes: Optional[str],
    ) -> AppointmentRecord:
        current = self._appointment_view()[appointment_id]
        updated = replace(
            current, staff_id=staff_id, start_at=start_at, end_at=end_at,
            status=status, notes=notes,
        )
        self._appointments[appointment_id] = updated
        return updated

    async def commit(self) -> None:
        if self._committed:
            raise RuntimeError("unit of work already committed")
        self._store.clients.update(self._clients)
        self._store.appointments.update(self._appointments)
        self._committed = True


def _as_interval(appointment: AppointmentRecord) -> BlockingInterval:
    return BlockingInterval(
        staff_id=appointment.staff_id,
        start_at=appointment.start_at,
        end_at=appointment.end_at,
        kind=IntervalKind.APPOINTMENT,
        source_id=str(appointment.id),
    )
