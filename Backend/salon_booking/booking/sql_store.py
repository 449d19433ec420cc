"""
SQLAlchemy-backed BookingStore.

Reads use the regular session factory and are point-in-time. Units of work run
on the commit session factory (SERIALIZABLE on PostgreSQL, BEGIN IMMEDIATE on
SQLite). A serialization failure, deadlock or exclusion-constraint violation
raised by the database means another transaction won the race for the slot; it
is rolled back and surfaced as TimeConflictError.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentService,
    AppointmentStatus,
    Client,
    Salon,
    Service,
    Staff,
    TimeOff,
)
from .errors import TimeConflictError
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
)
from .store import BookingStore, UnitOfWork

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, exclusion_violation
CONFLICT_SQLSTATES = {"40001", "40P01", "23P01"}


def is_conflict_error(exc: DBAPIError) -> bool:
    """True when the database aborted us because a concurrent write won."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True
    # SQLite reports a lost write-lock race as "database is locked"
    return "database is locked" in str(orig or exc).lower()


# ────────────────────────────────────────────────────────────────
# Row → record mapping
# ────────────────────────────────────────────────────────────────

def salon_record(row: Salon) -> SalonRecord:
    return SalonRecord(
        id=row.id, name=row.name, timezone=row.timezone,
        currency=row.currency, hours=row.hours, slug=row.slug,
    )


def service_record(row: Service) -> ServiceRecord:
    return ServiceRecord(
        id=row.id,
        salon_id=row.salon_id,
        code=row.code,
        name=row.name,
        duration_minutes=row.duration_minutes,
        price_cents=row.price_cents,
        active=row.active,
    )


def staff_record(row: Staff) -> StaffRecord:
    return StaffRecord(
        id=row.id,
        salon_id=row.salon_id,
        name=row.name,
        active=row.active,
        spoken_locales=tuple(row.spoken_locales or ()),
        role=row.role,
    )


def client_record(row: Client) -> ClientRecord:
    return ClientRecord(
        id=row.id,
        salon_id=row.salon_id,
        name=row.name,
        phone=row.phone,
        email=row.email,
        preferred_locale=row.preferred_locale,
    )


def appointment_record(
    row: Appointment, service_ids: Sequence[int], client_phone: Optional[str]
) -> AppointmentRecord:
    return AppointmentRecord(
        id=row.id,
        salon_id=row.salon_id,
        client_id=row.client_id,
        staff_id=row.staff_id,
        start_at=row.start_at,
        end_at=row.end_at,
        status=row.status,
        confirmation_code=row.confirmation_code,
        notes=row.notes,
        service_ids=tuple(service_ids),
        client_phone=client_phone,
    )


def _appointment_interval(row: Appointment) -> BlockingInterval:
    return BlockingInterval(
        staff_id=row.staff_id,
        start_at=row.start_at,
        end_at=row.end_at,
        kind=IntervalKind.APPOINTMENT,
        source_id=str(row.id),
    )


def _time_off_interval(row: TimeOff) -> BlockingInterval:
    return BlockingInterval(
        staff_id=row.staff_id,
        start_at=row.start_at,
        end_at=row.end_at,
        kind=IntervalKind.TIME_OFF,
        source_id=str(row.id),
    )


async def _load_appointment_record(
    session: AsyncSession,
    salon_id: int,
    appointment_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[AppointmentRecord]:
    stmt = select(Appointment).where(
        Appointment.id == appointment_id,
        Appointment.salon_id == salon_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        return None
    service_ids = (
        await session.execute(
            select(AppointmentService.service_id)
            .where(AppointmentService.appointment_id == row.id)
            .order_by(AppointmentService.id)
        )
    ).scalars().all()
    client_phone = (
        await session.execute(select(Client.phone).where(Client.id == row.client_id))
    ).scalar_one_or_none()
    return appointment_record(row, service_ids, client_phone)


# ────────────────────────────────────────────────────────────────
# Store
# ────────────────────────────────────────────────────────────────

class SqlBookingStore(BookingStore):

    def __init__(
        self,
        read_sessions: async_sessionmaker[AsyncSession],
        commit_sessions: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self._read_sessions = read_sessions
        self._commit_sessions = commit_sessions or read_sessions

    async def get_salon(self, salon_id: int) -> Optional[SalonRecord]:
        async with self._read_sessions() as session:
            row = await session.get(Salon, salon_id)
            return salon_record(row) if row else None

    async def get_services(
        self,
        salon_id: int,
        service_ids: Sequence[int] = (),
        codes: Sequence[str] = (),
    ) -> list[ServiceRecord]:
        if not service_ids and not codes:
            return []
        async with self._read_sessions() as session:
            result = await session.execute(
                select(Service).where(
                    Service.salon_id == salon_id,
                    or_(Service.id.in_(list(service_ids)), Service.code.in_(list(codes))),
                )
            )
            return [service_record(row) for row in result.scalars().all()]

    async def list_active_staff(
        self, salon_id: int, staff_id: Optional[int] = None
    ) -> list[StaffRecord]:
        query = select(Staff).where(Staff.salon_id == salon_id, Staff.active.is_(True))
        if staff_id is not None:
            query = query.where(Staff.id == staff_id)
        async with self._read_sessions() as session:
            result = await session.execute(query.order_by(Staff.id))
            return [staff_record(row) for row in result.scalars().all()]

    async def list_blocking_intervals(
        self,
        salon_id: int,
        window_start: datetime,
        window_end: datetime,
        staff_id: Optional[int] = None,
    ) -> list[BlockingInterval]:
        appointments = select(Appointment).where(
            Appointment.salon_id == salon_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_at >= window_start,
            Appointment.start_at < window_end,
        )
        time_off = (
            select(TimeOff)
            .join(Staff, Staff.id == TimeOff.staff_id)
            .where(
                Staff.salon_id == salon_id,
                TimeOff.end_at > window_start,
                TimeOff.start_at < window_end,
            )
        )
        if staff_id is not None:
            appointments = appointments.where(Appointment.staff_id == staff_id)
            time_off = time_off.where(TimeOff.staff_id == staff_id)

        async with self._read_sessions() as session:
            appointment_rows = (await session.execute(appointments)).scalars().all()
            time_off_rows = (await session.execute(time_off)).scalars().all()

        blocks = [_appointment_interval(row) for row in appointment_rows]
        blocks.extend(_time_off_interval(row) for row in time_off_rows)
        return sorted(blocks, key=lambda b: (b.start_at, b.end_at))

    async def get_appointment(
        self, salon_id: int, appointment_id: uuid.UUID
    ) -> Optional[AppointmentRecord]:
        async with self._read_sessions() as session:
            return await _load_appointment_record(session, salon_id, appointment_id)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator["SqlUnitOfWork"]:
        async with self._commit_sessions() as session:
            uow = SqlUnitOfWork(session)
            try:
                yield uow
            except DBAPIError as exc:
                await session.rollback()
                if is_conflict_error(exc):
                    logger.info(f"Commit aborted by a concurrent booking: {exc.orig!r}")
                    raise TimeConflictError() from exc
                raise
            except BaseException:
                await session.rollback()
                raise
            else:
                if not uow.committed:
                    await session.rollback()


class SqlUnitOfWork(UnitOfWork):

    def __init__(self, session: AsyncSession):
        self.session = session
        self.committed = False

    async def find_conflicts(
        self,
        salon_id: int,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> list[BlockingInterval]:
        appointments = select(Appointment).where(
            Appointment.salon_id == salon_id,
            Appointment.staff_id == staff_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_at < end_at,
            Appointment.end_at > start_at,
        )
        if exclude_appointment_id is not None:
            appointments = appointments.where(Appointment.id != exclude_appointment_id)
        time_off = select(TimeOff).where(
            TimeOff.staff_id == staff_id,
            TimeOff.start_at < end_at,
            TimeOff.end_at > start_at,
        )
        appointment_rows = (await self.session.execute(appointments)).scalars().all()
        time_off_rows = (await self.session.execute(time_off)).scalars().all()
        conflicts = [_appointment_interval(row) for row in appointment_rows]
        conflicts.extend(_time_off_interval(row) for row in time_off_rows)
        return conflicts

    async def upsert_client(self, salon_id: int, details: ClientDetails) -> ClientRecord:
        result = await self.session.execute(
            select(Client).where(Client.salon_id == salon_id, Client.phone == details.phone)
        )
        client = result.scalar_one_or_none()
        if client is None:
            client = Client(
                salon_id=salon_id,
                name=details.name,
                phone=details.phone,
                email=details.email,
                preferred_locale=details.preferred_locale,
            )
            self.session.add(client)
        else:
            client.name = details.name or client.name
            client.email = details.email or client.email
            client.preferred_locale = details.preferred_locale or client.preferred_locale
        await self.session.flush()
        return client_record(client)

    async def add_appointment(self, new: NewAppointment) -> AppointmentRecord:
        row = Appointment(
            salon_id=new.salon_id,
            client_id=new.client_id,
            staff_id=new.staff_id,
            start_at=new.start_at,
            end_at=new.end_at,
            status=new.status,
            notes=new.notes,
            confirmation_code=new.confirmation_code,
        )
        self.session.add(row)
        await self.session.flush()
        self.session.add_all(
            AppointmentService(appointment_id=row.id, service_id=service_id)
            for service_id in new.service_ids
        )
        await self.session.flush()
        client_phone = (
            await self.session.execute(select(Client.phone).where(Client.id == new.client_id))
        ).scalar_one_or_none()
        return appointment_record(row, new.service_ids, client_phone)

    async def load_appointment(
        self, salon_id: int, appointment_id: uuid.UUID
    ) -> Optional[AppointmentRecord]:
        return await _load_appointment_record(
            self.session, salon_id, appointment_id, for_update=True
        )

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
        row = await self.session.get(Appointment, appointment_id)
        row.staff_id = staff_id
        row.start_at = start_at
        row.end_at = end_at
        row.status = status
        row.notes = notes
        await self.session.flush()
        record = await _load_appointment_record(self.session, row.salon_id, row.id)
        return record

    async def commit(self) -> None:
        await self.session.commit()
        self.committed = True
