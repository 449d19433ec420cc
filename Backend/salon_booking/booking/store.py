"""
Storage boundary for the booking engine.

BookingStore exposes lock-free, point-in-time reads (advisory) plus
`unit_of_work()`, the only place the engine writes. Everything done through a
UnitOfWork is applied atomically on `commit()`; leaving the context without
committing, or through an exception, rolls it back.

Implementations:
    sql_store.SqlBookingStore      - SQLAlchemy, serializable commit transactions
    memory_store.InMemoryBookingStore - in-process, commits serialized by a lock
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Optional, Sequence

from ..models import AppointmentStatus
from .records import (
    AppointmentRecord,
    BlockingInterval,
    ClientDetails,
    ClientRecord,
    NewAppointment,
    SalonRecord,
    ServiceRecord,
    StaffRecord,
)


class UnitOfWork(ABC):
    """One atomic read-check-write sequence."""

    @abstractmethod
    async def find_conflicts(
        self,
        salon_id: int,
        staff_id: int,
        start_at: datetime,
        end_at: datetime,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> list[BlockingInterval]:
        """Live active appointments and time-off overlapping [start_at, end_at)."""

    @abstractmethod
    async def upsert_client(self, salon_id: int, details: ClientDetails) -> ClientRecord:
        """Find the client by (salon_id, phone) and refresh it, or create it."""

    @abstractmethod
    async def add_appointment(self, new: NewAppointment) -> AppointmentRecord:
        ...

    @abstractmethod
    async def load_appointment(
        self, salon_id: int, appointment_id: uuid.UUID
    ) -> Optional[AppointmentRecord]:
        """Re-read an appointment, locking it for the rest of the unit of work."""

    @abstractmethod
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
        ...

    @abstractmethod
    async def commit(self) -> None:
        ...


class BookingStore(ABC):

    @abstractmethod
    async def get_salon(self, salon_id: int) -> Optional[SalonRecord]:
        ...

    @abstractmethod
    async def get_services(
        self,
        salon_id: int,
        service_ids: Sequence[int] = (),
        codes: Sequence[str] = (),
    ) -> list[ServiceRecord]:
        """Services of the salon matching ids or codes, active or not."""

    @abstractmethod
    async def list_active_staff(
        self, salon_id: int, staff_id: Optional[int] = None
    ) -> list[StaffRecord]:
        """Active staff ordered by id (the stable listing order)."""

    @abstractmethod
    async def list_blocking_intervals(
        self,
        salon_id: int,
        window_start: datetime,
        window_end: datetime,
        staff_id: Optional[int] = None,
    ) -> list[BlockingInterval]:
        """
        Active appointments starting inside [window_start, window_end) plus
        time-off overlapping it.
        """

    @abstractmethod
    async def get_appointment(
        self, salon_id: int, appointment_id: uuid.UUID
    ) -> Optional[AppointmentRecord]:
        ...

    @abstractmethod
    def unit_of_work(self) -> AbstractAsyncContextManager[UnitOfWork]:
        ...
