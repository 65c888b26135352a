"""Appointment store interface."""

from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime
from typing import Protocol

from appointment_service.schemas.appointments import Appointment, AppointmentStatus


class AppointmentStore(Protocol):
    """Persistence operations the scheduling core relies on."""

    async def save(self, appointment: Appointment) -> Appointment:
        """Insert when ``appointment.id`` is unset, update otherwise. Commits."""
        ...

    async def find_by_appointment_id(self, appointment_id: str) -> Appointment | None: ...

    async def exists_by_appointment_id(self, appointment_id: str) -> bool: ...

    async def delete_by_appointment_id(self, appointment_id: str) -> bool:
        """Return whether a record was deleted."""
        ...

    async def find_all(self) -> list[Appointment]: ...

    async def find_by_doctor_id_and_date_range(
        self,
        doctor_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        """Appointments of ``doctor_id`` starting in ``[start, end)``."""
        ...

    async def find_by_status(self, status: AppointmentStatus) -> list[Appointment]: ...

    async def find_by_patient_id_and_status(
        self,
        patient_id: str,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]: ...

    async def find_by_doctor_id_and_status(
        self,
        doctor_id: str,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]: ...

    async def count_by_status(self) -> dict[AppointmentStatus, int]:
        """Count for every status, zero included."""
        ...

    async def find_by_date_range(
        self,
        start: datetime,
        end: datetime,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        """Appointments starting in ``[start, end)``, optionally of one status."""
        ...

    def doctor_day_lock(
        self,
        doctor_id: str,
        day: date,
    ) -> AbstractAsyncContextManager[None]:
        """Serialize conflict check and write for one doctor on one day."""
        ...
