"""PostgreSQL appointment store using SQLAlchemy Core."""

import hashlib
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import date, datetime

import structlog
from sqlalchemy import and_, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_service.core.exceptions import AppointmentNotFoundException, ConflictException
from appointment_service.models.appointments import appointments
from appointment_service.schemas.appointments import Appointment, AppointmentStatus

logger = structlog.get_logger(__name__)


def doctor_day_lock_key(doctor_id: str, day: date) -> int:
    """Stable signed 64-bit key for ``pg_advisory_xact_lock``."""
    digest = hashlib.blake2b(f"{doctor_id}:{day.isoformat()}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class AppointmentRepository:
    """Appointment store backed by the ``appointments`` table."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    @staticmethod
    def _to_model(row) -> Appointment:
        return Appointment.model_validate(dict(row))

    async def _fetch_all(self, stmt) -> list[Appointment]:
        result = await self.db.execute(stmt)
        return [self._to_model(row) for row in result.mappings().all()]

    async def save(self, appointment: Appointment) -> Appointment:
        """
        Insert or update an appointment and commit.

        Committing also releases any doctor-day lock held by the session.

        Raises:
            ConflictException: If the external appointment id is already taken
            AppointmentNotFoundException: If an update matched no row
        """
        values = appointment.model_dump(exclude={"id"})
        values["status"] = appointment.status.value

        if appointment.id is None:
            stmt = insert(appointments).values(**values).returning(appointments)
        else:
            stmt = (
                update(appointments)
                .where(appointments.c.id == appointment.id)
                .values(**values)
                .returning(appointments)
            )

        try:
            result = await self.db.execute(stmt)
            row = result.mappings().first()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "appointment_save_rejected",
                appointment_id=appointment.appointment_id,
                error=str(e.orig),
            )
            raise ConflictException(
                f"Appointment {appointment.appointment_id} already exists"
            ) from e

        if row is None:
            raise AppointmentNotFoundException(appointment.appointment_id)

        return self._to_model(row)

    async def find_by_appointment_id(self, appointment_id: str) -> Appointment | None:
        stmt = select(appointments).where(appointments.c.appointment_id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return self._to_model(row) if row else None

    async def exists_by_appointment_id(self, appointment_id: str) -> bool:
        stmt = select(
            select(appointments.c.id)
            .where(appointments.c.appointment_id == appointment_id)
            .exists()
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def delete_by_appointment_id(self, appointment_id: str) -> bool:
        stmt = (
            delete(appointments)
            .where(appointments.c.appointment_id == appointment_id)
            .returning(appointments.c.id)
        )
        result = await self.db.execute(stmt)
        deleted = result.first() is not None
        await self.db.commit()
        return deleted

    async def find_all(self) -> list[Appointment]:
        stmt = select(appointments).order_by(appointments.c.appointment_datetime)
        return await self._fetch_all(stmt)

    async def find_by_doctor_id_and_date_range(
        self,
        doctor_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.appointment_datetime >= start,
                    appointments.c.appointment_datetime < end,
                )
            )
            .order_by(appointments.c.appointment_datetime)
        )
        return await self._fetch_all(stmt)

    async def find_by_status(self, status: AppointmentStatus) -> list[Appointment]:
        stmt = (
            select(appointments)
            .where(appointments.c.status == status.value)
            .order_by(appointments.c.appointment_datetime)
        )
        return await self._fetch_all(stmt)

    async def find_by_patient_id_and_status(
        self,
        patient_id: str,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.patient_id == patient_id,
                    appointments.c.status.in_([s.value for s in statuses]),
                )
            )
            .order_by(appointments.c.appointment_datetime)
        )
        return await self._fetch_all(stmt)

    async def find_by_doctor_id_and_status(
        self,
        doctor_id: str,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.status.in_([s.value for s in statuses]),
                )
            )
            .order_by(appointments.c.appointment_datetime)
        )
        return await self._fetch_all(stmt)

    async def count_by_status(self) -> dict[AppointmentStatus, int]:
        stmt = select(appointments.c.status, func.count()).group_by(appointments.c.status)
        result = await self.db.execute(stmt)
        counts = {status: 0 for status in AppointmentStatus}
        for status, count in result.all():
            counts[AppointmentStatus(status)] = count
        return counts

    async def find_by_date_range(
        self,
        start: datetime,
        end: datetime,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        conditions = [
            appointments.c.appointment_datetime >= start,
            appointments.c.appointment_datetime < end,
        ]
        if status is not None:
            conditions.append(appointments.c.status == status.value)

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.appointment_datetime)
        )
        return await self._fetch_all(stmt)

    @asynccontextmanager
    async def doctor_day_lock(self, doctor_id: str, day: date) -> AsyncIterator[None]:
        """
        Hold a transaction-scoped advisory lock for one doctor-day.

        The lock is released when the session's transaction ends: on the commit
        inside :meth:`save`, on the rollback below when the body raises, or on
        the final commit when the body wrote nothing.
        """
        key = doctor_day_lock_key(doctor_id, day)
        await self.db.execute(select(func.pg_advisory_xact_lock(key)))
        try:
            yield
        except Exception:
            await self.db.rollback()
            raise
        if self.db.in_transaction():
            await self.db.commit()
