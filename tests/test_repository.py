"""PostgreSQL repository tests.

Run only when TEST_DATABASE_URL points at a disposable database; the
appointments table is dropped and recreated for every test.
"""

import asyncio
import os
from collections.abc import AsyncGenerator
from datetime import date, datetime

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from appointment_service.config import settings
from appointment_service.core.exceptions import ConflictException
from appointment_service.models import metadata
from appointment_service.repositories.appointment_repository import AppointmentRepository
from appointment_service.schemas.appointments import Appointment, AppointmentStatus

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not TEST_DATABASE_URL or TEST_DATABASE_URL == settings.database_url,
    reason="TEST_DATABASE_URL not set to a separate test database",
)

NOW = datetime(2026, 10, 19, 8, 0)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://"),
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def repository(session_factory) -> AsyncGenerator[AppointmentRepository, None]:
    async with session_factory() as session:
        yield AppointmentRepository(session)


def appointment(appointment_id: str, start: datetime, **fields) -> Appointment:
    values = {
        "appointment_id": appointment_id,
        "patient_id": "P001",
        "doctor_id": "D001",
        "patient_name": "Jane Roe",
        "doctor_name": "Dr. Smith",
        "appointment_datetime": start,
        "duration": 30,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(fields)
    return Appointment(**values)


@pytest.mark.asyncio
async def test_save_insert_and_update(repository):
    saved = await repository.save(appointment("APP-0001", datetime(2026, 10, 20, 10)))

    assert saved.id is not None
    assert saved.status == AppointmentStatus.PENDING
    assert await repository.exists_by_appointment_id("APP-0001")

    updated = await repository.save(
        saved.model_copy(update={"status": AppointmentStatus.CONFIRMED})
    )
    assert updated.id == saved.id
    assert (await repository.find_by_appointment_id("APP-0001")).status == (
        AppointmentStatus.CONFIRMED
    )


@pytest.mark.asyncio
async def test_duplicate_appointment_id_is_a_conflict(repository):
    await repository.save(appointment("APP-0001", datetime(2026, 10, 20, 10)))

    with pytest.raises(ConflictException):
        await repository.save(appointment("APP-0001", datetime(2026, 10, 21, 10)))


@pytest.mark.asyncio
async def test_queries(repository):
    await repository.save(appointment("APP-0001", datetime(2026, 10, 20, 10)))
    await repository.save(
        appointment(
            "APP-0002",
            datetime(2026, 10, 20, 14),
            status=AppointmentStatus.CANCELLED,
            cancellation_reason="patient request",
        )
    )
    await repository.save(appointment("APP-0003", datetime(2026, 10, 21, 0), doctor_id="D002"))

    day = await repository.find_by_doctor_id_and_date_range(
        "D001", datetime(2026, 10, 20), datetime(2026, 10, 21)
    )
    assert [a.appointment_id for a in day] == ["APP-0001", "APP-0002"]

    cancelled = await repository.find_by_patient_id_and_status(
        "P001", [AppointmentStatus.CANCELLED]
    )
    assert [a.appointment_id for a in cancelled] == ["APP-0002"]

    counts = await repository.count_by_status()
    assert counts[AppointmentStatus.PENDING] == 2
    assert counts[AppointmentStatus.CANCELLED] == 1
    assert counts[AppointmentStatus.REVISIT] == 0

    in_range = await repository.find_by_date_range(
        datetime(2026, 10, 20), datetime(2026, 10, 22), status=AppointmentStatus.PENDING
    )
    assert [a.appointment_id for a in in_range] == ["APP-0001", "APP-0003"]

    assert await repository.delete_by_appointment_id("APP-0003")
    assert not await repository.delete_by_appointment_id("APP-0003")


@pytest.mark.asyncio
async def test_doctor_day_lock_serializes_sessions(session_factory):
    order: list[str] = []

    async def hold(name: str, delay: float) -> None:
        async with session_factory() as session:
            repository = AppointmentRepository(session)
            await asyncio.sleep(delay)
            async with repository.doctor_day_lock("D001", date(2026, 10, 20)):
                order.append(f"{name}:enter")
                await asyncio.sleep(0.2)
                order.append(f"{name}:exit")

    await asyncio.gather(hold("first", 0), hold("second", 0.05))

    assert order == ["first:enter", "first:exit", "second:enter", "second:exit"]
