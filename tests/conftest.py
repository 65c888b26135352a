import asyncio
import random
from collections import defaultdict
from collections.abc import AsyncGenerator, AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()

from appointment_service.core.exceptions import (
    AppointmentNotFoundException,
    ConflictException,
    DoctorNotFoundException,
    NotificationFailure,
    PatientNotFoundException,
)
from appointment_service.dependencies import get_appointment_service, get_report_service
from appointment_service.main import app
from appointment_service.schemas.appointments import Appointment, AppointmentStatus
from appointment_service.schemas.identity import DoctorSnapshot, PatientSnapshot
from appointment_service.services.appointment_service import AppointmentService
from appointment_service.services.id_generator import AppointmentIdGenerator
from appointment_service.services.report_service import AppointmentReportService
from appointment_service.services.scheduling import SchedulingPolicy

# Clinic wall-clock "now" used by every test
NOW = datetime(2026, 10, 19, 8, 0)


class FixedClock:
    """Settable clock injected in place of the clinic clock."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryAppointmentStore:
    """Dict-backed appointment store with per doctor-day asyncio locks."""

    def __init__(self):
        self.records: dict[str, Appointment] = {}
        self._locks: dict[tuple[str, date], asyncio.Lock] = defaultdict(asyncio.Lock)

    def add(self, appointment: Appointment) -> Appointment:
        stored = appointment.model_copy(update={"id": appointment.id or uuid4()})
        self.records[stored.appointment_id] = stored
        return stored

    async def save(self, appointment: Appointment) -> Appointment:
        if appointment.id is None:
            if appointment.appointment_id in self.records:
                raise ConflictException(f"Appointment {appointment.appointment_id} already exists")
            appointment = appointment.model_copy(update={"id": uuid4()})
        elif appointment.appointment_id not in self.records:
            raise AppointmentNotFoundException(appointment.appointment_id)
        self.records[appointment.appointment_id] = appointment
        return appointment

    async def find_by_appointment_id(self, appointment_id: str) -> Appointment | None:
        return self.records.get(appointment_id)

    async def exists_by_appointment_id(self, appointment_id: str) -> bool:
        return appointment_id in self.records

    async def delete_by_appointment_id(self, appointment_id: str) -> bool:
        return self.records.pop(appointment_id, None) is not None

    def _sorted(self, items: Iterable[Appointment]) -> list[Appointment]:
        return sorted(items, key=lambda a: a.appointment_datetime)

    async def find_all(self) -> list[Appointment]:
        return self._sorted(self.records.values())

    async def find_by_doctor_id_and_date_range(
        self, doctor_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        # Yield so concurrent callers interleave between read and write
        await asyncio.sleep(0)
        return self._sorted(
            a
            for a in self.records.values()
            if a.doctor_id == doctor_id and start <= a.appointment_datetime < end
        )

    async def find_by_status(self, status: AppointmentStatus) -> list[Appointment]:
        return self._sorted(a for a in self.records.values() if a.status == status)

    async def find_by_patient_id_and_status(self, patient_id, statuses) -> list[Appointment]:
        wanted = set(statuses)
        return self._sorted(
            a for a in self.records.values() if a.patient_id == patient_id and a.status in wanted
        )

    async def find_by_doctor_id_and_status(self, doctor_id, statuses) -> list[Appointment]:
        wanted = set(statuses)
        return self._sorted(
            a for a in self.records.values() if a.doctor_id == doctor_id and a.status in wanted
        )

    async def count_by_status(self) -> dict[AppointmentStatus, int]:
        counts = {status: 0 for status in AppointmentStatus}
        for appointment in self.records.values():
            counts[appointment.status] += 1
        return counts

    async def find_by_date_range(self, start, end, status=None) -> list[Appointment]:
        return self._sorted(
            a
            for a in self.records.values()
            if start <= a.appointment_datetime < end and (status is None or a.status == status)
        )

    @asynccontextmanager
    async def doctor_day_lock(self, doctor_id: str, day: date) -> AsyncIterator[None]:
        async with self._locks[(doctor_id, day)]:
            yield


class FakePatientValidator:
    def __init__(self, patients: dict[str, PatientSnapshot]):
        self.patients = patients
        self.calls: list[str] = []

    async def validate_patient(self, patient_id: str) -> PatientSnapshot:
        self.calls.append(patient_id)
        if patient_id not in self.patients:
            raise PatientNotFoundException(patient_id)
        return self.patients[patient_id]


class FakeDoctorValidator:
    def __init__(self, doctors: dict[str, DoctorSnapshot]):
        self.doctors = doctors
        self.calls: list[str] = []

    async def fetch_doctor(self, doctor_id: str) -> DoctorSnapshot:
        self.calls.append(doctor_id)
        if doctor_id not in self.doctors:
            raise DoctorNotFoundException(doctor_id)
        return self.doctors[doctor_id]


class RecordingNotifier:
    """Collects notifications; raises on every call when ``fail`` is set."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def notify(
        self, kind, recipient_email, patient_name, doctor_name, date, time, reason=None
    ):
        if self.fail:
            raise NotificationFailure("SMTP relay unreachable")
        self.sent.append(
            {
                "kind": kind,
                "recipient_email": recipient_email,
                "patient_name": patient_name,
                "doctor_name": doctor_name,
                "date": date,
                "time": time,
                "reason": reason,
            }
        )

    @property
    def kinds(self) -> list[str]:
        return [entry["kind"].value for entry in self.sent]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def patients() -> dict[str, PatientSnapshot]:
    return {
        "P001": PatientSnapshot(
            id="P001",
            full_name="Jane Roe",
            age=34,
            phone_number="+15550100",
            email="jane.roe@example.com",
        ),
        "P002": PatientSnapshot(
            id="P002",
            full_name="Sam Lee",
            age=51,
            phone_number="+15550199",
            email=None,
        ),
    }


@pytest.fixture
def doctors() -> dict[str, DoctorSnapshot]:
    return {
        "D001": DoctorSnapshot(id="D001", full_name="Dr. Smith", specialization="Cardiology"),
        "D002": DoctorSnapshot(
            id="D002",
            full_name="Dr. Patel",
            specialization="Neurologist",
            department="Neurology",
        ),
    }


@pytest.fixture
def patient_validator(patients) -> FakePatientValidator:
    return FakePatientValidator(patients)


@pytest.fixture
def doctor_validator(doctors) -> FakeDoctorValidator:
    return FakeDoctorValidator(doctors)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(store, patient_validator, doctor_validator, notifier, clock) -> AppointmentService:
    """Appointment service wired to in-memory collaborators."""
    return AppointmentService(
        store,
        patient_validator,
        doctor_validator,
        notifier,
        id_generator=AppointmentIdGenerator(store, rng=random.Random(7)),
        policy=SchedulingPolicy(),
        clock=clock,
    )


@pytest.fixture
def reports(store, clock) -> AppointmentReportService:
    return AppointmentReportService(store, clock=clock)


@pytest.fixture
def make_appointment(store):
    """Insert an appointment straight into the store, bypassing every check."""
    counter = iter(range(9000, 10000))

    def _make(
        start: datetime,
        doctor_id: str = "D001",
        patient_id: str = "P001",
        duration: int = 30,
        status: AppointmentStatus = AppointmentStatus.PENDING,
        **fields,
    ) -> Appointment:
        appointment = Appointment(
            appointment_id=fields.pop("appointment_id", f"APP-{next(counter)}"),
            patient_id=patient_id,
            doctor_id=doctor_id,
            patient_name="Jane Roe",
            doctor_name="Dr. Smith",
            appointment_datetime=start,
            duration=duration,
            status=status,
            created_at=NOW,
            updated_at=NOW,
            **fields,
        )
        return store.add(appointment)

    return _make


@pytest_asyncio.fixture
async def client(service, reports) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by the in-memory store."""
    app.dependency_overrides[get_appointment_service] = lambda: service
    app.dependency_overrides[get_report_service] = lambda: reports

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
