"""Appointment schemas for request/response validation."""

from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    RESCHEDULED = "RESCHEDULED"
    REVISIT = "REVISIT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """Whether no further scheduling transition is permitted."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})
ACTIVE_STATUSES = tuple(s for s in AppointmentStatus if s not in TERMINAL_STATUSES)


class Appointment(BaseModel):
    """Stored appointment record, including the denormalized snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    appointment_id: str

    patient_id: str
    doctor_id: str

    # Snapshot fields
    patient_name: str | None = None
    patient_email: str | None = None
    doctor_name: str | None = None
    department: str | None = None
    phone_number: str | None = None
    age: int | None = None

    appointment_datetime: datetime
    duration: int = Field(..., gt=0)

    reason: str | None = None
    symptoms: str | None = None
    additional_notes: str | None = None

    status: AppointmentStatus = AppointmentStatus.PENDING
    cancellation_reason: str | None = None
    revisit_reason: str | None = None
    previous_appointment_id: str | None = None

    created_at: datetime
    updated_at: datetime

    @property
    def end_datetime(self) -> datetime:
        """Start plus duration."""
        return self.appointment_datetime + timedelta(minutes=self.duration)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    patient_id: str = Field(..., min_length=1, max_length=64)
    doctor_id: str = Field(..., min_length=1, max_length=64)
    appointment_datetime: datetime
    duration: int = Field(default=30, gt=0, le=480, description="Length in minutes")
    reason: str | None = Field(None, max_length=500)
    symptoms: str | None = Field(None, max_length=1000)
    additional_notes: str | None = Field(None, max_length=1000)


class AppointmentUpdate(BaseModel):
    """Schema for editing appointment details. Status is never changed here."""

    patient_id: str | None = Field(None, min_length=1, max_length=64)
    doctor_id: str | None = Field(None, min_length=1, max_length=64)
    appointment_datetime: datetime | None = None
    duration: int | None = Field(None, gt=0, le=480)
    reason: str | None = Field(None, max_length=500)
    symptoms: str | None = Field(None, max_length=1000)
    additional_notes: str | None = Field(None, max_length=1000)


class RescheduleRequest(BaseModel):
    """Schema for moving an appointment to a new start time."""

    new_datetime: datetime | None = None


class CancelRequest(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class RevisitRequest(BaseModel):
    """Schema for booking a follow-up of an existing appointment."""

    reason: str | None = Field(None, max_length=500)
    new_date: str | None = Field(None, description="Format: YYYY-MM-DD")
    new_time: str | None = Field(None, description="Format: HH:MM (24h)")
    duration: int | None = Field(None, gt=0, le=480)


class AppointmentResponse(Appointment):
    """Schema for appointment response."""

    id: UUID | None = Field(default=None, exclude=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def appointment_end_datetime(self) -> datetime:
        return self.end_datetime

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        """Build a response from a stored record."""
        return cls.model_validate(appointment.model_dump())


class AppointmentStats(BaseModel):
    """Per-status appointment counts."""

    total_appointments: int = 0
    pending_appointments: int = 0
    confirmed_appointments: int = 0
    rescheduled_appointments: int = 0
    revisit_appointments: int = 0
    completed_appointments: int = 0
    cancelled_appointments: int = 0
