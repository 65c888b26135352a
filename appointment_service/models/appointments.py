"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

# Metadata for all tables
metadata = MetaData()

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    # Internal storage key, never exposed as the appointment's identity
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    # External identity (APP-####)
    Column("appointment_id", VARCHAR(32), nullable=False, unique=True),
    # References to remote patient / doctor services
    Column("patient_id", Text, nullable=False),
    Column("doctor_id", Text, nullable=False),
    # Snapshot fields (denormalized at write time)
    Column("patient_name", Text, nullable=True),
    Column("patient_email", Text, nullable=True),
    Column("doctor_name", Text, nullable=True),
    Column("department", Text, nullable=True),
    Column("phone_number", VARCHAR(32), nullable=True),
    Column("age", Integer, nullable=True),
    # Scheduling (clinic wall-clock time)
    Column("appointment_datetime", TIMESTAMP(timezone=False), nullable=False),
    Column("duration", Integer, nullable=False),
    # Clinical details
    Column("reason", Text, nullable=True),
    Column("symptoms", Text, nullable=True),
    Column("additional_notes", Text, nullable=True),
    # Lifecycle
    Column("status", Text, nullable=False, server_default="PENDING"),
    Column("cancellation_reason", Text, nullable=True),
    Column("revisit_reason", Text, nullable=True),
    Column("previous_appointment_id", VARCHAR(32), nullable=True),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=False), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=False), nullable=False, server_default=text("NOW()")),
    # Constraints
    CheckConstraint("duration > 0", name="appointments_duration_check"),
    CheckConstraint(
        "status IN ('PENDING', 'CONFIRMED', 'RESCHEDULED', 'REVISIT', 'COMPLETED', 'CANCELLED')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "cancellation_reason IS NULL OR status = 'CANCELLED'",
        name="appointments_cancellation_reason_check",
    ),
    Index("ix_appointments_doctor_datetime", "doctor_id", "appointment_datetime"),
    Index("ix_appointments_patient_status", "patient_id", "status"),
    Index("ix_appointments_status", "status"),
)
