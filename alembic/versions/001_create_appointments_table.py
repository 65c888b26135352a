"""Create appointments table.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    # gen_random_uuid()
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "appointments",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("appointment_id", sa.VARCHAR(length=32), nullable=False),
        sa.Column("patient_id", sa.Text(), nullable=False),
        sa.Column("doctor_id", sa.Text(), nullable=False),
        sa.Column("patient_name", sa.Text(), nullable=True),
        sa.Column("patient_email", sa.Text(), nullable=True),
        sa.Column("doctor_name", sa.Text(), nullable=True),
        sa.Column("department", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.VARCHAR(length=32), nullable=True),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("appointment_datetime", postgresql.TIMESTAMP(timezone=False), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("symptoms", sa.Text(), nullable=True),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="PENDING", nullable=False),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("revisit_reason", sa.Text(), nullable=True),
        sa.Column("previous_appointment_id", sa.VARCHAR(length=32), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=False),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=False),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.CheckConstraint("duration > 0", name="appointments_duration_check"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'RESCHEDULED', 'REVISIT', 'COMPLETED', 'CANCELLED')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "cancellation_reason IS NULL OR status = 'CANCELLED'",
            name="appointments_cancellation_reason_check",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("appointment_id", name="appointments_appointment_id_key"),
    )

    op.create_index(
        "ix_appointments_doctor_datetime", "appointments", ["doctor_id", "appointment_datetime"]
    )
    op.create_index("ix_appointments_patient_status", "appointments", ["patient_id", "status"])
    op.create_index("ix_appointments_status", "appointments", ["status"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_patient_status", table_name="appointments")
    op.drop_index("ix_appointments_doctor_datetime", table_name="appointments")

    op.drop_table("appointments")
