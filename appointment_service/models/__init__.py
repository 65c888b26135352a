"""Database models."""

from appointment_service.models.appointments import appointments, metadata

__all__ = [
    "appointments",
    "metadata",
]
