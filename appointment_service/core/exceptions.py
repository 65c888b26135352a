"""Custom application exceptions."""

from datetime import datetime
from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class ServiceUnavailableException(AppException):
    """Upstream dependency unavailable exception."""

    def __init__(self, message: str = "Service unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


# Not found


class PatientNotFoundException(NotFoundException):
    """Patient lookup returned no record."""

    def __init__(self, patient_id: str):
        self.patient_id = patient_id
        super().__init__(f"Patient not found with id: {patient_id}")


class DoctorNotFoundException(NotFoundException):
    """Doctor lookup returned no record."""

    def __init__(self, doctor_id: str):
        self.doctor_id = doctor_id
        super().__init__(f"Doctor not found with id: {doctor_id}")


class AppointmentNotFoundException(NotFoundException):
    """No appointment stored under the given external id."""

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment not found with id: {appointment_id}")


# Validation


class OutsideWorkingHoursException(BadRequestException):
    """Requested window falls outside the clinic's working hours."""


class AppointmentInPastException(OutsideWorkingHoursException):
    """Requested start is not in the future."""

    def __init__(self, message: str = "Appointment time must be in the future"):
        super().__init__(message)


class InvalidDateFormatException(BadRequestException):
    """Malformed date or time input."""


class MissingRequiredFieldException(BadRequestException):
    """A field needed by the operation was not supplied."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidStatusException(BadRequestException):
    """Unknown appointment status value."""


# Conflict


class SchedulingConflictException(ConflictException):
    """Requested window overlaps a buffered appointment of the same doctor."""

    def __init__(self, message: str, suggested_slot: datetime | None = None):
        self.suggested_slot = suggested_slot
        details = {"suggested_slot": suggested_slot.isoformat()} if suggested_slot else None
        super().__init__(message, details=details)


class InvalidStateTransitionException(ConflictException):
    """Operation is not allowed from the appointment's current status."""

    def __init__(self, appointment_id: str, current_status: str, operation: str):
        self.appointment_id = appointment_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} appointment {appointment_id} in status {current_status}",
            details={"status": current_status, "operation": operation},
        )


# External collaborators


class ExternalServiceUnavailableException(ServiceUnavailableException):
    """Transport failure talking to a remote identity service."""

    def __init__(self, service: str, reason: str):
        self.service = service
        super().__init__(f"{service} service unavailable: {reason}")


class NotificationFailure(AppException):
    """Notification could not be delivered. Logged, never surfaced to callers."""

    def __init__(self, message: str = "Notification delivery failed"):
        super().__init__(message, status_code=500)
