"""Appointment lifecycle: booking, state transitions and revisits."""

from collections.abc import Callable
from datetime import date, datetime
from typing import Any

import structlog

from appointment_service.config import settings
from appointment_service.core.exceptions import (
    AppointmentNotFoundException,
    InvalidDateFormatException,
    InvalidStateTransitionException,
    MissingRequiredFieldException,
)
from appointment_service.repositories.base import AppointmentStore
from appointment_service.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentStatus,
    AppointmentUpdate,
    RevisitRequest,
)
from appointment_service.schemas.identity import DoctorSnapshot, PatientSnapshot
from appointment_service.services.id_generator import AppointmentIdGenerator
from appointment_service.services.identity_service import DoctorValidator, PatientValidator
from appointment_service.services.notification_service import NotificationKind, Notifier
from appointment_service.services.scheduling import (
    SchedulingPolicy,
    clinic_now,
    day_bounds,
    ensure_slot_available,
    to_clinic_time,
    validate_requested_window,
)

logger = structlog.get_logger(__name__)

SCHEDULE_FIELDS = ("appointment_datetime", "duration", "doctor_id")


def patient_snapshot_fields(patient: PatientSnapshot) -> dict[str, Any]:
    return {
        "patient_name": patient.full_name,
        "patient_email": patient.email,
        "phone_number": patient.phone_number,
        "age": patient.age,
    }


def doctor_snapshot_fields(doctor: DoctorSnapshot) -> dict[str, Any]:
    return {
        "doctor_name": doctor.full_name,
        "department": doctor.department or doctor.specialization,
    }


class AppointmentService:
    """
    Appointment operations.

    Built per request with its collaborators injected. Conflict checks and the
    write that follows run under the store's doctor-day lock; notifications are
    sent after the write and never fail the operation.
    """

    def __init__(
        self,
        repository: AppointmentStore,
        patient_validator: PatientValidator,
        doctor_validator: DoctorValidator,
        notifier: Notifier,
        id_generator: AppointmentIdGenerator | None = None,
        policy: SchedulingPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.patient_validator = patient_validator
        self.doctor_validator = doctor_validator
        self.notifier = notifier
        self.id_generator = id_generator or AppointmentIdGenerator(
            repository,
            prefix=settings.appointment_id_prefix,
            space=settings.appointment_id_space,
        )
        self.policy = policy or SchedulingPolicy.from_settings(settings)
        self.clock = clock or (lambda: clinic_now(settings.clinic_timezone))

    # Queries

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """
        Get appointment by external ID.

        Raises:
            AppointmentNotFoundException: If no appointment has that ID
        """
        appointment = await self.repository.find_by_appointment_id(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundException(appointment_id)
        return appointment

    async def list_appointments(self) -> list[Appointment]:
        return await self.repository.find_all()

    # Booking

    async def create_appointment(self, data: AppointmentCreate) -> Appointment:
        """
        Book a new appointment in PENDING status.

        Args:
            data: Booking request

        Returns:
            Stored appointment

        Raises:
            OutsideWorkingHoursException: If the window breaks the working-hours policy
            PatientNotFoundException: If the patient does not exist
            DoctorNotFoundException: If the doctor does not exist
            SchedulingConflictException: If the doctor is busy at that time
        """
        start = to_clinic_time(data.appointment_datetime, settings.clinic_timezone)
        validate_requested_window(start, data.duration, self.clock(), self.policy)

        patient = await self.patient_validator.validate_patient(data.patient_id)
        doctor = await self.doctor_validator.fetch_doctor(data.doctor_id)

        async with self.repository.doctor_day_lock(data.doctor_id, start.date()):
            existing = await self._doctor_day(data.doctor_id, start)
            ensure_slot_available(
                doctor.full_name or data.doctor_id,
                start,
                data.duration,
                existing,
                self.policy,
            )

            now = self.clock()
            appointment = Appointment(
                appointment_id=await self.id_generator.generate(),
                patient_id=data.patient_id,
                doctor_id=data.doctor_id,
                appointment_datetime=start,
                duration=data.duration,
                reason=data.reason,
                symptoms=data.symptoms,
                additional_notes=data.additional_notes,
                status=AppointmentStatus.PENDING,
                created_at=now,
                updated_at=now,
                **patient_snapshot_fields(patient),
                **doctor_snapshot_fields(doctor),
            )
            saved = await self.repository.save(appointment)

        logger.info(
            "appointment_created",
            appointment_id=saved.appointment_id,
            patient_id=saved.patient_id,
            doctor_id=saved.doctor_id,
            appointment_datetime=saved.appointment_datetime.isoformat(),
        )
        await self._notify(NotificationKind.BOOKED, saved)
        return saved

    async def update_appointment(
        self,
        appointment_id: str,
        data: AppointmentUpdate,
    ) -> Appointment:
        """
        Partially update an appointment. Status is left untouched.

        Changing the time window or the doctor reruns the working-hours and
        conflict checks and is only allowed while the appointment is active.
        Changing the patient or the doctor refreshes the snapshot.

        Raises:
            AppointmentNotFoundException: If no appointment has that ID
            InvalidStateTransitionException: If rescheduling a finished appointment
        """
        current = await self.get_appointment(appointment_id)

        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }
        if not changes:
            return current

        if "appointment_datetime" in changes:
            changes["appointment_datetime"] = to_clinic_time(
                changes["appointment_datetime"], settings.clinic_timezone
            )

        if changes.get("patient_id", current.patient_id) != current.patient_id:
            patient = await self.patient_validator.validate_patient(changes["patient_id"])
            changes.update(patient_snapshot_fields(patient))

        if changes.get("doctor_id", current.doctor_id) != current.doctor_id:
            doctor = await self.doctor_validator.fetch_doctor(changes["doctor_id"])
            changes.update(doctor_snapshot_fields(doctor))

        schedule_changed = any(
            field in changes and changes[field] != getattr(current, field)
            for field in SCHEDULE_FIELDS
        )
        if not schedule_changed:
            saved = await self.repository.save(self._apply(current, changes))
            logger.info("appointment_updated", appointment_id=appointment_id)
            return saved

        self._ensure_active(current, "update")
        start = changes.get("appointment_datetime", current.appointment_datetime)
        duration = changes.get("duration", current.duration)
        doctor_id = changes.get("doctor_id", current.doctor_id)
        validate_requested_window(start, duration, self.clock(), self.policy)

        async with self.repository.doctor_day_lock(doctor_id, start.date()):
            current = await self.get_appointment(appointment_id)
            self._ensure_active(current, "update")
            existing = await self._doctor_day(doctor_id, start)
            ensure_slot_available(
                changes.get("doctor_name", current.doctor_name) or doctor_id,
                start,
                duration,
                existing,
                self.policy,
                exclude_appointment_id=appointment_id,
            )
            saved = await self.repository.save(self._apply(current, changes))

        logger.info(
            "appointment_updated",
            appointment_id=appointment_id,
            appointment_datetime=saved.appointment_datetime.isoformat(),
            doctor_id=saved.doctor_id,
        )
        return saved

    async def delete_appointment(self, appointment_id: str) -> None:
        """
        Permanently remove an appointment regardless of status.

        Raises:
            AppointmentNotFoundException: If no appointment has that ID
        """
        if not await self.repository.delete_by_appointment_id(appointment_id):
            raise AppointmentNotFoundException(appointment_id)
        logger.info("appointment_deleted", appointment_id=appointment_id)

    # Transitions

    async def confirm_appointment(self, appointment_id: str) -> Appointment:
        current = await self.get_appointment(appointment_id)
        self._ensure_active(current, "confirm")

        saved = await self.repository.save(
            self._apply(current, {"status": AppointmentStatus.CONFIRMED})
        )
        logger.info("appointment_confirmed", appointment_id=appointment_id)
        await self._notify(NotificationKind.CONFIRMED, saved)
        return saved

    async def cancel_appointment(self, appointment_id: str, reason: str | None) -> Appointment:
        """
        Cancel an active appointment and record why.

        Raises:
            MissingRequiredFieldException: If no reason is given
            InvalidStateTransitionException: If the appointment is finished
        """
        if not reason or not reason.strip():
            raise MissingRequiredFieldException("reason")

        current = await self.get_appointment(appointment_id)
        self._ensure_active(current, "cancel")

        saved = await self.repository.save(
            self._apply(
                current,
                {
                    "status": AppointmentStatus.CANCELLED,
                    "cancellation_reason": reason.strip(),
                },
            )
        )
        logger.info(
            "appointment_cancelled",
            appointment_id=appointment_id,
            reason=saved.cancellation_reason,
        )
        await self._notify(NotificationKind.CANCELLED, saved, reason=saved.cancellation_reason)
        return saved

    async def reschedule_appointment(
        self,
        appointment_id: str,
        new_datetime: datetime | None,
    ) -> Appointment:
        """
        Move an active appointment to a new start, keeping its duration.

        Raises:
            MissingRequiredFieldException: If no new start is given
            InvalidStateTransitionException: If the appointment is finished
            OutsideWorkingHoursException: If the new window breaks the policy
            SchedulingConflictException: If the doctor is busy at the new time
        """
        if new_datetime is None:
            raise MissingRequiredFieldException("new_datetime")

        current = await self.get_appointment(appointment_id)
        self._ensure_active(current, "reschedule")

        start = to_clinic_time(new_datetime, settings.clinic_timezone)
        validate_requested_window(start, current.duration, self.clock(), self.policy)

        async with self.repository.doctor_day_lock(current.doctor_id, start.date()):
            current = await self.get_appointment(appointment_id)
            self._ensure_active(current, "reschedule")
            existing = await self._doctor_day(current.doctor_id, start)
            ensure_slot_available(
                current.doctor_name or current.doctor_id,
                start,
                current.duration,
                existing,
                self.policy,
                exclude_appointment_id=appointment_id,
            )
            saved = await self.repository.save(
                self._apply(
                    current,
                    {
                        "appointment_datetime": start,
                        "status": AppointmentStatus.RESCHEDULED,
                    },
                )
            )

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment_id,
            appointment_datetime=start.isoformat(),
        )
        await self._notify(NotificationKind.RESCHEDULED, saved)
        return saved

    async def mark_completed(self, appointment_id: str) -> Appointment:
        current = await self.get_appointment(appointment_id)
        self._ensure_active(current, "complete")

        saved = await self.repository.save(
            self._apply(current, {"status": AppointmentStatus.COMPLETED})
        )
        logger.info("appointment_completed", appointment_id=appointment_id)
        await self._notify(NotificationKind.COMPLETED, saved)
        return saved

    async def create_revisit(self, appointment_id: str, request: RevisitRequest) -> Appointment:
        """
        Book a follow-up of an existing appointment as a new PENDING record.

        The original appointment is left unchanged whatever its status. The
        follow-up keeps the original's duration unless one is given.

        Args:
            appointment_id: External ID of the original appointment
            request: Follow-up reason, date (YYYY-MM-DD) and time (HH:MM)

        Raises:
            MissingRequiredFieldException: If reason, date or time is missing
            InvalidDateFormatException: If date or time cannot be parsed
            SchedulingConflictException: If the doctor is busy at that time
        """
        for field in ("reason", "new_date", "new_time"):
            value = getattr(request, field)
            if value is None or not value.strip():
                raise MissingRequiredFieldException(field)

        original = await self.get_appointment(appointment_id)
        start = parse_revisit_start(request.new_date, request.new_time)
        duration = request.duration or original.duration
        validate_requested_window(start, duration, self.clock(), self.policy)

        patient = await self.patient_validator.validate_patient(original.patient_id)
        doctor = await self.doctor_validator.fetch_doctor(original.doctor_id)

        async with self.repository.doctor_day_lock(original.doctor_id, start.date()):
            existing = await self._doctor_day(original.doctor_id, start)
            ensure_slot_available(
                doctor.full_name or original.doctor_id,
                start,
                duration,
                existing,
                self.policy,
            )

            now = self.clock()
            revisit = Appointment(
                appointment_id=await self.id_generator.generate(),
                patient_id=original.patient_id,
                doctor_id=original.doctor_id,
                appointment_datetime=start,
                duration=duration,
                reason=request.reason,
                status=AppointmentStatus.PENDING,
                revisit_reason=request.reason,
                previous_appointment_id=original.appointment_id,
                created_at=now,
                updated_at=now,
                **patient_snapshot_fields(patient),
                **doctor_snapshot_fields(doctor),
            )
            saved = await self.repository.save(revisit)

        logger.info(
            "revisit_created",
            appointment_id=saved.appointment_id,
            previous_appointment_id=original.appointment_id,
            appointment_datetime=start.isoformat(),
        )
        await self._notify(NotificationKind.REVISIT, saved, reason=request.reason)
        return saved

    # Helpers

    async def _doctor_day(self, doctor_id: str, moment: datetime) -> list[Appointment]:
        start, end = day_bounds(moment)
        return await self.repository.find_by_doctor_id_and_date_range(doctor_id, start, end)

    @staticmethod
    def _ensure_active(appointment: Appointment, operation: str) -> None:
        if appointment.is_terminal:
            raise InvalidStateTransitionException(
                appointment.appointment_id,
                appointment.status.value,
                operation,
            )

    def _apply(self, appointment: Appointment, changes: dict[str, Any]) -> Appointment:
        # updated_at never moves backwards, even if the clock does
        updated_at = max(self.clock(), appointment.updated_at)
        return appointment.model_copy(update={**changes, "updated_at": updated_at})

    async def _notify(
        self,
        kind: NotificationKind,
        appointment: Appointment,
        reason: str | None = None,
    ) -> None:
        moment = appointment.appointment_datetime
        try:
            await self.notifier.notify(
                kind,
                appointment.patient_email,
                appointment.patient_name,
                appointment.doctor_name,
                date=f"{moment:%d %b %Y}",
                time=f"{moment:%I:%M %p}",
                reason=reason,
            )
        except Exception as e:
            # Log error but don't fail the request
            logger.warning(
                "notification_failed",
                kind=kind.value,
                appointment_id=appointment.appointment_id,
                error=str(e),
            )


def parse_revisit_start(new_date: str, new_time: str) -> datetime:
    """
    Combine ``YYYY-MM-DD`` and ``HH:MM`` into a naive clinic datetime.

    Raises:
        InvalidDateFormatException: If either part is malformed
    """
    try:
        day = date.fromisoformat(new_date.strip())
    except ValueError as e:
        raise InvalidDateFormatException(
            f"Invalid date '{new_date}', expected YYYY-MM-DD"
        ) from e

    try:
        clock_time = datetime.strptime(new_time.strip(), "%H:%M").time()
    except ValueError as e:
        raise InvalidDateFormatException(
            f"Invalid time '{new_time}', expected HH:MM"
        ) from e

    return datetime.combine(day, clock_time)
