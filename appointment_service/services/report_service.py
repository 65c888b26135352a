"""Read-only appointment views: upcoming, history, stats and search."""

import calendar
from collections.abc import Callable
from datetime import date, datetime, time, timedelta

from appointment_service.config import settings
from appointment_service.core.exceptions import InvalidDateFormatException, InvalidStatusException
from appointment_service.repositories.base import AppointmentStore
from appointment_service.schemas.appointments import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStats,
    AppointmentStatus,
)
from appointment_service.services.scheduling import clinic_now


def shift_months(day: date, months: int) -> date:
    """Move ``day`` by whole months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def parse_search_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise InvalidDateFormatException(
            f"Invalid {field} '{value}', expected YYYY-MM-DD"
        ) from e


def parse_status(value: str) -> AppointmentStatus:
    try:
        return AppointmentStatus(value.strip().upper())
    except ValueError as e:
        allowed = ", ".join(s.value for s in AppointmentStatus)
        raise InvalidStatusException(
            f"Invalid status '{value}'. Allowed values: {allowed}"
        ) from e


class AppointmentReportService:
    """Derived appointment views. Nothing here writes."""

    SEARCH_WINDOW_MONTHS = 1

    def __init__(
        self,
        repository: AppointmentStore,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.clock = clock or (lambda: clinic_now(settings.clinic_timezone))

    def _upcoming(self, appointments: list[Appointment]) -> list[Appointment]:
        now = self.clock()
        return sorted(
            (a for a in appointments if a.appointment_datetime > now),
            key=lambda a: a.appointment_datetime,
        )

    @staticmethod
    def _newest_first(appointments: list[Appointment]) -> list[Appointment]:
        return sorted(appointments, key=lambda a: a.appointment_datetime, reverse=True)

    async def upcoming_by_patient(self, patient_id: str) -> list[Appointment]:
        """Active appointments of a patient that have not started yet, soonest first."""
        found = await self.repository.find_by_patient_id_and_status(patient_id, ACTIVE_STATUSES)
        return self._upcoming(found)

    async def upcoming_by_doctor(self, doctor_id: str) -> list[Appointment]:
        """Active appointments of a doctor that have not started yet, soonest first."""
        found = await self.repository.find_by_doctor_id_and_status(doctor_id, ACTIVE_STATUSES)
        return self._upcoming(found)

    async def history_by_patient(self, patient_id: str) -> list[Appointment]:
        """Completed and cancelled appointments of a patient, newest first."""
        found = await self.repository.find_by_patient_id_and_status(patient_id, TERMINAL_STATUSES)
        return self._newest_first(found)

    async def history_by_doctor(self, doctor_id: str) -> list[Appointment]:
        found = await self.repository.find_by_doctor_id_and_status(doctor_id, TERMINAL_STATUSES)
        return self._newest_first(found)

    async def completed_by_doctor(self, doctor_id: str) -> list[Appointment]:
        found = await self.repository.find_by_doctor_id_and_status(
            doctor_id, [AppointmentStatus.COMPLETED]
        )
        return self._newest_first(found)

    async def stats(self) -> AppointmentStats:
        counts = await self.repository.count_by_status()
        return AppointmentStats(
            total_appointments=sum(counts.values()),
            pending_appointments=counts.get(AppointmentStatus.PENDING, 0),
            confirmed_appointments=counts.get(AppointmentStatus.CONFIRMED, 0),
            rescheduled_appointments=counts.get(AppointmentStatus.RESCHEDULED, 0),
            revisit_appointments=counts.get(AppointmentStatus.REVISIT, 0),
            completed_appointments=counts.get(AppointmentStatus.COMPLETED, 0),
            cancelled_appointments=counts.get(AppointmentStatus.CANCELLED, 0),
        )

    async def search(
        self,
        status: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[Appointment]:
        """
        Appointments starting between two days, optionally of one status.

        Args:
            status: Status name, case-insensitive
            start_date: First day (YYYY-MM-DD), defaults to one month ago
            end_date: Last day, inclusive (YYYY-MM-DD), defaults to one month ahead

        Returns:
            Matching appointments ordered by start

        Raises:
            InvalidDateFormatException: If a date is malformed or the range is reversed
            InvalidStatusException: If the status is unknown
        """
        status_filter = parse_status(status) if status and status.strip() else None

        today = self.clock().date()
        first_day = (
            parse_search_date(start_date, "start_date")
            if start_date
            else shift_months(today, -self.SEARCH_WINDOW_MONTHS)
        )
        last_day = (
            parse_search_date(end_date, "end_date")
            if end_date
            else shift_months(today, self.SEARCH_WINDOW_MONTHS)
        )
        if first_day > last_day:
            raise InvalidDateFormatException(
                f"start_date {first_day.isoformat()} is after end_date {last_day.isoformat()}"
            )

        return await self.repository.find_by_date_range(
            datetime.combine(first_day, time.min),
            datetime.combine(last_day + timedelta(days=1), time.min),
            status=status_filter,
        )
