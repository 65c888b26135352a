"""Working-hours policy, buffered conflict detection and slot suggestion.

All datetimes handled here are naive wall-clock times in the clinic's
timezone. Aware datetimes coming in from the API are converted with
:func:`to_clinic_time` before they reach any of the checks below.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from appointment_service.config import Settings
from appointment_service.core.exceptions import (
    AppointmentInPastException,
    BadRequestException,
    OutsideWorkingHoursException,
    SchedulingConflictException,
)
from appointment_service.schemas.appointments import Appointment, AppointmentStatus


@dataclass(frozen=True)
class SchedulingPolicy:
    """Clinic-wide scheduling constants."""

    working_hour_start: int = 9
    working_hour_end: int = 17
    buffer_minutes: int = 30
    lunch_hour: int = 12

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulingPolicy":
        return cls(
            working_hour_start=settings.working_hour_start,
            working_hour_end=settings.working_hour_end,
            buffer_minutes=settings.buffer_minutes,
        )

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=self.buffer_minutes)


def to_clinic_time(moment: datetime, timezone_name: str) -> datetime:
    """Convert an aware datetime to naive clinic time. Naive input is returned as is."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(timezone_name)).replace(tzinfo=None)


def clinic_now(timezone_name: str) -> datetime:
    """Current naive wall-clock time at the clinic."""
    return datetime.now(ZoneInfo(timezone_name)).replace(tzinfo=None, microsecond=0)


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Local midnight of ``moment``'s day and the following midnight."""
    start = datetime.combine(moment.date(), time.min)
    return start, start + timedelta(days=1)


def validate_requested_window(
    start: datetime,
    duration: int,
    now: datetime,
    policy: SchedulingPolicy,
) -> datetime:
    """
    Check a requested window against the working-hours policy.

    Args:
        start: Requested start (naive clinic time)
        duration: Length in minutes
        now: Current clinic time
        policy: Scheduling policy

    Returns:
        The computed end of the window

    Raises:
        AppointmentInPastException: If start is not strictly in the future
        OutsideWorkingHoursException: If the window starts before opening,
            ends at or after closing, or runs past midnight
    """
    if duration <= 0:
        raise BadRequestException("Duration must be a positive number of minutes")

    if start <= now:
        raise AppointmentInPastException()

    end = start + timedelta(minutes=duration)
    if (
        start.hour < policy.working_hour_start
        or end.hour >= policy.working_hour_end
        or end.date() != start.date()
    ):
        raise OutsideWorkingHoursException(
            f"Appointments must start at or after {policy.working_hour_start:02d}:00 "
            f"and end before {policy.working_hour_end:02d}:00"
        )
    return end


def buffered_interval(
    appointment: Appointment,
    policy: SchedulingPolicy,
) -> tuple[datetime, datetime]:
    """Existing appointment widened by the buffer on both sides."""
    return (
        appointment.appointment_datetime - policy.buffer,
        appointment.end_datetime + policy.buffer,
    )


def _blocking(
    existing: Iterable[Appointment],
    exclude_appointment_id: str | None,
) -> list[Appointment]:
    return sorted(
        (
            a
            for a in existing
            if a.status != AppointmentStatus.CANCELLED
            and a.appointment_id != exclude_appointment_id
        ),
        key=lambda a: a.appointment_datetime,
    )


def find_conflict(
    start: datetime,
    end: datetime,
    existing: Iterable[Appointment],
    policy: SchedulingPolicy,
    exclude_appointment_id: str | None = None,
) -> Appointment | None:
    """
    First appointment whose buffered interval intersects ``[start, end)``.

    Cancelled appointments never block. ``exclude_appointment_id`` skips the
    appointment being moved.
    """
    for appointment in _blocking(existing, exclude_appointment_id):
        buffered_start, buffered_end = buffered_interval(appointment, policy)
        if start < buffered_end and end > buffered_start:
            return appointment
    return None


def round_up_to_hour(moment: datetime) -> datetime:
    floored = moment.replace(minute=0, second=0, microsecond=0)
    return floored if floored == moment else floored + timedelta(hours=1)


def _skip_lunch_hour(moment: datetime, policy: SchedulingPolicy) -> datetime:
    if moment.hour == policy.lunch_hour:
        return moment.replace(hour=policy.lunch_hour + 1)
    return moment


def suggest_next_slot(
    conflict: Appointment,
    duration: int,
    existing: Iterable[Appointment],
    policy: SchedulingPolicy,
    exclude_appointment_id: str | None = None,
) -> datetime:
    """
    Next whole-hour start after ``conflict``'s buffered end.

    A suggestion at the lunch hour moves one hour later. When the suggestion
    still collides with another appointment that day, the search continues
    from that appointment's buffered end.
    """
    candidates = _blocking(existing, exclude_appointment_id)
    blocking: Appointment | None = conflict
    suggestion = conflict.appointment_datetime

    # Each round moves strictly later, so at most one round per candidate.
    for _ in range(len(candidates) + 1):
        if blocking is None:
            break
        _, buffered_end = buffered_interval(blocking, policy)
        suggestion = _skip_lunch_hour(round_up_to_hour(buffered_end), policy)
        blocking = find_conflict(
            suggestion,
            suggestion + timedelta(minutes=duration),
            candidates,
            policy,
        )
    return suggestion


def format_slot(moment: datetime) -> str:
    """Render as e.g. ``Oct 20, 2026 1:00 PM``."""
    hour = moment.hour % 12 or 12
    return f"{moment:%b %d, %Y} {hour}:{moment:%M %p}"


def ensure_slot_available(
    doctor_name: str,
    start: datetime,
    duration: int,
    existing: Iterable[Appointment],
    policy: SchedulingPolicy,
    exclude_appointment_id: str | None = None,
) -> None:
    """
    Raise if the requested window collides with the doctor's schedule.

    Raises:
        SchedulingConflictException: Carrying the suggested next slot
    """
    existing = list(existing)
    end = start + timedelta(minutes=duration)
    conflict = find_conflict(start, end, existing, policy, exclude_appointment_id)
    if conflict is None:
        return

    suggestion = suggest_next_slot(conflict, duration, existing, policy, exclude_appointment_id)
    raise SchedulingConflictException(
        f"Doctor {doctor_name} is not available at the requested time. "
        f"Next available slot: {format_slot(suggestion)}",
        suggested_slot=suggestion,
    )
