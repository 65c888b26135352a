"""Appointment endpoints."""

from fastapi import APIRouter, Query, status

from appointment_service.dependencies import AppointmentServiceDep, ReportServiceDep
from appointment_service.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentResponse,
    AppointmentStats,
    AppointmentUpdate,
    CancelRequest,
    RescheduleRequest,
    RevisitRequest,
)

router = APIRouter()


def _to_responses(items: list[Appointment]) -> list[AppointmentResponse]:
    return [AppointmentResponse.from_appointment(a) for a in items]


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Book a new appointment.

    The patient and doctor are looked up in their services, the time window is
    checked against working hours and the doctor's schedule, and the patient is
    emailed once the booking is stored.

    Args:
        data: Booking request
        service: Appointment service

    Returns:
        Created appointment in PENDING status
    """
    appointment = await service.create_appointment(data)
    return AppointmentResponse.from_appointment(appointment)


@router.get(
    "/",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(service: AppointmentServiceDep) -> list[AppointmentResponse]:
    return _to_responses(await service.list_appointments())


@router.get(
    "/search",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Search appointments by status and date range",
)
async def search_appointments(
    reports: ReportServiceDep,
    status_filter: str | None = Query(None, alias="status"),
    start_date: str | None = Query(None, description="Format: YYYY-MM-DD"),
    end_date: str | None = Query(None, description="Format: YYYY-MM-DD, inclusive"),
) -> list[AppointmentResponse]:
    """
    Search appointments.

    Args:
        reports: Report service
        status_filter: Optional status
        start_date: First day, defaults to one month ago
        end_date: Last day, defaults to one month ahead

    Returns:
        Matching appointments ordered by start
    """
    found = await reports.search(status_filter, start_date, end_date)
    return _to_responses(found)


@router.get(
    "/stats",
    response_model=AppointmentStats,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointment counts per status",
)
async def get_stats(reports: ReportServiceDep) -> AppointmentStats:
    return await reports.stats()


@router.get(
    "/patient/{patient_id}/upcoming",
    response_model=list[AppointmentResponse],
    tags=["Appointments"],
    summary="Upcoming appointments of a patient",
)
async def patient_upcoming(patient_id: str, reports: ReportServiceDep) -> list[AppointmentResponse]:
    return _to_responses(await reports.upcoming_by_patient(patient_id))


@router.get(
    "/patient/{patient_id}/history",
    response_model=list[AppointmentResponse],
    tags=["Appointments"],
    summary="Past appointments of a patient",
)
async def patient_history(patient_id: str, reports: ReportServiceDep) -> list[AppointmentResponse]:
    return _to_responses(await reports.history_by_patient(patient_id))


@router.get(
    "/doctor/{doctor_id}/upcoming",
    response_model=list[AppointmentResponse],
    tags=["Appointments"],
    summary="Upcoming appointments of a doctor",
)
async def doctor_upcoming(doctor_id: str, reports: ReportServiceDep) -> list[AppointmentResponse]:
    return _to_responses(await reports.upcoming_by_doctor(doctor_id))


@router.get(
    "/doctor/{doctor_id}/history",
    response_model=list[AppointmentResponse],
    tags=["Appointments"],
    summary="Past appointments of a doctor",
)
async def doctor_history(doctor_id: str, reports: ReportServiceDep) -> list[AppointmentResponse]:
    return _to_responses(await reports.history_by_doctor(doctor_id))


@router.get(
    "/doctor/{doctor_id}/completed",
    response_model=list[AppointmentResponse],
    tags=["Appointments"],
    summary="Completed appointments of a doctor",
)
async def doctor_completed(doctor_id: str, reports: ReportServiceDep) -> list[AppointmentResponse]:
    return _to_responses(await reports.completed_by_doctor(doctor_id))


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Get a specific appointment by its external ID.

    Raises:
        AppointmentNotFoundException: If no appointment has that ID
    """
    appointment = await service.get_appointment(appointment_id)
    return AppointmentResponse.from_appointment(appointment)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Update appointment details.

    Args:
        appointment_id: Appointment ID
        data: Fields to change; omitted fields are kept
        service: Appointment service

    Returns:
        Updated appointment
    """
    appointment = await service.update_appointment(appointment_id, data)
    return AppointmentResponse.from_appointment(appointment)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> None:
    """Permanently delete an appointment, whatever its status."""
    await service.delete_appointment(appointment_id)


@router.put(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    appointment = await service.confirm_appointment(appointment_id)
    return AppointmentResponse.from_appointment(appointment)


@router.put(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: str,
    data: CancelRequest,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    appointment = await service.cancel_appointment(appointment_id, data.reason)
    return AppointmentResponse.from_appointment(appointment)


@router.put(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: str,
    data: RescheduleRequest,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    appointment = await service.reschedule_appointment(appointment_id, data.new_datetime)
    return AppointmentResponse.from_appointment(appointment)


@router.put(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Mark appointment completed",
)
async def complete_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    appointment = await service.mark_completed(appointment_id)
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/{appointment_id}/revisit",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book follow-up appointment",
)
async def create_revisit(
    appointment_id: str,
    data: RevisitRequest,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Book a follow-up of an existing appointment.

    The original appointment is not modified; the follow-up is a new PENDING
    appointment that points back to it.
    """
    appointment = await service.create_revisit(appointment_id, data)
    return AppointmentResponse.from_appointment(appointment)
