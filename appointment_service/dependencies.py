"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_service.core.redis_client import CacheManager, get_redis_client
from appointment_service.database import get_db
from appointment_service.repositories.appointment_repository import AppointmentRepository
from appointment_service.repositories.base import AppointmentStore
from appointment_service.services.appointment_service import AppointmentService
from appointment_service.services.identity_service import DoctorValidator, PatientValidator
from appointment_service.services.notification_service import EmailNotificationService, Notifier
from appointment_service.services.report_service import AppointmentReportService

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def get_cache_manager() -> CacheManager:
    return CacheManager(get_redis_client())


def get_appointment_repository(db: DatabaseSession) -> AppointmentStore:
    return AppointmentRepository(db)


def get_patient_validator() -> PatientValidator:
    return PatientValidator()


def get_doctor_validator(
    cache: Annotated[CacheManager, Depends(get_cache_manager)],
) -> DoctorValidator:
    return DoctorValidator(cache_manager=cache)


def get_notifier() -> Notifier:
    return EmailNotificationService()


AppointmentStoreDep = Annotated[AppointmentStore, Depends(get_appointment_repository)]


def get_appointment_service(
    repository: AppointmentStoreDep,
    patient_validator: Annotated[PatientValidator, Depends(get_patient_validator)],
    doctor_validator: Annotated[DoctorValidator, Depends(get_doctor_validator)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> AppointmentService:
    """Build the appointment service for one request."""
    return AppointmentService(repository, patient_validator, doctor_validator, notifier)


def get_report_service(repository: AppointmentStoreDep) -> AppointmentReportService:
    return AppointmentReportService(repository)


# Type aliases for dependency injection
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
ReportServiceDep = Annotated[AppointmentReportService, Depends(get_report_service)]
