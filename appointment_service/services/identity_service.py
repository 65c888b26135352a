"""Lookups against the remote patient and doctor services."""

import httpx
import structlog

from appointment_service.config import settings
from appointment_service.core.exceptions import (
    DoctorNotFoundException,
    ExternalServiceUnavailableException,
    PatientNotFoundException,
)
from appointment_service.core.redis_client import CacheManager
from appointment_service.schemas.identity import DoctorSnapshot, PatientEnvelope, PatientSnapshot

logger = structlog.get_logger(__name__)


class PatientValidator:
    """Confirm a patient exists and fetch their display snapshot."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.patient_service_url).rstrip("/")
        self.timeout = timeout or settings.external_service_timeout
        self.transport = transport

    async def validate_patient(self, patient_id: str) -> PatientSnapshot:
        """
        Fetch the patient record.

        Args:
            patient_id: Patient ID in the patient service

        Returns:
            Patient snapshot

        Raises:
            PatientNotFoundException: On 404, an unsuccessful envelope or an empty record
            ExternalServiceUnavailableException: On transport errors, timeouts or 5xx
        """
        url = f"{self.base_url}/patient/{patient_id}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.error("patient_lookup_failed", patient_id=patient_id, error=str(e))
            raise ExternalServiceUnavailableException("Patient", str(e)) from e

        if response.status_code >= 500:
            logger.error(
                "patient_lookup_failed",
                patient_id=patient_id,
                status_code=response.status_code,
            )
            raise ExternalServiceUnavailableException("Patient", f"HTTP {response.status_code}")

        if response.status_code != 200:
            raise PatientNotFoundException(patient_id)

        try:
            envelope = PatientEnvelope.model_validate(response.json())
        except ValueError as e:
            logger.warning("patient_lookup_malformed", patient_id=patient_id, error=str(e))
            raise PatientNotFoundException(patient_id) from e

        if not envelope.success or envelope.data is None:
            raise PatientNotFoundException(patient_id)

        return envelope.data


class DoctorValidator:
    """Fetch doctor snapshots, falling back to the Redis cache when the service is down."""

    # Cache TTL in seconds
    DOCTOR_CACHE_TTL = 900  # 15 minutes

    def __init__(
        self,
        cache_manager: CacheManager | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cache = cache_manager
        self.base_url = (base_url or settings.doctor_service_url).rstrip("/")
        self.timeout = timeout or settings.external_service_timeout
        self.transport = transport

    @staticmethod
    def _get_doctor_cache_key(doctor_id: str) -> str:
        """Generate cache key for doctor."""
        return f"doctor:{doctor_id}"

    async def fetch_doctor(self, doctor_id: str) -> DoctorSnapshot:
        """
        Fetch the doctor record.

        A successful lookup refreshes the fallback cache. When the remote call
        fails outright, a cached copy is served instead; its freshness is not
        guaranteed.

        Raises:
            DoctorNotFoundException: On 404, an empty body, or a failed lookup
                with nothing cached
        """
        url = f"{self.base_url}/doctor/{doctor_id}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            return self._from_cache(doctor_id, str(e))

        if response.status_code >= 500:
            return self._from_cache(doctor_id, f"HTTP {response.status_code}")

        if response.status_code != 200 or not response.content:
            raise DoctorNotFoundException(doctor_id)

        try:
            payload = response.json()
            if not payload:
                raise DoctorNotFoundException(doctor_id)
            doctor = DoctorSnapshot.model_validate(payload)
        except ValueError as e:
            logger.warning("doctor_lookup_malformed", doctor_id=doctor_id, error=str(e))
            raise DoctorNotFoundException(doctor_id) from e

        if self.cache:
            self.cache.set_json(
                self._get_doctor_cache_key(doctor_id),
                doctor.model_dump(mode="json"),
                ttl=self.DOCTOR_CACHE_TTL,
            )

        return doctor

    def _from_cache(self, doctor_id: str, reason: str) -> DoctorSnapshot:
        cached = self.cache.get_json(self._get_doctor_cache_key(doctor_id)) if self.cache else None
        if not cached:
            logger.error("doctor_lookup_failed", doctor_id=doctor_id, error=reason)
            raise DoctorNotFoundException(doctor_id)

        logger.warning("doctor_lookup_degraded", doctor_id=doctor_id, error=reason)
        return DoctorSnapshot.model_validate(cached)
