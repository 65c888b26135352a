"""Patient and doctor records returned by the remote identity services."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class IdentitySchema(BaseModel):
    """Accept both camelCase (remote services) and snake_case (cache) keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PatientSnapshot(IdentitySchema):
    """Patient display data copied onto appointments."""

    id: str | None = None
    full_name: str | None = None
    age: int | None = None
    phone_number: str | None = None
    email: str | None = None


class DoctorSnapshot(IdentitySchema):
    """Doctor display data copied onto appointments."""

    id: str | None = None
    full_name: str | None = None
    specialization: str | None = None
    department: str | None = None
    contact_number: str | None = None
    email: str | None = None


class PatientEnvelope(IdentitySchema):
    """Response wrapper used by the patient service."""

    success: bool = False
    message: str | None = None
    data: PatientSnapshot | None = None
