"""Core data models for the matching and engagement engine."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Specialization(str, Enum):
    GENERAL_PHYSICIAN = "GENERAL_PHYSICIAN"
    CARDIOLOGIST = "CARDIOLOGIST"
    DERMATOLOGIST = "DERMATOLOGIST"
    ENDOCRINOLOGIST = "ENDOCRINOLOGIST"
    GYNECOLOGIST = "GYNECOLOGIST"
    NEUROSURGEON = "NEUROSURGEON"
    ORTHOPEDIC_SURGEON = "ORTHOPEDIC_SURGEON"
    PLASTIC_SURGEON = "PLASTIC_SURGEON"
    UROLOGIST = "UROLOGIST"
    ENT_SPECIALIST = "ENT_SPECIALIST"
    PEDIATRICIAN = "PEDIATRICIAN"
    PSYCHIATRIST = "PSYCHIATRIST"
    DENTIST = "DENTIST"


class JobType(str, Enum):
    FULLTIME = "FULLTIME"
    PARTTIME = "PARTTIME"
    ONETIME = "ONETIME"


class EntityStatus(str, Enum):
    """Soft status; doctors and clinics are never hard-deleted."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class RequirementStatus(str, Enum):
    POSTED = "POSTED"
    CLOSED = "CLOSED"


class PitchStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"

    @property
    def is_active(self) -> bool:
        """Active pitches block a second application to the same requirement."""
        return self in (PitchStatus.PENDING, PitchStatus.ACCEPTED)

    @property
    def is_terminal(self) -> bool:
        return self is not PitchStatus.PENDING


class PatientStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class EntityKind(str, Enum):
    DOCTOR = "doctor"
    CLINIC = "clinic"
    REQUIREMENT = "requirement"


class Coordinate(BaseModel):
    """A WGS84 point. Range checks happen here, at ingestion."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class Doctor(BaseModel):
    """Supply side: a doctor profile created at onboarding completion."""

    model_config = ConfigDict(frozen=True)

    id: str
    full_name: str
    specialization: Specialization
    experience: int = Field(default=0, ge=0)
    address: str = ""
    coordinate: Coordinate | None = None
    profile_image_url: str | None = None
    status: EntityStatus = EntityStatus.ACTIVE


class Clinic(BaseModel):
    """Demand side: a clinic profile.

    ``active_jobs`` is derived on read from the clinic's POSTED requirements.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    clinic_name: str
    clinic_address: str = ""
    additional_details: str = ""
    owner_name: str = ""
    owner_phone: str = ""
    is_verified: bool = False
    coordinate: Coordinate | None = None
    profile_image_url: str | None = None
    status: EntityStatus = EntityStatus.ACTIVE
    active_jobs: int = Field(default=0, ge=0)


class JobRequirement(BaseModel):
    """A job posted by exactly one clinic. ``applications_count`` is derived."""

    model_config = ConfigDict(frozen=True)

    id: str
    clinic_id: str
    title: str
    description: str = ""
    type: JobType
    specialization: Specialization | None = None
    location: str = ""
    coordinate: Coordinate | None = None
    target_date: date | None = None
    additional_information: str = ""
    status: RequirementStatus = RequirementStatus.POSTED
    created_at: datetime = Field(default_factory=datetime.now)
    applications_count: int = Field(default=0, ge=0)

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "title must not be empty"
            raise ValueError(msg)
        return v.strip()


class RequirementListing(BaseModel):
    """A requirement joined with its owning clinic, as shown to searching doctors."""

    model_config = ConfigDict(frozen=True)

    requirement: JobRequirement
    clinic: Clinic

    @property
    def coordinate(self) -> Coordinate | None:
        """The requirement's own point, falling back to its clinic's."""
        return self.requirement.coordinate or self.clinic.coordinate


class Pitch(BaseModel):
    """A doctor's application to a job requirement."""

    model_config = ConfigDict(frozen=True)

    id: str
    doctor_id: str
    job_requirement_id: str
    message: str
    status: PitchStatus = PitchStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Connection(BaseModel):
    """Working relationship materialized from exactly one ACCEPTED pitch."""

    model_config = ConfigDict(frozen=True)

    id: str
    pitch_id: str
    doctor_id: str
    clinic_id: str
    job_requirement_id: str
    connected_at: datetime


class Located(BaseModel):
    """Wrapper that pairs a frozen entity with its distance from the search origin.

    ``distance_km`` is None only for entities that were never geo-bounded.
    """

    model_config = ConfigDict(frozen=True)

    entity: Doctor | Clinic | RequirementListing
    distance_km: float | None = Field(default=None, ge=0.0)
