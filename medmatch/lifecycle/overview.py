"""Per-clinic and per-doctor engagement summaries."""

import sqlite3

from pydantic import BaseModel, ConfigDict

from medmatch.core import db
from medmatch.core.errors import NotFound
from medmatch.core.schemas import Pitch, PitchStatus, RequirementStatus

RECENT_LIMIT = 5


class ClinicOverview(BaseModel):
    model_config = ConfigDict(frozen=True)

    clinic_id: str
    total_requirements: int
    requirements_by_status: dict[RequirementStatus, int]
    total_pitches: int
    pitches_by_status: dict[PitchStatus, int]
    recent_pitches: list[Pitch]
    total_connections: int


class DoctorOverview(BaseModel):
    model_config = ConfigDict(frozen=True)

    doctor_id: str
    total_applications: int
    applications_by_status: dict[PitchStatus, int]
    recent_applications: list[Pitch]
    total_connections: int
    available_jobs: int


def clinic_overview(conn: sqlite3.Connection, clinic_id: str) -> ClinicOverview:
    """Summarize a clinic's requirements, incoming pitches and connections."""
    if db.get_clinic(conn, clinic_id) is None:
        msg = f"Clinic '{clinic_id}' not found"
        raise NotFound(msg)
    requirements = db.list_requirements(conn, clinic_id=clinic_id)
    by_status = dict.fromkeys(RequirementStatus, 0)
    for r in requirements:
        by_status[r.status] += 1
    pitches_by_status = db.count_pitches_by_status(conn, clinic_id=clinic_id)
    return ClinicOverview(
        clinic_id=clinic_id,
        total_requirements=len(requirements),
        requirements_by_status=by_status,
        total_pitches=sum(pitches_by_status.values()),
        pitches_by_status=pitches_by_status,
        recent_pitches=db.list_pitches(conn, clinic_id=clinic_id, limit=RECENT_LIMIT),
        total_connections=len(db.list_connections(conn, clinic_id=clinic_id)),
    )


def doctor_overview(conn: sqlite3.Connection, doctor_id: str) -> DoctorOverview:
    """Summarize a doctor's applications, connections and the open job market."""
    if db.get_doctor(conn, doctor_id) is None:
        msg = f"Doctor '{doctor_id}' not found"
        raise NotFound(msg)
    by_status = db.count_pitches_by_status(conn, doctor_id=doctor_id)
    return DoctorOverview(
        doctor_id=doctor_id,
        total_applications=sum(by_status.values()),
        applications_by_status=by_status,
        recent_applications=db.list_pitches(conn, doctor_id=doctor_id, limit=RECENT_LIMIT),
        total_connections=len(db.list_connections(conn, doctor_id=doctor_id)),
        available_jobs=len(db.list_requirements(conn, status=RequirementStatus.POSTED)),
    )
