"""Candidate source backed by the engine's SQLite database."""

import sqlite3

from medmatch.core import db
from medmatch.core.schemas import Clinic, Doctor, RequirementListing
from medmatch.sources.base import CandidateSource


class SqliteSource(CandidateSource):
    """Reads candidates straight from the tables maintained by ``medmatch.core.db``."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @property
    def source_id(self) -> str:
        return "sqlite"

    def fetch_doctors(self) -> list[Doctor]:
        return db.list_doctors(self._conn)

    def fetch_clinics(self) -> list[Clinic]:
        return db.list_clinics(self._conn)

    def fetch_requirement_listings(self) -> list[RequirementListing]:
        return db.list_requirement_listings(self._conn)

    def get_doctor(self, doctor_id: str) -> Doctor | None:
        return db.get_doctor(self._conn, doctor_id)

    def get_clinic(self, clinic_id: str) -> Clinic | None:
        return db.get_clinic(self._conn, clinic_id)

    def applied_requirement_ids(self, doctor_id: str) -> set[str]:
        return db.active_pitch_requirement_ids(self._conn, doctor_id)
