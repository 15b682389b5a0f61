"""Abstract base class for candidate sources."""

from abc import ABC, abstractmethod

from medmatch.core.schemas import Clinic, Doctor, RequirementListing


class CandidateSource(ABC):
    """Bounded read access to everything a search may return.

    A search calls each fetch method at most once; filtering and ranking then
    run in memory on what was fetched.
    """

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Unique identifier for this source (e.g. 'sqlite')."""

    @abstractmethod
    def fetch_doctors(self) -> list[Doctor]:
        """Return every active doctor, in a stable order."""

    @abstractmethod
    def fetch_clinics(self) -> list[Clinic]:
        """Return every active clinic with ``active_jobs`` filled in."""

    @abstractmethod
    def fetch_requirement_listings(self) -> list[RequirementListing]:
        """Return every open requirement joined with its clinic."""

    @abstractmethod
    def get_doctor(self, doctor_id: str) -> Doctor | None:
        """Look up one doctor profile (used for the profile-location fallback)."""

    @abstractmethod
    def get_clinic(self, clinic_id: str) -> Clinic | None:
        """Look up one clinic profile (used for the profile-location fallback)."""

    @abstractmethod
    def applied_requirement_ids(self, doctor_id: str) -> set[str]:
        """Requirement ids on which the doctor holds a pending or accepted pitch."""
