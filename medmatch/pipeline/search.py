"""Search service: wires origin resolution, candidate fetch, radius, filters and ranking.

Data flow:
  1. Resolve origin (custom location > device location > own profile location)
  2. Fetch all candidates of one kind from the source (once per origin/radius)
  3. Radius query → geo-bounded CandidatePool
  4. CandidatePool.refine: filter chain → ranking, in memory

Steps 1-3 are the fetch phase; step 4 can be repeated with different
filters or sort orders without touching the source again.
"""

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from medmatch.core.config import SearchDefaults, SearchFilters
from medmatch.core.errors import LocationUnavailable, ValidationError
from medmatch.core.schemas import Coordinate, EntityKind, Located
from medmatch.pipeline.geo import within_radius
from medmatch.pipeline.matcher import build_filters, run_filter_chain
from medmatch.pipeline.ranker import rank
from medmatch.sources.base import CandidateSource

logger = logging.getLogger(__name__)


class OriginSource(str, Enum):
    CUSTOM = "custom"
    DEVICE = "device"
    PROFILE = "profile"


class SearchReason(str, Enum):
    OK = "ok"
    LOCATION_UNAVAILABLE = "location_unavailable"


class LocationRequest(BaseModel):
    """Locations the caller can offer besides the searcher's stored profile point."""

    model_config = ConfigDict(frozen=True)

    custom: Coordinate | None = None
    device: Coordinate | None = None


class SearchOutcome(BaseModel):
    """Result of one refine pass over a candidate pool."""

    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    reason: SearchReason
    origin: Coordinate | None = None
    origin_source: OriginSource | None = None
    radius_km: float
    pool_size: int = 0
    results: list[Located] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.reason is SearchReason.OK

    def raise_for_reason(self) -> "SearchOutcome":
        """Raise LocationUnavailable if no origin resolved; otherwise return self."""
        if self.reason is SearchReason.LOCATION_UNAVAILABLE:
            msg = f"No location available for {self.kind.value} search"
            raise LocationUnavailable(msg)
        return self


def resolve_origin(
    custom: Coordinate | None,
    device: Coordinate | None,
    profile: Coordinate | None,
) -> tuple[Coordinate, OriginSource] | None:
    """Return the first available origin in priority order, or None."""
    chain = (
        (OriginSource.CUSTOM, custom),
        (OriginSource.DEVICE, device),
        (OriginSource.PROFILE, profile),
    )
    for source, point in chain:
        if point is not None:
            return (point, source)
    return None


class CandidatePool:
    """Geo-bounded candidates from one fetch.

    Immutable once built; ``refine`` never mutates the pool, so several
    refinements (and several threads) can share it.
    """

    def __init__(
        self,
        kind: EntityKind,
        radius_km: float,
        candidates: list[Located],
        origin: Coordinate | None = None,
        origin_source: OriginSource | None = None,
        applied_ids: frozenset[str] = frozenset(),
    ) -> None:
        self.kind = kind
        self.radius_km = radius_km
        self.origin = origin
        self.origin_source = origin_source
        self.applied_ids = applied_ids
        self._candidates = tuple(candidates)

    @classmethod
    def unavailable(cls, kind: EntityKind, radius_km: float) -> "CandidatePool":
        return cls(kind, radius_km, [])

    @property
    def reason(self) -> SearchReason:
        if self.origin is None:
            return SearchReason.LOCATION_UNAVAILABLE
        return SearchReason.OK

    @property
    def candidates(self) -> list[Located]:
        return list(self._candidates)

    def __len__(self) -> int:
        return len(self._candidates)

    def refine(
        self,
        filters: SearchFilters | None = None,
        sort: str = "nearest",
    ) -> SearchOutcome:
        """Filter and rank the pooled candidates in memory."""
        filters = filters or SearchFilters()
        chain = build_filters(self.kind, filters, self.applied_ids)
        filtered = run_filter_chain(list(self._candidates), chain)
        ranked = rank(filtered, sort, self.kind)
        logger.debug(
            "refine %s: %d pooled, %d after filters",
            self.kind.value, len(self._candidates), len(filtered),
        )
        return SearchOutcome(
            kind=self.kind,
            reason=self.reason,
            origin=self.origin,
            origin_source=self.origin_source,
            radius_km=self.radius_km,
            pool_size=len(self._candidates),
            results=ranked,
        )


class SearchService:
    """Answers the three proximity queries against a candidate source.

    Usage::

        service = SearchService(SqliteSource(conn), settings.search)
        pool = service.fetch_doctors_near_clinic("clinic-1", radius_km=25)
        by_distance = pool.refine()
        seniors = pool.refine(SearchFilters(experience_min=10), sort="experience_desc")
    """

    def __init__(
        self,
        source: CandidateSource,
        defaults: SearchDefaults | None = None,
    ) -> None:
        self._source = source
        self._defaults = defaults or SearchDefaults()

    def _radius(self, radius_km: float | None) -> float:
        radius = self._defaults.default_radius_km if radius_km is None else radius_km
        if radius <= 0 or radius > self._defaults.max_radius_km:
            msg = f"radius must be in (0, {self._defaults.max_radius_km}] km, got {radius}"
            raise ValidationError(msg)
        return radius

    def _origin(
        self,
        location: LocationRequest | None,
        profile: Coordinate | None,
    ) -> tuple[Coordinate, OriginSource] | None:
        location = location or LocationRequest()
        return resolve_origin(location.custom, location.device, profile)

    def fetch_doctors_near_clinic(
        self,
        clinic_id: str,
        radius_km: float | None = None,
        location: LocationRequest | None = None,
    ) -> CandidatePool:
        radius = self._radius(radius_km)
        clinic = self._source.get_clinic(clinic_id)
        resolved = self._origin(location, clinic.coordinate if clinic else None)
        if resolved is None:
            logger.info("No location for clinic '%s' - doctor search unavailable", clinic_id)
            return CandidatePool.unavailable(EntityKind.DOCTOR, radius)
        origin, origin_source = resolved
        nearby = within_radius(origin, radius, self._source.fetch_doctors())
        logger.info(
            "Doctors within %.1f km of %s origin: %d", radius, origin_source.value, len(nearby),
        )
        return CandidatePool(EntityKind.DOCTOR, radius, nearby, origin, origin_source)

    def fetch_clinics_near_doctor(
        self,
        doctor_id: str,
        radius_km: float | None = None,
        location: LocationRequest | None = None,
    ) -> CandidatePool:
        radius = self._radius(radius_km)
        doctor = self._source.get_doctor(doctor_id)
        resolved = self._origin(location, doctor.coordinate if doctor else None)
        if resolved is None:
            logger.info("No location for doctor '%s' - clinic search unavailable", doctor_id)
            return CandidatePool.unavailable(EntityKind.CLINIC, radius)
        origin, origin_source = resolved
        nearby = within_radius(origin, radius, self._source.fetch_clinics())
        logger.info(
            "Clinics within %.1f km of %s origin: %d", radius, origin_source.value, len(nearby),
        )
        return CandidatePool(EntityKind.CLINIC, radius, nearby, origin, origin_source)

    def fetch_requirements_near_doctor(
        self,
        doctor_id: str,
        radius_km: float | None = None,
        location: LocationRequest | None = None,
    ) -> CandidatePool:
        radius = self._radius(radius_km)
        doctor = self._source.get_doctor(doctor_id)
        resolved = self._origin(location, doctor.coordinate if doctor else None)
        if resolved is None:
            logger.info("No location for doctor '%s' - requirement search unavailable", doctor_id)
            return CandidatePool.unavailable(EntityKind.REQUIREMENT, radius)
        origin, origin_source = resolved
        nearby = within_radius(origin, radius, self._source.fetch_requirement_listings())
        applied = frozenset(self._source.applied_requirement_ids(doctor_id))
        logger.info(
            "Requirements within %.1f km of %s origin: %d", radius, origin_source.value, len(nearby),
        )
        return CandidatePool(
            EntityKind.REQUIREMENT, radius, nearby, origin, origin_source, applied,
        )

    def search_doctors(
        self,
        clinic_id: str,
        filters: SearchFilters | None = None,
        sort: str | None = None,
        radius_km: float | None = None,
        location: LocationRequest | None = None,
    ) -> SearchOutcome:
        """Fetch and refine in one call."""
        pool = self.fetch_doctors_near_clinic(clinic_id, radius_km, location)
        return pool.refine(filters, sort or self._defaults.default_sort)

    def search_clinics(
        self,
        doctor_id: str,
        filters: SearchFilters | None = None,
        sort: str | None = None,
        radius_km: float | None = None,
        location: LocationRequest | None = None,
    ) -> SearchOutcome:
        """Fetch and refine in one call."""
        pool = self.fetch_clinics_near_doctor(doctor_id, radius_km, location)
        return pool.refine(filters, sort or self._defaults.default_sort)

    def search_requirements(
        self,
        doctor_id: str,
        filters: SearchFilters | None = None,
        sort: str | None = None,
        radius_km: float | None = None,
        location: LocationRequest | None = None,
    ) -> SearchOutcome:
        """Fetch and refine in one call."""
        pool = self.fetch_requirements_near_doctor(doctor_id, radius_km, location)
        return pool.refine(filters, sort or self._defaults.default_sort)
