"""Filter chain for search candidates.

Every filter takes the geo-bounded candidate list and returns the subset it
accepts, preserving input order. Filters are AND-ed by chaining; options
inside one filter (e.g. several specializations) are OR-ed. Because each
filter looks only at its own attribute, the chain gives the same result set
in any order.
"""

import logging
from collections.abc import Callable, Collection
from typing import Any

from medmatch.core.config import SearchFilters
from medmatch.core.errors import ValidationError
from medmatch.core.schemas import Clinic, Doctor, EntityKind, Located, RequirementListing

logger = logging.getLogger(__name__)

# A filter is a callable that takes candidates and returns a subset.
Filter = Callable[[list[Located]], list[Located]]

# Reads one attribute off a candidate entity; None means "not applicable".
Attribute = Callable[[Any], Any]


def searchable_fields(entity: Any) -> list[str]:
    """Text fields that a free-text search matches against."""
    if isinstance(entity, Doctor):
        return [entity.full_name, entity.specialization.value, entity.address]
    if isinstance(entity, Clinic):
        return [entity.clinic_name, entity.clinic_address, entity.additional_details]
    if isinstance(entity, RequirementListing):
        r = entity.requirement
        return [r.title, r.description, entity.clinic.clinic_name, r.location]
    return []


def specialization_of(entity: Any) -> Any:
    if isinstance(entity, Doctor):
        return entity.specialization
    if isinstance(entity, RequirementListing):
        return entity.requirement.specialization
    return None


def job_type_of(entity: Any) -> Any:
    if isinstance(entity, RequirementListing):
        return entity.requirement.type
    return None


def experience_of(entity: Any) -> Any:
    if isinstance(entity, Doctor):
        return entity.experience
    return None


def is_verified(entity: Any) -> bool:
    if isinstance(entity, Clinic):
        return entity.is_verified
    if isinstance(entity, RequirementListing):
        return entity.clinic.is_verified
    return False


class PredicateFilter:
    """Base for filters that keep candidates one at a time."""

    def __call__(self, candidates: list[Located]) -> list[Located]:
        if not self.active:
            return candidates
        result = [c for c in candidates if self.keep(c)]
        removed = len(candidates) - len(result)
        if removed:
            logger.debug("%s: removed %d candidates", type(self).__name__, removed)
        return result

    @property
    def active(self) -> bool:
        return True

    def keep(self, candidate: Located) -> bool:
        raise NotImplementedError


class TextSearchFilter(PredicateFilter):
    """Keep candidates where any searchable field contains the term (case-insensitive).

    A blank term is a no-op.
    """

    def __init__(self, term: str) -> None:
        self._term = term.lower().strip()

    @property
    def active(self) -> bool:
        return bool(self._term)

    def keep(self, candidate: Located) -> bool:
        return any(self._term in field.lower() for field in searchable_fields(candidate.entity))


class CategoryFilter(PredicateFilter):
    """Keep candidates whose category is one of the selected values.

    An empty selection passes everything through.
    """

    def __init__(self, attribute: Attribute, selected: Collection[Any]) -> None:
        self._attribute = attribute
        self._selected = frozenset(selected)

    @property
    def active(self) -> bool:
        return bool(self._selected)

    def keep(self, candidate: Located) -> bool:
        return self._attribute(candidate.entity) in self._selected


class RangeFilter(PredicateFilter):
    """Keep candidates whose numeric attribute lies in [low, high], bounds inclusive."""

    def __init__(self, attribute: Attribute, low: float | None, high: float | None) -> None:
        self._attribute = attribute
        self._low = low
        self._high = high

    @property
    def active(self) -> bool:
        return self._low is not None or self._high is not None

    def keep(self, candidate: Located) -> bool:
        value = self._attribute(candidate.entity)
        if value is None:
            return False
        if self._low is not None and value < self._low:
            return False
        return not (self._high is not None and value > self._high)


class FlagFilter(PredicateFilter):
    """When enabled, keep only candidates for which the flag holds."""

    def __init__(self, flag: Callable[[Any], bool], enabled: bool) -> None:
        self._flag = flag
        self._enabled = enabled

    @property
    def active(self) -> bool:
        return self._enabled

    def keep(self, candidate: Located) -> bool:
        return bool(self._flag(candidate.entity))


class ActiveJobsFilter(PredicateFilter):
    """Clinic filter on open requirements: 'all', 'with_jobs' or 'no_jobs'."""

    def __init__(self, mode: str) -> None:
        if mode not in ("all", "with_jobs", "no_jobs"):
            msg = f"Unknown active jobs mode '{mode}'"
            raise ValidationError(msg)
        self._mode = mode

    @property
    def active(self) -> bool:
        return self._mode != "all"

    def keep(self, candidate: Located) -> bool:
        jobs = candidate.entity.active_jobs
        return jobs > 0 if self._mode == "with_jobs" else jobs == 0


class ExcludeAppliedFilter(PredicateFilter):
    """Hide requirements the searching doctor already has an active pitch on."""

    def __init__(self, applied_ids: Collection[str]) -> None:
        self._applied = frozenset(applied_ids)

    @property
    def active(self) -> bool:
        return bool(self._applied)

    def keep(self, candidate: Located) -> bool:
        return candidate.entity.requirement.id not in self._applied


# Options each search kind understands; anything else set by the caller is an error.
_SUPPORTED: dict[EntityKind, frozenset[str]] = {
    EntityKind.DOCTOR: frozenset({"text", "specializations", "experience"}),
    EntityKind.CLINIC: frozenset({"text", "verified_only", "active_jobs"}),
    EntityKind.REQUIREMENT: frozenset(
        {"text", "specializations", "job_types", "verified_only", "hide_applied"}
    ),
}


def _requested_options(filters: SearchFilters) -> set[str]:
    requested: set[str] = set()
    if filters.text:
        requested.add("text")
    if filters.specializations:
        requested.add("specializations")
    if filters.job_types:
        requested.add("job_types")
    if filters.experience_min is not None or filters.experience_max is not None:
        requested.add("experience")
    if filters.verified_only:
        requested.add("verified_only")
    if filters.active_jobs != "all":
        requested.add("active_jobs")
    if filters.hide_applied:
        requested.add("hide_applied")
    return requested


def build_filters(
    kind: EntityKind,
    filters: SearchFilters,
    applied_ids: Collection[str] = (),
) -> list[Filter]:
    """Build the filter chain for one search kind from a declarative selection."""
    unsupported = _requested_options(filters) - _SUPPORTED[kind]
    if unsupported:
        msg = f"Filters {sorted(unsupported)} do not apply to {kind.value} searches"
        raise ValidationError(msg)

    chain: list[Filter] = [
        TextSearchFilter(filters.text),
        CategoryFilter(specialization_of, filters.specializations),
        CategoryFilter(job_type_of, filters.job_types),
        RangeFilter(experience_of, filters.experience_min, filters.experience_max),
        FlagFilter(is_verified, filters.verified_only),
        ActiveJobsFilter(filters.active_jobs),
    ]
    if filters.hide_applied:
        chain.append(ExcludeAppliedFilter(applied_ids))
    return chain


def run_filter_chain(
    candidates: list[Located],
    filters: list[Filter],
) -> list[Located]:
    """Apply filters in order, returning the surviving candidates."""
    result = candidates
    for f in filters:
        result = f(result)
    return result
