"""Ordering of filtered candidates by a named strategy.

All strategies use Python's stable sort, so candidates with equal keys keep
their input order. Descending orders negate the key rather than passing
``reverse=True``, which would also reverse ties.
"""

import logging
import math
from collections.abc import Callable
from typing import Any

from medmatch.core.errors import ValidationError
from medmatch.core.schemas import Clinic, Doctor, EntityKind, Located, RequirementListing

logger = logging.getLogger(__name__)

SortKey = Callable[[Located], Any]


def _nearest(c: Located) -> float:
    return c.distance_km if c.distance_km is not None else math.inf


def _experience(c: Located) -> int:
    entity = c.entity
    if not isinstance(entity, Doctor):
        msg = "experience ordering applies to doctors only"
        raise ValidationError(msg)
    return entity.experience


def _name(c: Located) -> str:
    entity = c.entity
    if isinstance(entity, Doctor):
        return entity.full_name
    if isinstance(entity, Clinic):
        return entity.clinic_name
    return entity.clinic.clinic_name


def _open_jobs(c: Located) -> int:
    entity = c.entity
    if not isinstance(entity, Clinic):
        msg = "job-count ordering applies to clinics only"
        raise ValidationError(msg)
    return entity.active_jobs


def _listing(c: Located) -> RequirementListing:
    entity = c.entity
    if not isinstance(entity, RequirementListing):
        msg = "this ordering applies to job requirements only"
        raise ValidationError(msg)
    return entity


def _applications(c: Located) -> int:
    return _listing(c).requirement.applications_count


def _created(c: Located) -> float:
    return _listing(c).requirement.created_at.timestamp()


def _descending(key: Callable[[Located], float]) -> SortKey:
    return lambda c: -key(c)


def _name_desc(candidates: list[Located]) -> list[Located]:
    # Strings cannot be negated: rank distinct names, then sort by negated rank.
    names = sorted({_name(c) for c in candidates})
    position = {name: i for i, name in enumerate(names)}
    return sorted(candidates, key=lambda c: -position[_name(c)])


STRATEGIES: dict[str, SortKey] = {
    "nearest": _nearest,
    "experience_asc": _experience,
    "experience_desc": _descending(_experience),
    "name_asc": _name,
    "most_jobs": _descending(_open_jobs),
    "fewest_jobs": _open_jobs,
    "most_applications": _descending(_applications),
    "fewest_applications": _applications,
    "newest": _descending(_created),
    "oldest": _created,
}


# Strategies that read a kind-specific attribute; the rest apply to every kind.
_KIND_ONLY: dict[str, EntityKind] = {
    "experience_asc": EntityKind.DOCTOR,
    "experience_desc": EntityKind.DOCTOR,
    "most_jobs": EntityKind.CLINIC,
    "fewest_jobs": EntityKind.CLINIC,
    "most_applications": EntityKind.REQUIREMENT,
    "fewest_applications": EntityKind.REQUIREMENT,
    "newest": EntityKind.REQUIREMENT,
    "oldest": EntityKind.REQUIREMENT,
}


def available_strategies() -> list[str]:
    """Return sorted list of strategy names, including ``name_desc``."""
    return sorted([*STRATEGIES, "name_desc"])


def rank(
    candidates: list[Located],
    strategy: str,
    kind: EntityKind | None = None,
) -> list[Located]:
    """Return a new list ordered by ``strategy``.

    With ``kind`` set, a strategy meant for another kind is refused even
    when there is nothing to sort.

    Raises:
        ValidationError: If the strategy is unknown or does not apply to
            the candidates' entity kind.
    """
    required = _KIND_ONLY.get(strategy)
    if kind is not None and required is not None and required is not kind:
        msg = f"Sort strategy '{strategy}' does not apply to {kind.value} searches"
        raise ValidationError(msg)
    if strategy == "name_desc":
        ordered = _name_desc(candidates)
    elif strategy in STRATEGIES:
        ordered = sorted(candidates, key=STRATEGIES[strategy])
    else:
        valid = ", ".join(available_strategies())
        msg = f"Unknown sort strategy '{strategy}'. Available: {valid}"
        raise ValidationError(msg)
    logger.debug("rank: ordered %d candidates by %s", len(ordered), strategy)
    return ordered
