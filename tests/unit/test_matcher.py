"""Tests for the search filter chain."""

import itertools

import pytest

from medmatch.core.config import SearchFilters
from medmatch.core.errors import ValidationError
from medmatch.core.schemas import (
    Clinic,
    Doctor,
    EntityKind,
    JobRequirement,
    JobType,
    Located,
    RequirementListing,
    Specialization,
)
from medmatch.pipeline.matcher import (
    ActiveJobsFilter,
    CategoryFilter,
    ExcludeAppliedFilter,
    FlagFilter,
    RangeFilter,
    TextSearchFilter,
    build_filters,
    experience_of,
    is_verified,
    run_filter_chain,
    specialization_of,
)


def _doctor(doctor_id: str, **kw: object) -> Located:
    defaults: dict[str, object] = {
        "id": doctor_id,
        "full_name": f"Dr {doctor_id}",
        "specialization": Specialization.GENERAL_PHYSICIAN,
        "experience": 5,
    }
    defaults.update(kw)
    return Located(entity=Doctor(**defaults), distance_km=1.0)  # type: ignore[arg-type]


def _clinic(clinic_id: str, **kw: object) -> Located:
    defaults: dict[str, object] = {"id": clinic_id, "clinic_name": f"Clinic {clinic_id}"}
    defaults.update(kw)
    return Located(entity=Clinic(**defaults), distance_km=1.0)  # type: ignore[arg-type]


def _listing(req_id: str, clinic: Clinic | None = None, **kw: object) -> Located:
    defaults: dict[str, object] = {
        "id": req_id,
        "clinic_id": "clinic-1",
        "title": f"Opening {req_id}",
        "type": JobType.FULLTIME,
    }
    defaults.update(kw)
    listing = RequirementListing(
        requirement=JobRequirement(**defaults),  # type: ignore[arg-type]
        clinic=clinic or Clinic(id="clinic-1", clinic_name="Connaught Care"),
    )
    return Located(entity=listing, distance_km=1.0)


def _ids(result: list[Located]) -> list[str]:
    ids = []
    for c in result:
        entity = c.entity
        ids.append(entity.requirement.id if isinstance(entity, RequirementListing) else entity.id)
    return ids


class TestTextSearchFilter:
    def test_matches_name_case_insensitive(self) -> None:
        pool = [_doctor("a", full_name="Asha Rao"), _doctor("b", full_name="Vikram Singh")]
        assert _ids(TextSearchFilter("ASHA")(pool)) == ["a"]

    def test_matches_specialization(self) -> None:
        pool = [_doctor("a", specialization="CARDIOLOGIST"), _doctor("b")]
        assert _ids(TextSearchFilter("cardio")(pool)) == ["a"]

    def test_blank_is_noop(self) -> None:
        pool = [_doctor("a"), _doctor("b")]
        assert TextSearchFilter("  ")(pool) == pool

    def test_requirement_matches_clinic_name(self) -> None:
        pool = [_listing("r1"), _listing("r2", clinic=Clinic(id="c2", clinic_name="Other"))]
        assert _ids(TextSearchFilter("connaught")(pool)) == ["r1"]


class TestCategoryFilter:
    def test_or_within_selection(self) -> None:
        pool = [
            _doctor("a", specialization="CARDIOLOGIST"),
            _doctor("b", specialization="DENTIST"),
            _doctor("c", specialization="UROLOGIST"),
        ]
        f = CategoryFilter(specialization_of, {Specialization.CARDIOLOGIST, Specialization.DENTIST})
        assert _ids(f(pool)) == ["a", "b"]

    def test_empty_selection_passes_all(self) -> None:
        pool = [_doctor("a"), _doctor("b")]
        assert CategoryFilter(specialization_of, [])(pool) == pool

    def test_missing_value_fails_when_selected(self) -> None:
        pool = [_listing("r1"), _listing("r2", specialization="DENTIST")]
        f = CategoryFilter(specialization_of, [Specialization.DENTIST])
        assert _ids(f(pool)) == ["r2"]


class TestRangeFilter:
    def test_inclusive_bounds(self) -> None:
        pool = [_doctor("a", experience=2), _doctor("b", experience=5), _doctor("c", experience=10)]
        assert _ids(RangeFilter(experience_of, 5, 10)(pool)) == ["b", "c"]

    def test_open_upper(self) -> None:
        pool = [_doctor("a", experience=2), _doctor("b", experience=30)]
        assert _ids(RangeFilter(experience_of, 3, None)(pool)) == ["b"]

    def test_inactive_without_bounds(self) -> None:
        pool = [_clinic("a")]
        assert RangeFilter(experience_of, None, None)(pool) == pool


class TestFlagFilter:
    def test_verified_only(self) -> None:
        pool = [_clinic("a", is_verified=True), _clinic("b")]
        assert _ids(FlagFilter(is_verified, True)(pool)) == ["a"]
        assert FlagFilter(is_verified, False)(pool) == pool

    def test_requirement_uses_clinic_flag(self) -> None:
        verified = Clinic(id="c1", clinic_name="V", is_verified=True)
        pool = [_listing("r1", clinic=verified), _listing("r2")]
        assert _ids(FlagFilter(is_verified, True)(pool)) == ["r1"]


class TestActiveJobsFilter:
    def test_modes(self) -> None:
        pool = [_clinic("a", active_jobs=2), _clinic("b", active_jobs=0)]
        assert _ids(ActiveJobsFilter("with_jobs")(pool)) == ["a"]
        assert _ids(ActiveJobsFilter("no_jobs")(pool)) == ["b"]
        assert ActiveJobsFilter("all")(pool) == pool

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValidationError):
            ActiveJobsFilter("busy")


class TestExcludeAppliedFilter:
    def test_hides_applied(self) -> None:
        pool = [_listing("r1"), _listing("r2")]
        assert _ids(ExcludeAppliedFilter({"r1"})(pool)) == ["r2"]


class TestBuildFilters:
    def test_unsupported_option_for_kind(self) -> None:
        with pytest.raises(ValidationError, match="do not apply to clinic"):
            build_filters(EntityKind.CLINIC, SearchFilters(experience_min=3))

    def test_hide_applied_for_requirements(self) -> None:
        chain = build_filters(
            EntityKind.REQUIREMENT, SearchFilters(hide_applied=True), applied_ids={"r1"},
        )
        assert _ids(run_filter_chain([_listing("r1"), _listing("r2")], chain)) == ["r2"]

    def test_empty_selection_is_identity(self) -> None:
        pool = [_doctor("a"), _doctor("b")]
        chain = build_filters(EntityKind.DOCTOR, SearchFilters())
        assert run_filter_chain(pool, chain) == pool

    def test_preserves_input_order(self) -> None:
        pool = [_doctor(str(i), experience=i) for i in range(10, 0, -1)]
        chain = build_filters(EntityKind.DOCTOR, SearchFilters(experience_min=3))
        assert _ids(run_filter_chain(pool, chain)) == [str(i) for i in range(10, 2, -1)]


class TestComposition:
    def test_order_independent(self) -> None:
        pool = [
            _doctor("a", full_name="Asha Rao", specialization="CARDIOLOGIST", experience=12),
            _doctor("b", full_name="Asha Verma", specialization="DENTIST", experience=12),
            _doctor("c", full_name="Ravi Rao", specialization="CARDIOLOGIST", experience=2),
            _doctor("d", full_name="Asha Iyer", specialization="CARDIOLOGIST", experience=7),
        ]
        filters = [
            TextSearchFilter("asha"),
            CategoryFilter(specialization_of, [Specialization.CARDIOLOGIST]),
            RangeFilter(experience_of, 5, None),
        ]
        expected = _ids(run_filter_chain(pool, filters))
        assert expected == ["a", "d"]
        for perm in itertools.permutations(filters):
            assert _ids(run_filter_chain(pool, list(perm))) == expected
