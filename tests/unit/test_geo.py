"""Tests for haversine distance and radius queries."""

import math

import pytest

from medmatch.core.errors import ValidationError
from medmatch.core.schemas import Clinic, Coordinate, Doctor
from medmatch.pipeline.geo import EARTH_RADIUS_KM, distance, make_coordinate, within_radius

DELHI = Coordinate(lat=28.6139, lng=77.2090)
MUMBAI = Coordinate(lat=19.0760, lng=72.8777)


def _clinic(clinic_id: str, coordinate: Coordinate | None) -> Clinic:
    return Clinic(id=clinic_id, clinic_name=clinic_id, coordinate=coordinate)


class TestDistance:
    def test_identity(self) -> None:
        assert distance(DELHI, DELHI) == 0.0

    def test_symmetric(self) -> None:
        assert distance(DELHI, MUMBAI) == pytest.approx(distance(MUMBAI, DELHI))

    def test_one_degree_of_latitude(self) -> None:
        a = Coordinate(lat=0, lng=0)
        b = Coordinate(lat=1, lng=0)
        assert distance(a, b) == pytest.approx(111.19492664, abs=1e-6)

    def test_delhi_to_mumbai(self) -> None:
        assert 1140 < distance(DELHI, MUMBAI) < 1160

    def test_antipodes(self) -> None:
        a = Coordinate(lat=0, lng=0)
        b = Coordinate(lat=0, lng=180)
        assert distance(a, b) == pytest.approx(math.pi * EARTH_RADIUS_KM)

    def test_across_antimeridian(self) -> None:
        a = Coordinate(lat=0, lng=179.5)
        b = Coordinate(lat=0, lng=-179.5)
        assert distance(a, b) == pytest.approx(111.19492664, abs=1e-6)


class TestMakeCoordinate:
    def test_valid(self) -> None:
        assert make_coordinate(10, 20) == Coordinate(lat=10, lng=20)

    def test_out_of_range(self) -> None:
        with pytest.raises(ValidationError, match="Invalid coordinate"):
            make_coordinate(91, 0)


class TestWithinRadius:
    def test_keeps_nearby_in_input_order(self) -> None:
        far = _clinic("far", Coordinate(lat=28.9, lng=77.2))
        near = _clinic("near", Coordinate(lat=28.62, lng=77.21))
        result = within_radius(DELHI, 50, [far, near])
        assert [r.entity.id for r in result] == ["far", "near"]
        assert all(r.distance_km is not None for r in result)

    def test_excludes_outside(self) -> None:
        result = within_radius(DELHI, 50, [_clinic("mumbai", MUMBAI)])
        assert result == []

    def test_boundary_inclusive(self) -> None:
        point = Coordinate(lat=1, lng=0)
        exact = distance(Coordinate(lat=0, lng=0), point)
        result = within_radius(Coordinate(lat=0, lng=0), exact, [_clinic("edge", point)])
        assert len(result) == 1

    def test_zero_radius_keeps_colocated(self) -> None:
        result = within_radius(DELHI, 0, [_clinic("here", DELHI)])
        assert [r.distance_km for r in result] == [0.0]

    def test_skips_unlocated(self) -> None:
        doctor = Doctor(id="d1", full_name="No Address", specialization="DENTIST")
        assert within_radius(DELHI, 500, [doctor]) == []

    def test_larger_radius_is_superset(self) -> None:
        candidates = [
            _clinic(f"c{i}", Coordinate(lat=28.6139 + i * 0.1, lng=77.2090))
            for i in range(10)
        ]
        small = {r.entity.id for r in within_radius(DELHI, 30, candidates)}
        large = {r.entity.id for r in within_radius(DELHI, 60, candidates)}
        assert small <= large
        assert small != large

    def test_negative_radius(self) -> None:
        with pytest.raises(ValidationError, match="non-negative"):
            within_radius(DELHI, -1, [])
