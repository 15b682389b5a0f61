"""Tests for clinic and doctor overview summaries."""

import pytest

from medmatch.core import db as dbmod
from medmatch.core.errors import NotFound
from medmatch.core.schemas import Clinic, Doctor, JobRequirement, PitchStatus, RequirementStatus
from medmatch.lifecycle.overview import RECENT_LIMIT, clinic_overview, doctor_overview
from medmatch.lifecycle.pitches import PitchLifecycle
from medmatch.lifecycle.requirements import RequirementBoard


@pytest.fixture()
def conn(tmp_path):  # type: ignore[no-untyped-def]
    c = dbmod.init_db(tmp_path / "test.db")
    dbmod.upsert_doctor(c, Doctor(id="doc-1", full_name="Asha", specialization="PEDIATRICIAN"))
    dbmod.upsert_clinic(c, Clinic(id="clinic-1", clinic_name="Little Steps"))
    dbmod.upsert_clinic(c, Clinic(id="clinic-2", clinic_name="Elsewhere"))
    for i in range(3):
        dbmod.insert_requirement(c, JobRequirement(
            id=f"req-{i}", clinic_id="clinic-1", title=f"Job {i}", type="PARTTIME",
        ))
    dbmod.insert_requirement(c, JobRequirement(
        id="req-other", clinic_id="clinic-2", title="Other", type="PARTTIME",
    ))
    yield c
    c.close()


class TestClinicOverview:
    def test_counts(self, conn) -> None:  # type: ignore[no-untyped-def]
        lifecycle = PitchLifecycle(conn)
        p0 = lifecycle.create("doc-1", "req-0", "a")
        p1 = lifecycle.create("doc-1", "req-1", "b")
        lifecycle.create("doc-1", "req-other", "c")
        lifecycle.accept(p0.id, "clinic-1")
        lifecycle.reject(p1.id, "clinic-1")
        RequirementBoard(conn).close("req-2", "clinic-1")

        o = clinic_overview(conn, "clinic-1")
        assert o.total_requirements == 3
        assert o.requirements_by_status[RequirementStatus.POSTED] == 2
        assert o.requirements_by_status[RequirementStatus.CLOSED] == 1
        assert o.total_pitches == 2
        assert o.pitches_by_status[PitchStatus.ACCEPTED] == 1
        assert o.pitches_by_status[PitchStatus.REJECTED] == 1
        assert o.pitches_by_status[PitchStatus.PENDING] == 0
        assert [p.id for p in o.recent_pitches] == [p1.id, p0.id]
        assert o.total_connections == 1

    def test_recent_capped(self, conn) -> None:  # type: ignore[no-untyped-def]
        lifecycle = PitchLifecycle(conn)
        for i in range(RECENT_LIMIT + 2):
            dbmod.upsert_doctor(conn, Doctor(id=f"d{i}", full_name=f"d{i}", specialization="DENTIST"))
            lifecycle.create(f"d{i}", "req-0", "hi")
        o = clinic_overview(conn, "clinic-1")
        assert o.total_pitches == RECENT_LIMIT + 2
        assert len(o.recent_pitches) == RECENT_LIMIT

    def test_unknown(self, conn) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(NotFound):
            clinic_overview(conn, "ghost")


class TestDoctorOverview:
    def test_counts(self, conn) -> None:  # type: ignore[no-untyped-def]
        lifecycle = PitchLifecycle(conn)
        p = lifecycle.create("doc-1", "req-0", "a")
        lifecycle.create("doc-1", "req-other", "b")
        lifecycle.accept(p.id, "clinic-1")

        o = doctor_overview(conn, "doc-1")
        assert o.total_applications == 2
        assert o.applications_by_status[PitchStatus.ACCEPTED] == 1
        assert o.applications_by_status[PitchStatus.PENDING] == 1
        assert o.total_connections == 1
        assert o.available_jobs == 4

    def test_no_activity(self, conn) -> None:  # type: ignore[no-untyped-def]
        o = doctor_overview(conn, "doc-1")
        assert o.total_applications == 0
        assert o.recent_applications == []
        assert set(o.applications_by_status) == set(PitchStatus)

    def test_unknown(self, conn) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(NotFound):
            doctor_overview(conn, "ghost")
