"""Tests for the requirement board: post, update, close."""

from datetime import date

import pytest

from medmatch.core import db as dbmod
from medmatch.core.errors import Forbidden, NotFound, ValidationError
from medmatch.core.schemas import (
    Clinic,
    Coordinate,
    Doctor,
    JobType,
    PitchStatus,
    RequirementStatus,
)
from medmatch.lifecycle.pitches import PitchLifecycle
from medmatch.lifecycle.requirements import RequirementBoard


@pytest.fixture()
def conn(tmp_path):  # type: ignore[no-untyped-def]
    c = dbmod.init_db(tmp_path / "test.db")
    for doctor_id in ("doc-1", "doc-2", "doc-3"):
        dbmod.upsert_doctor(c, Doctor(id=doctor_id, full_name=doctor_id, specialization="UROLOGIST"))
    dbmod.upsert_clinic(c, Clinic(id="clinic-1", clinic_name="City Urology"))
    dbmod.upsert_clinic(c, Clinic(id="clinic-2", clinic_name="Other"))
    yield c
    c.close()


@pytest.fixture()
def board(conn):  # type: ignore[no-untyped-def]
    return RequirementBoard(conn)


class TestPost:
    def test_posted(self, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post(
            "clinic-1",
            title="Locum urologist",
            type="ONETIME",
            target_date=date(2026, 12, 1),
            coordinate=Coordinate(lat=28.5, lng=77.1),
        )
        assert r.status is RequirementStatus.POSTED
        assert r.type is JobType.ONETIME
        assert board.get(r.id) == r

    def test_unknown_clinic(self, board) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(NotFound):
            board.post("ghost", title="X", type="FULLTIME")

    def test_blank_title(self, board) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(ValidationError, match="Invalid requirement"):
            board.post("clinic-1", title="  ", type="FULLTIME")

    def test_non_editable_field(self, board) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(ValidationError, match="cannot be set"):
            board.post("clinic-1", title="X", type="FULLTIME", applications_count=9)

    def test_bumps_clinic_active_jobs(self, conn, board) -> None:  # type: ignore[no-untyped-def]
        board.post("clinic-1", title="A", type="FULLTIME")
        board.post("clinic-1", title="B", type="PARTTIME")
        assert dbmod.get_clinic(conn, "clinic-1").active_jobs == 2


class TestUpdate:
    def test_owner_edits(self, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post("clinic-1", title="Old", type="FULLTIME")
        updated = board.update(r.id, "clinic-1", title="New", description="Evenings")
        assert updated.title == "New"
        assert board.get(r.id).description == "Evenings"
        assert board.get(r.id).created_at == r.created_at

    def test_non_owner(self, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post("clinic-1", title="Old", type="FULLTIME")
        with pytest.raises(Forbidden):
            board.update(r.id, "clinic-2", title="Hijack")
        assert board.get(r.id).title == "Old"

    def test_status_not_editable(self, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post("clinic-1", title="Old", type="FULLTIME")
        with pytest.raises(ValidationError):
            board.update(r.id, "clinic-1", status="CLOSED")

    def test_unknown(self, board) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(NotFound):
            board.update("missing", "clinic-1", title="X")


class TestClose:
    def test_rejects_pending_keeps_accepted(self, conn, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post("clinic-1", title="Urologist", type="FULLTIME")
        lifecycle = PitchLifecycle(conn)
        accepted = lifecycle.create("doc-1", r.id, "Hi")
        lifecycle.accept(accepted.id, "clinic-1")
        pending = lifecycle.create("doc-2", r.id, "Hello")
        withdrawn = lifecycle.create("doc-3", r.id, "Hey")
        lifecycle.withdraw(withdrawn.id, "doc-3")

        rejected = board.close(r.id, "clinic-1")

        assert [p.id for p in rejected] == [pending.id]
        assert board.get(r.id).status is RequirementStatus.CLOSED
        assert lifecycle.get(pending.id).status is PitchStatus.REJECTED
        assert lifecycle.get(accepted.id).status is PitchStatus.ACCEPTED
        assert lifecycle.get(withdrawn.id).status is PitchStatus.WITHDRAWN
        assert lifecycle.registry.is_connected("doc-1", "clinic-1", r.id)

    def test_closed_refuses_new_pitches(self, conn, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post("clinic-1", title="Urologist", type="FULLTIME")
        board.close(r.id, "clinic-1")
        with pytest.raises(NotFound):
            PitchLifecycle(conn).create("doc-1", r.id, "Hi")

    def test_close_twice_is_noop(self, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post("clinic-1", title="Urologist", type="FULLTIME")
        board.close(r.id, "clinic-1")
        assert board.close(r.id, "clinic-1") == []

    def test_non_owner(self, board) -> None:  # type: ignore[no-untyped-def]
        r = board.post("clinic-1", title="Urologist", type="FULLTIME")
        with pytest.raises(Forbidden):
            board.close(r.id, "clinic-2")
        assert board.get(r.id).status is RequirementStatus.POSTED
