"""Pitch lifecycle: the state machine for a doctor's application to a requirement.

Transitions::

    PENDING --accept (clinic)--> ACCEPTED   (+ Connection, same transaction)
    PENDING --reject (clinic)--> REJECTED
    PENDING --withdraw (doctor)--> WITHDRAWN

ACCEPTED, REJECTED and WITHDRAWN are terminal. Every mutation runs in one
write transaction, and the status change is a compare-and-set on PENDING,
so of two racing decisions exactly one commits and the other raises
InvalidTransition.
"""

import logging
import sqlite3
import uuid
from datetime import datetime

from medmatch.core import db
from medmatch.core.errors import (
    DuplicateActiveApplication,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from medmatch.core.schemas import Pitch, PitchStatus, RequirementStatus
from medmatch.lifecycle.connections import ConnectionRegistry

logger = logging.getLogger(__name__)


class PitchLifecycle:
    """Creates pitches and moves them through their states.

    Usage::

        lifecycle = PitchLifecycle(conn)
        pitch = lifecycle.create("doc-1", "req-1", "Interested")
        lifecycle.accept(pitch.id, acting_clinic_id="clinic-1")
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self._conn = conn
        self._registry = registry or ConnectionRegistry(conn)

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, pitch_id: str) -> Pitch:
        pitch = db.get_pitch(self._conn, pitch_id)
        if pitch is None:
            msg = f"Pitch '{pitch_id}' not found"
            raise NotFound(msg)
        return pitch

    def list_for_doctor(self, doctor_id: str) -> list[Pitch]:
        return db.list_pitches(self._conn, doctor_id=doctor_id)

    def list_for_requirement(self, job_requirement_id: str) -> list[Pitch]:
        return db.list_pitches(self._conn, requirement_id=job_requirement_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, doctor_id: str, job_requirement_id: str, message: str) -> Pitch:
        """Apply to a requirement, producing a PENDING pitch.

        Raises:
            ValidationError: If the message is empty or whitespace-only.
            NotFound: If the doctor or requirement is unknown, or the requirement is closed.
            DuplicateActiveApplication: If the doctor already has a pending or
                accepted pitch for this requirement.
        """
        message = message.strip()
        if not message:
            msg = "Pitch message must not be empty"
            raise ValidationError(msg)

        with db.transaction(self._conn):
            if db.get_doctor(self._conn, doctor_id) is None:
                msg = f"Doctor '{doctor_id}' not found"
                raise NotFound(msg)
            requirement = db.get_requirement(self._conn, job_requirement_id)
            if requirement is None or requirement.status is not RequirementStatus.POSTED:
                msg = f"Requirement '{job_requirement_id}' is not open for applications"
                raise NotFound(msg)
            if db.find_active_pitch(self._conn, doctor_id, job_requirement_id) is not None:
                raise DuplicateActiveApplication(doctor_id, job_requirement_id)

            now = datetime.now()
            pitch = Pitch(
                id=uuid.uuid4().hex,
                doctor_id=doctor_id,
                job_requirement_id=job_requirement_id,
                message=message,
                created_at=now,
                updated_at=now,
            )
            try:
                db.insert_pitch(self._conn, pitch)
            except sqlite3.IntegrityError as e:
                raise DuplicateActiveApplication(doctor_id, job_requirement_id) from e
            db.increment_applications(self._conn, job_requirement_id)

        logger.info(
            "Pitch '%s' created: doctor '%s' -> requirement '%s'",
            pitch.id, doctor_id, job_requirement_id,
        )
        return pitch

    def accept(self, pitch_id: str, acting_clinic_id: str) -> Pitch:
        """Accept a pending pitch and connect the doctor with the clinic."""
        return self._decide(pitch_id, acting_clinic_id, PitchStatus.ACCEPTED)

    def reject(self, pitch_id: str, acting_clinic_id: str) -> Pitch:
        """Reject a pending pitch. No connection is created."""
        return self._decide(pitch_id, acting_clinic_id, PitchStatus.REJECTED)

    def withdraw(self, pitch_id: str, acting_doctor_id: str) -> Pitch:
        """Withdraw a pending pitch on behalf of the doctor who sent it."""
        with db.transaction(self._conn):
            pitch = self.get(pitch_id)
            if pitch.doctor_id != acting_doctor_id:
                logger.warning(
                    "Forbidden: doctor '%s' tried to withdraw pitch '%s' owned by '%s'",
                    acting_doctor_id, pitch_id, pitch.doctor_id,
                )
                msg = f"Doctor '{acting_doctor_id}' did not send pitch '{pitch_id}'"
                raise Forbidden(msg)
            updated = self._transition(pitch, PitchStatus.WITHDRAWN)

        logger.info("Pitch '%s' withdrawn by doctor '%s'", pitch_id, acting_doctor_id)
        return updated

    def _decide(self, pitch_id: str, acting_clinic_id: str, decision: PitchStatus) -> Pitch:
        """Clinic-side transition. Acceptance creates the connection in the same transaction."""
        with db.transaction(self._conn):
            pitch = self.get(pitch_id)
            requirement = db.get_requirement(self._conn, pitch.job_requirement_id)
            if requirement is None:
                msg = f"Requirement '{pitch.job_requirement_id}' not found"
                raise NotFound(msg)
            if requirement.clinic_id != acting_clinic_id:
                logger.warning(
                    "Forbidden: clinic '%s' tried to %s pitch '%s' on requirement owned by '%s'",
                    acting_clinic_id, decision.value.lower(), pitch_id, requirement.clinic_id,
                )
                msg = f"Clinic '{acting_clinic_id}' does not own requirement '{requirement.id}'"
                raise Forbidden(msg)
            updated = self._transition(pitch, decision)
            if decision is PitchStatus.ACCEPTED:
                self._registry.create_from_accepted_pitch(updated, connected_at=updated.updated_at)

        logger.info(
            "Pitch '%s' %s by clinic '%s'", pitch_id, decision.value.lower(), acting_clinic_id,
        )
        return updated

    def _transition(self, pitch: Pitch, target: PitchStatus) -> Pitch:
        """Compare-and-set PENDING -> target. Must run inside a transaction."""
        if pitch.status is not PitchStatus.PENDING:
            raise InvalidTransition(pitch.id, pitch.status.value, target.value)
        now = datetime.now()
        if not db.transition_pitch(self._conn, pitch.id, PitchStatus.PENDING, target, now):
            current = self.get(pitch.id)
            raise InvalidTransition(pitch.id, current.status.value, target.value)
        return pitch.model_copy(update={"status": target, "updated_at": now})
