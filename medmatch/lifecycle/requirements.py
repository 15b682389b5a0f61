"""Job requirement board: clinics post, edit and close requirements.

Closing a requirement rejects its outstanding PENDING pitches in the same
transaction. ACCEPTED pitches and their connections are left as they are.
"""

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any

import pydantic

from medmatch.core import db
from medmatch.core.errors import Forbidden, NotFound, ValidationError
from medmatch.core.schemas import JobRequirement, Pitch, PitchStatus, RequirementStatus

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "type",
    "specialization",
    "location",
    "coordinate",
    "target_date",
    "additional_information",
})


class RequirementBoard:
    """Clinic-owned requirement operations."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, requirement_id: str) -> JobRequirement:
        requirement = db.get_requirement(self._conn, requirement_id)
        if requirement is None:
            msg = f"Requirement '{requirement_id}' not found"
            raise NotFound(msg)
        return requirement

    def list_for_clinic(self, clinic_id: str) -> list[JobRequirement]:
        return db.list_requirements(self._conn, clinic_id=clinic_id)

    def post(self, clinic_id: str, **fields: Any) -> JobRequirement:
        """Create a POSTED requirement owned by ``clinic_id``.

        Accepts the editable fields of JobRequirement as keyword arguments.
        """
        _check_editable(fields)
        requirement = _validated({
            **fields,
            "id": uuid.uuid4().hex,
            "clinic_id": clinic_id,
            "created_at": datetime.now(),
        })
        with db.transaction(self._conn):
            if db.get_clinic(self._conn, clinic_id) is None:
                msg = f"Clinic '{clinic_id}' not found"
                raise NotFound(msg)
            db.insert_requirement(self._conn, requirement)
        logger.info("Requirement '%s' posted by clinic '%s'", requirement.id, clinic_id)
        return requirement

    def update(self, requirement_id: str, acting_clinic_id: str, **changes: Any) -> JobRequirement:
        """Edit the clinic-editable fields of a requirement the clinic owns."""
        _check_editable(changes)
        with db.transaction(self._conn):
            current = self.get(requirement_id)
            _check_owner(current, acting_clinic_id, "update")
            updated = _validated({**current.model_dump(), **changes})
            db.update_requirement(self._conn, updated)
        logger.info("Requirement '%s' updated by clinic '%s'", requirement_id, acting_clinic_id)
        return updated

    def close(self, requirement_id: str, acting_clinic_id: str) -> list[Pitch]:
        """Close a requirement and reject its pending pitches.

        Closing an already closed requirement is a no-op.

        Returns:
            The pitches that were rejected by the close.
        """
        rejected: list[Pitch] = []
        with db.transaction(self._conn):
            requirement = self.get(requirement_id)
            _check_owner(requirement, acting_clinic_id, "close")
            if requirement.status is RequirementStatus.CLOSED:
                return rejected
            db.set_requirement_status(self._conn, requirement_id, RequirementStatus.CLOSED)
            now = datetime.now()
            for pitch in db.list_pitches(self._conn, requirement_id=requirement_id):
                if pitch.status is not PitchStatus.PENDING:
                    continue
                db.transition_pitch(
                    self._conn, pitch.id, PitchStatus.PENDING, PitchStatus.REJECTED, now,
                )
                rejected.append(
                    pitch.model_copy(update={"status": PitchStatus.REJECTED, "updated_at": now})
                )
        logger.info(
            "Requirement '%s' closed by clinic '%s'; %d pending pitches rejected",
            requirement_id, acting_clinic_id, len(rejected),
        )
        return rejected


def _check_editable(fields: dict[str, Any]) -> None:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        msg = f"Fields {sorted(unknown)} cannot be set on a requirement"
        raise ValidationError(msg)


def _check_owner(requirement: JobRequirement, acting_clinic_id: str, action: str) -> None:
    if requirement.clinic_id != acting_clinic_id:
        logger.warning(
            "Forbidden: clinic '%s' tried to %s requirement '%s' owned by '%s'",
            acting_clinic_id, action, requirement.id, requirement.clinic_id,
        )
        msg = f"Clinic '{acting_clinic_id}' does not own requirement '{requirement.id}'"
        raise Forbidden(msg)


def _validated(data: dict[str, Any]) -> JobRequirement:
    try:
        return JobRequirement.model_validate(data)
    except pydantic.ValidationError as e:
        msg = f"Invalid requirement: {e.errors()[0]['msg']}"
        raise ValidationError(msg) from e
