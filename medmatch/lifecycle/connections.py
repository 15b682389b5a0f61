"""Connection registry and the chat eligibility gate.

A Connection is derived 1:1 from an ACCEPTED pitch and keyed by pitch id.
The chat collaborator must call ``can_send_message`` (or ``is_connected``
plus ``patient_accepts_messages``) before accepting a send.
"""

import logging
import sqlite3
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from medmatch.core import db
from medmatch.core.errors import InvalidTransition, NotFound
from medmatch.core.schemas import Connection, PatientStatus, Pitch, PitchStatus

logger = logging.getLogger(__name__)


class DoctorConnections(BaseModel):
    """A clinic's connections with one doctor, as shown on its connections view."""

    model_config = ConfigDict(frozen=True)

    doctor_id: str
    connections: list[Connection]
    connection_count: int
    latest_connection: datetime


def patient_accepts_messages(status: PatientStatus) -> bool:
    """Chats about a COMPLETED patient are closed, whatever the connection state."""
    return status is not PatientStatus.COMPLETED


class ConnectionRegistry:
    """Reads and materializes connections.

    ``create_from_accepted_pitch`` performs no transaction handling of its
    own; ``PitchLifecycle.accept`` calls it inside the acceptance transaction.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def create_from_accepted_pitch(
        self,
        pitch: Pitch,
        connected_at: datetime | None = None,
    ) -> Connection:
        """Return the pitch's connection, creating it on first call.

        Raises:
            NotFound: If the pitch or its requirement does not exist.
            InvalidTransition: If the stored pitch is not ACCEPTED.
        """
        existing = db.get_connection_by_pitch(self._conn, pitch.id)
        if existing is not None:
            return existing

        stored = db.get_pitch(self._conn, pitch.id)
        if stored is None:
            msg = f"Pitch '{pitch.id}' not found"
            raise NotFound(msg)
        if stored.status is not PitchStatus.ACCEPTED:
            raise InvalidTransition(stored.id, stored.status.value, "CONNECTED")
        requirement = db.get_requirement(self._conn, stored.job_requirement_id)
        if requirement is None:
            msg = f"Requirement '{stored.job_requirement_id}' not found"
            raise NotFound(msg)

        connection = Connection(
            id=uuid.uuid4().hex,
            pitch_id=stored.id,
            doctor_id=stored.doctor_id,
            clinic_id=requirement.clinic_id,
            job_requirement_id=requirement.id,
            connected_at=connected_at or stored.updated_at,
        )
        if not db.insert_connection(self._conn, connection):
            # Another writer connected this pitch first.
            return db.get_connection_by_pitch(self._conn, pitch.id)  # type: ignore[return-value]
        logger.info(
            "Connected doctor '%s' with clinic '%s' on requirement '%s'",
            connection.doctor_id, connection.clinic_id, connection.job_requirement_id,
        )
        return connection

    def get_for_pitch(self, pitch_id: str) -> Connection | None:
        return db.get_connection_by_pitch(self._conn, pitch_id)

    def is_connected(self, doctor_id: str, clinic_id: str, job_requirement_id: str) -> bool:
        return db.connection_exists(self._conn, doctor_id, clinic_id, job_requirement_id)

    def list_for_doctor(self, doctor_id: str) -> list[Connection]:
        return db.list_connections(self._conn, doctor_id=doctor_id)

    def list_for_clinic(self, clinic_id: str) -> list[Connection]:
        return db.list_connections(self._conn, clinic_id=clinic_id)

    def group_by_doctor(self, clinic_id: str) -> list[DoctorConnections]:
        """Group a clinic's connections per doctor, most recently connected doctor first."""
        grouped: dict[str, list[Connection]] = {}
        for connection in self.list_for_clinic(clinic_id):
            grouped.setdefault(connection.doctor_id, []).append(connection)
        return [
            DoctorConnections(
                doctor_id=doctor_id,
                connections=connections,
                connection_count=len(connections),
                latest_connection=connections[0].connected_at,
            )
            for doctor_id, connections in grouped.items()
        ]


def can_send_message(
    registry: ConnectionRegistry,
    doctor_id: str,
    clinic_id: str,
    job_requirement_id: str,
    patient_status: PatientStatus,
) -> bool:
    """Chat gate: the parties must be connected and the patient still active."""
    if not patient_accepts_messages(patient_status):
        return False
    return registry.is_connected(doctor_id, clinic_id, job_requirement_id)
