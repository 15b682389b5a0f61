"""SQLite database layer for profiles, requirements, pitches and connections.

Connections are opened in autocommit mode; multi-statement writes go through
``transaction()``, which takes SQLite's reserved lock up front (BEGIN IMMEDIATE)
so concurrent lifecycle writers serialize instead of deadlocking on upgrade.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from medmatch.core.schemas import (
    Clinic,
    Connection,
    Coordinate,
    Doctor,
    JobRequirement,
    Pitch,
    PitchStatus,
    RequirementListing,
    RequirementStatus,
)

_DOCTORS_TABLE = """
CREATE TABLE IF NOT EXISTS doctors (
    id                TEXT PRIMARY KEY,
    full_name         TEXT    NOT NULL,
    specialization    TEXT    NOT NULL,
    experience        INTEGER NOT NULL DEFAULT 0,
    address           TEXT    NOT NULL DEFAULT '',
    lat               REAL,
    lng               REAL,
    profile_image_url TEXT,
    status            TEXT    NOT NULL DEFAULT 'ACTIVE'
);
"""

_CLINICS_TABLE = """
CREATE TABLE IF NOT EXISTS clinics (
    id                 TEXT PRIMARY KEY,
    clinic_name        TEXT    NOT NULL,
    clinic_address     TEXT    NOT NULL DEFAULT '',
    additional_details TEXT    NOT NULL DEFAULT '',
    owner_name         TEXT    NOT NULL DEFAULT '',
    owner_phone        TEXT    NOT NULL DEFAULT '',
    is_verified        INTEGER NOT NULL DEFAULT 0,
    lat                REAL,
    lng                REAL,
    profile_image_url  TEXT,
    status             TEXT    NOT NULL DEFAULT 'ACTIVE'
);
"""

_REQUIREMENTS_TABLE = """
CREATE TABLE IF NOT EXISTS job_requirements (
    id                     TEXT PRIMARY KEY,
    clinic_id              TEXT    NOT NULL REFERENCES clinics(id),
    title                  TEXT    NOT NULL,
    description            TEXT    NOT NULL DEFAULT '',
    type                   TEXT    NOT NULL,
    specialization         TEXT,
    location               TEXT    NOT NULL DEFAULT '',
    lat                    REAL,
    lng                    REAL,
    target_date            TEXT,
    additional_information TEXT    NOT NULL DEFAULT '',
    status                 TEXT    NOT NULL DEFAULT 'POSTED',
    created_at             TEXT    NOT NULL,
    applications_count     INTEGER NOT NULL DEFAULT 0
);
"""

_PITCHES_TABLE = """
CREATE TABLE IF NOT EXISTS pitches (
    id                 TEXT PRIMARY KEY,
    doctor_id          TEXT NOT NULL REFERENCES doctors(id),
    job_requirement_id TEXT NOT NULL REFERENCES job_requirements(id),
    message            TEXT NOT NULL,
    status             TEXT NOT NULL DEFAULT 'PENDING',
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);
"""

# At most one PENDING/ACCEPTED pitch per (doctor, requirement).
_ACTIVE_PITCH_INDEX = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_pitches_active
    ON pitches (doctor_id, job_requirement_id)
    WHERE status IN ('PENDING', 'ACCEPTED');
"""

_CONNECTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS connections (
    id                 TEXT PRIMARY KEY,
    pitch_id           TEXT NOT NULL UNIQUE REFERENCES pitches(id),
    doctor_id          TEXT NOT NULL,
    clinic_id          TEXT NOT NULL,
    job_requirement_id TEXT NOT NULL,
    connected_at       TEXT NOT NULL
);
"""

_CONNECTIONS_TRIPLE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_connections_triple
    ON connections (doctor_id, clinic_id, job_requirement_id);
"""

_CLINIC_SELECT = """
SELECT c.*,
       (SELECT COUNT(*) FROM job_requirements r
        WHERE r.clinic_id = c.id AND r.status = 'POSTED') AS active_jobs
FROM clinics c
"""


def connect(path: str | Path, busy_timeout_s: float = 5.0) -> sqlite3.Connection:
    """Open a connection to an existing database. One per request handler or thread."""
    conn = sqlite3.connect(str(path), timeout=busy_timeout_s, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(path: str | Path, busy_timeout_s: float = 5.0) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(path, busy_timeout_s)
    conn.execute("PRAGMA journal_mode=WAL")
    for ddl in (
        _DOCTORS_TABLE,
        _CLINICS_TABLE,
        _REQUIREMENTS_TABLE,
        _PITCHES_TABLE,
        _ACTIVE_PITCH_INDEX,
        _CONNECTIONS_TABLE,
        _CONNECTIONS_TRIPLE_INDEX,
    ):
        conn.execute(ddl)
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block as one write transaction; any exception rolls it back."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    try:
        conn.execute("COMMIT")
    except sqlite3.Error:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _coordinate(row: sqlite3.Row) -> Coordinate | None:
    if row["lat"] is None or row["lng"] is None:
        return None
    return Coordinate(lat=row["lat"], lng=row["lng"])


def _lat_lng(coordinate: Coordinate | None) -> tuple[float | None, float | None]:
    if coordinate is None:
        return (None, None)
    return (coordinate.lat, coordinate.lng)


def _row_dict(row: sqlite3.Row, *drop: str) -> dict[str, Any]:
    data = {k: row[k] for k in row.keys() if k not in ("lat", "lng", *drop)}
    data["coordinate"] = _coordinate(row)
    return data


def _doctor(row: sqlite3.Row) -> Doctor:
    return Doctor.model_validate(_row_dict(row))


def _clinic(row: sqlite3.Row) -> Clinic:
    data = _row_dict(row)
    data["is_verified"] = bool(data["is_verified"])
    return Clinic.model_validate(data)


def _requirement(row: sqlite3.Row) -> JobRequirement:
    return JobRequirement.model_validate(_row_dict(row))


def _pitch(row: sqlite3.Row) -> Pitch:
    return Pitch.model_validate(dict(row))


def _connection(row: sqlite3.Row) -> Connection:
    return Connection.model_validate(dict(row))


# ---------------------------------------------------------------------------
# Doctors and clinics
# ---------------------------------------------------------------------------


def upsert_doctor(conn: sqlite3.Connection, doctor: Doctor) -> bool:
    """Insert or update a doctor profile.

    Returns True if a new row was inserted, False if an existing one was updated.
    """
    existed = get_doctor(conn, doctor.id) is not None
    lat, lng = _lat_lng(doctor.coordinate)
    conn.execute(
        """
        INSERT INTO doctors
            (id, full_name, specialization, experience, address, lat, lng,
             profile_image_url, status)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            full_name = excluded.full_name,
            specialization = excluded.specialization,
            experience = excluded.experience,
            address = excluded.address,
            lat = excluded.lat,
            lng = excluded.lng,
            profile_image_url = excluded.profile_image_url,
            status = excluded.status
        """,
        (
            doctor.id,
            doctor.full_name,
            doctor.specialization.value,
            doctor.experience,
            doctor.address,
            lat,
            lng,
            doctor.profile_image_url,
            doctor.status.value,
        ),
    )
    return not existed


def upsert_clinic(conn: sqlite3.Connection, clinic: Clinic) -> bool:
    """Insert or update a clinic profile. ``active_jobs`` is never stored."""
    existed = get_clinic(conn, clinic.id) is not None
    lat, lng = _lat_lng(clinic.coordinate)
    conn.execute(
        """
        INSERT INTO clinics
            (id, clinic_name, clinic_address, additional_details, owner_name,
             owner_phone, is_verified, lat, lng, profile_image_url, status)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            clinic_name = excluded.clinic_name,
            clinic_address = excluded.clinic_address,
            additional_details = excluded.additional_details,
            owner_name = excluded.owner_name,
            owner_phone = excluded.owner_phone,
            is_verified = excluded.is_verified,
            lat = excluded.lat,
            lng = excluded.lng,
            profile_image_url = excluded.profile_image_url,
            status = excluded.status
        """,
        (
            clinic.id,
            clinic.clinic_name,
            clinic.clinic_address,
            clinic.additional_details,
            clinic.owner_name,
            clinic.owner_phone,
            int(clinic.is_verified),
            lat,
            lng,
            clinic.profile_image_url,
            clinic.status.value,
        ),
    )
    return not existed


def get_doctor(conn: sqlite3.Connection, doctor_id: str) -> Doctor | None:
    row = conn.execute("SELECT * FROM doctors WHERE id = ?", (doctor_id,)).fetchone()
    return _doctor(row) if row is not None else None


def get_clinic(conn: sqlite3.Connection, clinic_id: str) -> Clinic | None:
    row = conn.execute(_CLINIC_SELECT + " WHERE c.id = ?", (clinic_id,)).fetchone()
    return _clinic(row) if row is not None else None


def list_doctors(conn: sqlite3.Connection, active_only: bool = True) -> list[Doctor]:
    """Return doctors in insertion order."""
    sql = "SELECT * FROM doctors"
    if active_only:
        sql += " WHERE status = 'ACTIVE'"
    rows = conn.execute(sql + " ORDER BY rowid").fetchall()
    return [_doctor(r) for r in rows]


def list_clinics(conn: sqlite3.Connection, active_only: bool = True) -> list[Clinic]:
    """Return clinics in insertion order, with ``active_jobs`` filled in."""
    sql = _CLINIC_SELECT
    if active_only:
        sql += " WHERE c.status = 'ACTIVE'"
    rows = conn.execute(sql + " ORDER BY c.rowid").fetchall()
    return [_clinic(r) for r in rows]


# ---------------------------------------------------------------------------
# Job requirements
# ---------------------------------------------------------------------------


def insert_requirement(conn: sqlite3.Connection, requirement: JobRequirement) -> None:
    lat, lng = _lat_lng(requirement.coordinate)
    conn.execute(
        """
        INSERT INTO job_requirements
            (id, clinic_id, title, description, type, specialization, location,
             lat, lng, target_date, additional_information, status, created_at,
             applications_count)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            requirement.id,
            requirement.clinic_id,
            requirement.title,
            requirement.description,
            requirement.type.value,
            requirement.specialization.value if requirement.specialization else None,
            requirement.location,
            lat,
            lng,
            requirement.target_date.isoformat() if requirement.target_date else None,
            requirement.additional_information,
            requirement.status.value,
            requirement.created_at.isoformat(),
            requirement.applications_count,
        ),
    )


def update_requirement(conn: sqlite3.Connection, requirement: JobRequirement) -> None:
    """Overwrite the clinic-editable fields of an existing requirement."""
    lat, lng = _lat_lng(requirement.coordinate)
    conn.execute(
        """
        UPDATE job_requirements SET
            title = ?, description = ?, type = ?, specialization = ?,
            location = ?, lat = ?, lng = ?, target_date = ?,
            additional_information = ?
        WHERE id = ?
        """,
        (
            requirement.title,
            requirement.description,
            requirement.type.value,
            requirement.specialization.value if requirement.specialization else None,
            requirement.location,
            lat,
            lng,
            requirement.target_date.isoformat() if requirement.target_date else None,
            requirement.additional_information,
            requirement.id,
        ),
    )


def set_requirement_status(
    conn: sqlite3.Connection,
    requirement_id: str,
    status: RequirementStatus,
) -> None:
    conn.execute(
        "UPDATE job_requirements SET status = ? WHERE id = ?",
        (status.value, requirement_id),
    )


def increment_applications(conn: sqlite3.Connection, requirement_id: str) -> None:
    conn.execute(
        "UPDATE job_requirements SET applications_count = applications_count + 1 WHERE id = ?",
        (requirement_id,),
    )


def get_requirement(conn: sqlite3.Connection, requirement_id: str) -> JobRequirement | None:
    row = conn.execute(
        "SELECT * FROM job_requirements WHERE id = ?", (requirement_id,)
    ).fetchone()
    return _requirement(row) if row is not None else None


def list_requirements(
    conn: sqlite3.Connection,
    clinic_id: str | None = None,
    status: RequirementStatus | None = None,
) -> list[JobRequirement]:
    """Return requirements newest first, optionally scoped to a clinic or status."""
    clauses: list[str] = []
    params: list[Any] = []
    if clinic_id is not None:
        clauses.append("clinic_id = ?")
        params.append(clinic_id)
    if status is not None:
        clauses.append("status = ?")
        params.append(status.value)
    sql = "SELECT * FROM job_requirements"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    rows = conn.execute(sql + " ORDER BY created_at DESC, rowid DESC", params).fetchall()
    return [_requirement(r) for r in rows]


def list_requirement_listings(conn: sqlite3.Connection) -> list[RequirementListing]:
    """Return every POSTED requirement of an active clinic, joined with that clinic."""
    clinics = {c.id: c for c in list_clinics(conn)}
    rows = conn.execute(
        "SELECT * FROM job_requirements WHERE status = 'POSTED' ORDER BY rowid"
    ).fetchall()
    listings: list[RequirementListing] = []
    for row in rows:
        clinic = clinics.get(row["clinic_id"])
        if clinic is None:
            continue
        listings.append(RequirementListing(requirement=_requirement(row), clinic=clinic))
    return listings


# ---------------------------------------------------------------------------
# Pitches
# ---------------------------------------------------------------------------


def insert_pitch(conn: sqlite3.Connection, pitch: Pitch) -> None:
    """Insert a pitch. Raises sqlite3.IntegrityError on an active duplicate."""
    conn.execute(
        """
        INSERT INTO pitches
            (id, doctor_id, job_requirement_id, message, status, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            pitch.id,
            pitch.doctor_id,
            pitch.job_requirement_id,
            pitch.message,
            pitch.status.value,
            pitch.created_at.isoformat(),
            pitch.updated_at.isoformat(),
        ),
    )


def get_pitch(conn: sqlite3.Connection, pitch_id: str) -> Pitch | None:
    row = conn.execute("SELECT * FROM pitches WHERE id = ?", (pitch_id,)).fetchone()
    return _pitch(row) if row is not None else None


def find_active_pitch(
    conn: sqlite3.Connection,
    doctor_id: str,
    requirement_id: str,
) -> Pitch | None:
    row = conn.execute(
        """
        SELECT * FROM pitches
        WHERE doctor_id = ? AND job_requirement_id = ?
          AND status IN ('PENDING', 'ACCEPTED')
        LIMIT 1
        """,
        (doctor_id, requirement_id),
    ).fetchone()
    return _pitch(row) if row is not None else None


def transition_pitch(
    conn: sqlite3.Connection,
    pitch_id: str,
    expected: PitchStatus,
    new: PitchStatus,
    at: datetime,
) -> bool:
    """Compare-and-set a pitch status. Returns False if the pitch was not in ``expected``."""
    cursor = conn.execute(
        "UPDATE pitches SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
        (new.value, at.isoformat(), pitch_id, expected.value),
    )
    return cursor.rowcount == 1


def list_pitches(
    conn: sqlite3.Connection,
    doctor_id: str | None = None,
    requirement_id: str | None = None,
    clinic_id: str | None = None,
    limit: int | None = None,
) -> list[Pitch]:
    """Return pitches newest first, filtered by any combination of owner keys."""
    clauses: list[str] = []
    params: list[Any] = []
    if doctor_id is not None:
        clauses.append("p.doctor_id = ?")
        params.append(doctor_id)
    if requirement_id is not None:
        clauses.append("p.job_requirement_id = ?")
        params.append(requirement_id)
    if clinic_id is not None:
        clauses.append("r.clinic_id = ?")
        params.append(clinic_id)
    sql = "SELECT p.* FROM pitches p JOIN job_requirements r ON r.id = p.job_requirement_id"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY p.created_at DESC, p.rowid DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    rows = conn.execute(sql, params).fetchall()
    return [_pitch(r) for r in rows]


def active_pitch_requirement_ids(conn: sqlite3.Connection, doctor_id: str) -> set[str]:
    rows = conn.execute(
        """
        SELECT job_requirement_id FROM pitches
        WHERE doctor_id = ? AND status IN ('PENDING', 'ACCEPTED')
        """,
        (doctor_id,),
    ).fetchall()
    return {r["job_requirement_id"] for r in rows}


def count_pitches_by_status(
    conn: sqlite3.Connection,
    doctor_id: str | None = None,
    clinic_id: str | None = None,
) -> dict[PitchStatus, int]:
    """Group pitch counts by status; every status is present, zero if absent."""
    clauses: list[str] = []
    params: list[Any] = []
    if doctor_id is not None:
        clauses.append("p.doctor_id = ?")
        params.append(doctor_id)
    if clinic_id is not None:
        clauses.append("r.clinic_id = ?")
        params.append(clinic_id)
    sql = (
        "SELECT p.status, COUNT(*) AS n FROM pitches p "
        "JOIN job_requirements r ON r.id = p.job_requirement_id"
    )
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " GROUP BY p.status"
    counts = dict.fromkeys(PitchStatus, 0)
    for row in conn.execute(sql, params).fetchall():
        counts[PitchStatus(row["status"])] = row["n"]
    return counts


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


def insert_connection(conn: sqlite3.Connection, connection: Connection) -> bool:
    """Insert a connection unless one already exists for its pitch.

    Returns True if a new row was inserted, False if the pitch was already connected.
    """
    cursor = conn.execute(
        """
        INSERT INTO connections
            (id, pitch_id, doctor_id, clinic_id, job_requirement_id, connected_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(pitch_id) DO NOTHING
        """,
        (
            connection.id,
            connection.pitch_id,
            connection.doctor_id,
            connection.clinic_id,
            connection.job_requirement_id,
            connection.connected_at.isoformat(),
        ),
    )
    return cursor.rowcount == 1


def get_connection_by_pitch(conn: sqlite3.Connection, pitch_id: str) -> Connection | None:
    row = conn.execute(
        "SELECT * FROM connections WHERE pitch_id = ?", (pitch_id,)
    ).fetchone()
    return _connection(row) if row is not None else None


def connection_exists(
    conn: sqlite3.Connection,
    doctor_id: str,
    clinic_id: str,
    requirement_id: str,
) -> bool:
    row = conn.execute(
        """
        SELECT 1 FROM connections
        WHERE doctor_id = ? AND clinic_id = ? AND job_requirement_id = ?
        LIMIT 1
        """,
        (doctor_id, clinic_id, requirement_id),
    ).fetchone()
    return row is not None


def list_connections(
    conn: sqlite3.Connection,
    doctor_id: str | None = None,
    clinic_id: str | None = None,
) -> list[Connection]:
    """Return connections newest first."""
    clauses: list[str] = []
    params: list[Any] = []
    if doctor_id is not None:
        clauses.append("doctor_id = ?")
        params.append(doctor_id)
    if clinic_id is not None:
        clauses.append("clinic_id = ?")
        params.append(clinic_id)
    sql = "SELECT * FROM connections"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    rows = conn.execute(sql + " ORDER BY connected_at DESC, rowid DESC", params).fetchall()
    return [_connection(r) for r in rows]
