"""Error taxonomy for the matching and engagement engine.

Every error is terminal for the caller: the engine never retries, and a failed
mutation leaves stored state unchanged.
"""


class MatchError(Exception):
    """Base class for all engine errors. ``code`` is stable for API layers."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(MatchError):
    """Malformed input (blank pitch message, out-of-range coordinate, ...)."""

    code = "validation_error"


class NotFound(MatchError):
    """Referenced doctor, clinic, requirement or pitch does not exist."""

    code = "not_found"


class DuplicateActiveApplication(MatchError):
    """Doctor already has a pending or accepted pitch for this requirement."""

    code = "duplicate_active_application"

    def __init__(self, doctor_id: str, job_requirement_id: str) -> None:
        super().__init__(
            f"Doctor '{doctor_id}' has already applied for requirement '{job_requirement_id}'"
        )
        self.doctor_id = doctor_id
        self.job_requirement_id = job_requirement_id


class Forbidden(MatchError):
    """Acting identity does not own the resource it tried to mutate."""

    code = "forbidden"


class InvalidTransition(MatchError):
    """Pitch state machine violation: the application was already decided."""

    code = "invalid_transition"

    def __init__(self, pitch_id: str, current: str, attempted: str) -> None:
        super().__init__(
            f"Pitch '{pitch_id}' is {current}; cannot move to {attempted}"
        )
        self.pitch_id = pitch_id
        self.current = current
        self.attempted = attempted


class LocationUnavailable(MatchError):
    """No origin coordinate could be resolved for a search."""

    code = "location_unavailable"
