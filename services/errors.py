"""
Error taxonomy for the result core.

Routers do not catch these; ``main.py`` maps each class to an HTTP status.
"""

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from logger import get_logger

log = get_logger(__name__)


class ResultSystemError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInput(ResultSystemError):
    """Malformed percentage, non-positive full marks/credit, missing identifiers."""
    status_code = 400


class NotFound(ResultSystemError):
    status_code = 404


class Conflict(ResultSystemError):
    """Duplicate mark for the same student, subject, exam type and year."""
    status_code = 400


class StorageError(ResultSystemError):
    """A storage call failed; ``phase`` names the step that was running."""
    status_code = 500

    def __init__(self, phase: str, detail: str):
        super().__init__(f"{phase} failed: {detail}")
        self.phase = phase


@contextmanager
def storage_phase(phase: str):
    """Re-raise database failures inside the block as StorageError(phase)."""
    try:
        yield
    except SQLAlchemyError as exc:
        log.error("Storage failure during %s: %s", phase, exc)
        raise StorageError(phase, str(exc)) from exc
