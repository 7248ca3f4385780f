"""Domain errors raised by the service layer.

Routers translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""

from __future__ import annotations


class FinTrackError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(FinTrackError):
    """Input rejected before any mutation took place."""

    status_code = 400


class NotFoundError(FinTrackError):
    """Referenced entity is missing or belongs to another user."""

    status_code = 404


class ConflictError(FinTrackError):
    """The requested transition already happened (e.g. bill already paid)."""

    status_code = 409


class PersistenceFailure(FinTrackError):
    """The underlying database call failed."""

    status_code = 503


class ExtractionError(FinTrackError):
    """Receipt extraction failed: model call or response parsing."""

    status_code = 502
