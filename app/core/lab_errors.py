from __future__ import annotations

from typing import Any


class LabError(Exception):
    error_code = 'LabError'

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {'error': self.error_code, 'message': self.message, **self.details}


class NotFoundError(LabError, LookupError):
    error_code = 'NotFound'


class ResourceInactiveError(LabError):
    error_code = 'ResourceInactive'


class BookingConflictError(LabError):
    """Raised for resource-level, person-level or PC-code collisions.

    ``conflict_type`` is one of ``resource``, ``person`` or ``pc_number`` and
    ``details`` identifies the blocking record so callers can render it.
    """

    error_code = 'Conflict'

    def __init__(self, message: str, *, conflict_type: str, details: dict[str, Any] | None = None):
        super().__init__(message, details={'conflict_type': conflict_type, **(details or {})})
        self.conflict_type = conflict_type


class ConfirmationRequiredError(LabError):
    error_code = 'ConfirmationRequired'


class LabValidationError(LabError, ValueError):
    error_code = 'ValidationError'
