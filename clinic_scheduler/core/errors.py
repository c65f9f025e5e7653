"""Typed failures raised by the scheduling services.

Routes never catch these; ``main.py`` registers one handler that renders them
into the ``{"success": false, "error": {...}}`` envelope the client parses.
"""

from fastapi import status


class SchedulingError(Exception):
    code = "SCHEDULING_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SchedulingError):
    """Malformed input, rejected before the ledger is touched."""
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(SchedulingError):
    """The slot was taken; the caller has to pick another one."""
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class NotFound(SchedulingError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(SchedulingError):
    code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT
