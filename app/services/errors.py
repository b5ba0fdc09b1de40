"""
Domain errors raised by the collaboration services.

Routes do not catch these; the handler registered in app.main turns them
into JSON responses with the matching status code. SyncFailure is the
exception: it is only ever logged by the roster synchronizer.
"""

from fastapi import status


class ChatError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ChatError):
    """Missing or invalid input (bad status value, empty message, oversized file)."""

    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(ChatError):
    """Caller is not a participant, or not the faculty owning the project."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ChatError):
    """Room, message, project or application does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class CapacityExhausted(ChatError):
    """No open positions left at accept time. The transaction was rolled back."""

    status_code = status.HTTP_409_CONFLICT


class SyncFailure(ChatError):
    """The document store could not be brought in line with the relational store."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
