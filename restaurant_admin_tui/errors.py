"""Errors raised by the dashboard's collaborators and editing model.

Every error carries a ``message`` that is safe to show to the operator.
"""

from typing import Any, Optional


class AdminError(Exception):
    """Base class for every user-facing failure."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(AdminError):
    """Raised when a required field is missing or malformed."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class TransportError(AdminError):
    """Raised when a backend call fails or returns a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class NotAuthorizedError(TransportError):
    """Raised when the backend rejects the session (HTTP 401)."""

    def __init__(self, message: str = "Not authorized, please sign in again."):
        super().__init__(message, status_code=401)


class RecordNotFoundError(AdminError):
    """Raised when a targeted record no longer exists."""

    def __init__(self, record_id: Any):
        self.record_id = record_id
        super().__init__(f"Record {record_id} no longer exists")
