"""
Domain errors raised by the poll services.

Each error carries the HTTP status the API layer answers with. Messages for
permission and authentication failures are deliberately generic.
"""
from typing import Optional


class BallotboxError(Exception):
    """Base exception for poll and voting operations."""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BallotboxError):
    """Poll, participant, user or assignment does not exist."""
    status_code = 404
    default_message = "Not found"


class PermissionDenied(BallotboxError):
    """Capability check failed."""
    status_code = 403
    default_message = "Access denied"


class ValidationFailed(BallotboxError):
    """Payload shape or ballot bound violation."""
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, details: Optional[list[dict]] = None):
        super().__init__(message)
        self.details = details or []


class AuthenticationFailed(BallotboxError):
    """Bad token or credentials."""
    status_code = 401
    default_message = "Invalid credentials"


class Conflict(BallotboxError):
    """Duplicate or already-consumed resource."""
    status_code = 409
    default_message = "Conflict"


class StateError(BallotboxError):
    """Poll is not in a state that allows the operation."""
    status_code = 403
    default_message = "Poll is not currently open for voting"
