"""Domain exceptions.

Services raise these instead of HTTP errors; the application maps each
class to a status code and renders the standard
``{"success": false, "message": ...}`` envelope.
"""

from fastapi import status


class FlowOpsError(Exception):
    """Base exception for FlowOps domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"
    code: str = "INTERNAL"

    def __init__(self, message: str | None = None, code: str | None = None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ValidationFailed(FlowOpsError):
    """Malformed or missing input, or a field constraint violation."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"
    code = "VALIDATION_ERROR"


class Unauthenticated(FlowOpsError):
    """Missing or invalid credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authorized to access this route"
    code = "UNAUTHENTICATED"


class Unauthorized(FlowOpsError):
    """Authenticated, but lacking the role or relationship the operation needs."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized to perform this action"
    code = "UNAUTHORIZED"


class NotFound(FlowOpsError):
    """Referenced entity does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"
    code = "NOT_FOUND"


class Conflict(FlowOpsError):
    """Uniqueness or state-precondition violation.

    Rendered as 400, like the rest of the client-side rule violations.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Conflicting request"
    code = "CONFLICT"


class RateLimited(FlowOpsError):
    """Too many requests from one client within the limiter window."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please slow down."
    code = "RATE_LIMITED"

    def __init__(self, message: str | None = None, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(message)
