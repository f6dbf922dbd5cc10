"""
OrgTrack Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for each error scenario.
How:   Each exception carries a user-safe message and an optional context dict.
       Global exception handlers (registered in main.py) map them to HTTP
       responses; middleware stages render them directly via
       app.middleware.errors because they run outside FastAPI's handlers.

Exception Hierarchy:
    OrgTrackError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── PayloadTooLargeError     → 413 Payload Too Large
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── DatabaseError            → 500 Internal Server Error

Only `message` is ever sent to the client. `context` is for server-side logs.
"""

from typing import Any, Dict, Optional


class OrgTrackError(Exception):
    """
    Base exception for all OrgTrack application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(OrgTrackError):
    """
    Raised when client input fails validation.

    When:    Malformed JSON, wrong field types, duplicate registration email.
    HTTP:    400 Bad Request
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(OrgTrackError):
    """Credentials were rejected, or the route needs a principal and none is attached."""

    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(OrgTrackError):
    """
    Raised when a requested record does not exist.

    SQLAlchemy returns None for missing rows; services convert that into
    this exception so the route layer stays free of None checks.
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource.capitalize()} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class PayloadTooLargeError(OrgTrackError):
    """The request body is larger than the configured parser limit."""

    status_code = 413

    def __init__(
        self,
        limit: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        if limit % 1024 == 0:
            human = f"{limit // 1024}kb"
        else:
            human = f"{limit} bytes"
        ctx = context or {}
        ctx["limit"] = limit
        super().__init__(message=f"Request body exceeds the {human} limit.", context=ctx)
        self.limit = limit


class RateLimitExceededError(OrgTrackError):
    """
    Raised when a client exceeds the per-address request budget.

    The message is the fixed text clients have always received for this
    condition; `retry_after` feeds the Retry-After header.
    """

    status_code = 429
    MESSAGE = (
        "You have exceeded the allowed rate limit for this endpoint. "
        "Please try again in an hour."
    )

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=self.MESSAGE, context=ctx)
        self.retry_after = retry_after


class DatabaseError(OrgTrackError):
    """
    Raised when a persistence operation fails.

    Security Note:
        The message is the generic, entity-specific text returned to the
        client ("Failed to create team"). The original exception type goes
        into `context` and the log, never into the response.
    """

    status_code = 500

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
