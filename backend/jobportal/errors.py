"""
Error taxonomy for the assessment service.

Service functions raise these; the exception handlers registered in
``jobportal.main`` turn them into ``{"success": false, "message": ...}``
responses with the matching HTTP status.
"""


class PortalError(Exception):
    """Base class for errors whose message is safe to show to the user."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """Missing or malformed input."""

    status_code = 400


class AuthenticationError(PortalError):
    """No actor identity on the request."""

    status_code = 401


class AuthorizationError(PortalError):
    """Actor is known but may not touch the resource."""

    status_code = 403


class NotFoundError(PortalError):
    """
    Resource is absent, or exists but is not owned by the actor.
    Both cases are reported identically.
    """

    status_code = 404


class StateConflictError(PortalError):
    """Attempt is in a state that forbids the requested transition."""

    status_code = 400
