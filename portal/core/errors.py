"""Domain error taxonomy shared by services and routers."""


class PortalError(Exception):
    """Base exception for portal errors.

    Each subclass carries the HTTP status the API reports for it. The
    message is user-readable and safe to return to clients.
    """

    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(PortalError):
    """No session or an invalid session."""

    status_code = 401
    default_message = "Not authenticated"


class Forbidden(PortalError):
    """Authenticated but lacking role or account scope."""

    status_code = 403
    default_message = "Forbidden"


class NotFound(PortalError):
    """Referenced board, release or issue does not exist."""

    status_code = 404
    default_message = "Not found"


class ValidationError(PortalError):
    """Missing or malformed input."""

    status_code = 400
    default_message = "Invalid input"


class UpstreamError(PortalError):
    """The issue tracker call failed or returned an unexpected shape."""

    status_code = 502
    default_message = "Issue tracker request failed"


class ConfigurationError(PortalError):
    """Missing secret or malformed deployment configuration."""

    status_code = 500
    default_message = "Configuration error"


class AuthenticationFailure(PortalError):
    """Webhook signature or timestamp rejected."""

    status_code = 401
    default_message = "Unauthorized"


class MalformedPayload(PortalError):
    """Authenticated webhook body could not be processed."""

    status_code = 400
    default_message = "Processing error"
