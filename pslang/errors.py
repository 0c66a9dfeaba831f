"""
Error taxonomy for the PS-LANG API.

Every error a handler can raise carries the HTTP status it maps to. The
application-level exception handler in pslang.api.app turns any ApiError
into a JSON body of the form {"error": message}.
"""

from __future__ import annotations


class ApiError(Exception):
    """Base class for errors that surface to API callers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(ApiError):
    status_code = 400
    default_message = "Bad request"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Conflict"


class UpstreamError(ApiError):
    """A third-party API failed. The message is diagnostic text only."""

    status_code = 500
    default_message = "Upstream service error"


class ConfigurationError(ApiError):
    status_code = 500
    default_message = "Service not configured"


class TokenExchangeError(UpstreamError):
    """The provider's token endpoint rejected an authorization code."""

    default_message = "Failed to exchange code for tokens"


class NotConnected(BadRequest):
    default_message = "Provider not connected"


class TokenExpired(Unauthorized):
    default_message = "Token expired"


class InvalidStateError(BadRequest):
    """OAuth state token failed signature or freshness checks."""

    default_message = "Invalid or expired OAuth state"
