"""
auth/errors.py -- Error taxonomy for the session core.

Every failure the session manager can surface is a SessionError subclass
carrying the HTTP status and a stable machine-readable code. api/main.py
renders them into the standard error envelope; nothing in auth/ imports
FastAPI to do so.

Request-shape problems (missing email, malformed JSON) never reach this layer:
FastAPI rejects them with RequestValidationError at the boundary.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for all session-core failures."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Internal-only detail for logs. Never rendered into a response body.
        self.reason = reason or message


class UnauthorizedError(SessionError):
    """Wrong password, unknown/invalid refresh token, or missing bearer header."""

    status_code = 401
    code = "unauthorized"


class ForbiddenError(SessionError):
    """Access token present but its signature or expiry check failed."""

    status_code = 403
    code = "forbidden"


class NotFoundError(SessionError):
    """Login identifier (or requested account) has no matching record."""

    status_code = 404
    code = "not_found"


class ConflictError(SessionError):
    """Account email already registered."""

    status_code = 409
    code = "conflict"


class InvalidInputError(SessionError):
    """Account field rules violated (password policy, email shape)."""

    status_code = 400
    code = "bad_request"


class InternalError(SessionError):
    """Store unavailable or unexpected codec failure."""

    status_code = 500
    code = "internal_error"


class SessionTimeoutError(InternalError):
    """A store call or hash verification exceeded the per-request deadline."""

    status_code = 504
    code = "timeout"
