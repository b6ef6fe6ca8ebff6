"""
core/errors.py -- Exception taxonomy shared by every layer.

Each class carries the HTTP status and machine-readable code it maps to, so
api/main.py can render all of them with a single exception handler into the
standard ErrorResponse envelope. Route handlers raise these instead of
building HTTPException details by hand.

Stores never raise these -- they return None/False for absent rows and let
SQLAlchemy errors propagate. Translation to the taxonomy happens in routes.

Layer rule: core/ is the kernel. No imports from api/, auth/, or board/.
"""

from __future__ import annotations


class BoardError(Exception):
    """Base class. Also the fallback for unexpected failures (500)."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail


class ValidationError(BoardError):
    """Missing or invalid required input."""

    status_code = 400
    code = "validation_error"


class AuthenticationError(BoardError):
    """The request does not carry a usable session."""

    status_code = 401
    code = "unauthorized"


class MissingCredentials(AuthenticationError):
    """No Authorization header, or no token after the Bearer scheme."""

    code = "missing_credentials"


class InvalidCredentials(AuthenticationError):
    """Token present but its signature or expiry check failed."""

    status_code = 403
    code = "invalid_token"


class AuthorizationError(BoardError):
    """Authenticated, but not permitted to act on this resource."""

    status_code = 403
    code = "forbidden"


class NotFoundError(BoardError):
    status_code = 404
    code = "not_found"


class PersistenceError(BoardError):
    status_code = 500
    code = "persistence_error"
