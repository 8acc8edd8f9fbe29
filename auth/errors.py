"""
auth/errors.py -- Typed error taxonomy for the auth core.

Every failure that leaves AuthService is one of the AuthError subclasses below.
Each carries a stable machine-readable `code` and a human-readable `message`;
the HTTP layer maps the class to a status code and never needs to parse text.

InvalidTokenError is raised by the token verifier only. AuthService converts it
to UnauthorizedError, so it never crosses the core/transport seam.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth core failures."""

    code = "auth_error"
    default_message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or missing input."""

    code = "validation_error"
    default_message = "Invalid input."


class ConflictError(AuthError):
    """Duplicate email."""

    code = "conflict"
    default_message = "User already exists."


class NotFoundError(AuthError):
    code = "not_found"
    default_message = "User not found."


class ForbiddenError(AuthError):
    """Account exists but is not allowed to authenticate (is_active = false)."""

    code = "forbidden"
    default_message = "User is not active."


class UnauthorizedError(AuthError):
    """Bad password or an invalid, expired, or mismatched token."""

    code = "unauthorized"
    default_message = "Invalid credentials."


class InternalError(AuthError):
    """Store or crypto failure. The underlying exception is chained, never shown."""

    code = "internal_error"
    default_message = "An unexpected error occurred."


class InvalidTokenError(AuthError):
    code = "invalid_token"
    default_message = "Invalid token."
