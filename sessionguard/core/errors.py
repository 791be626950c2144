"""
Authentication Errors
=====================

Error taxonomy shared by the stores, the managers and the facade.

Propagation Rules:
- Session/token specific errors are raised inside the core and logged
  with their kind
- AuthFacade collapses them to UnauthenticatedError before they reach
  the HTTP layer
- StoreUnavailableError is retried by the store adapter, then surfaces
  as UnauthenticatedError (fail closed)
"""

from __future__ import annotations


class AuthError(Exception):
    """Base exception for authentication failures."""

    kind: str = "auth_error"


class InvalidCredentialsError(AuthError):
    """Raised when a username/password pair does not verify."""

    kind = "invalid_credentials"


class SessionExpiredError(AuthError):
    """Raised when a session is absent or its idle timeout has elapsed."""

    kind = "session_expired"


class SessionInvalidError(AuthError):
    """Raised when a session is presented with a foreign fingerprint."""

    kind = "session_invalid"


class TokenInvalidError(AuthError):
    """Raised when a remember token is unknown (or already consumed)."""

    kind = "token_invalid"


class TokenExpiredError(AuthError):
    """Raised when a remember token is past its expiry."""

    kind = "token_expired"


class UnauthenticatedError(AuthError):
    """Generic failure surfaced to the HTTP layer."""

    kind = "unauthenticated"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class StoreUnavailableError(AuthError):
    """Raised when a backing store times out or fails with an I/O error."""

    kind = "store_unavailable"


class CsrfError(AuthError):
    """Raised when an anti-CSRF token is missing or does not match."""

    kind = "csrf_rejected"


class UserExistsError(Exception):
    """Raised when trying to register a username that already exists."""
    pass


class ValidationError(ValueError):
    """Raised when user input fails validation."""
    pass
