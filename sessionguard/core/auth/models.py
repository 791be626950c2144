"""
Authentication Records
======================

Typed records owned by the stores. Stores hand out copies; no record
is shared by mutable reference between requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass
class User:
    """
    User account representation.

    Note: password_hash is never exposed in repr or str.
    """
    id: str
    username: str
    password_hash: str
    created_at: datetime
    updated_at: datetime

    def __repr__(self) -> str:
        """Safe representation without password hash."""
        return f"User(id={self.id!r}, username={self.username!r})"


@dataclass
class Session:
    """
    Server-side session record.

    A session is valid only while it has seen activity within the idle
    timeout and is presented with the fingerprint it was created for.
    """
    session_id: str
    user_id: str
    created_at: datetime
    last_activity_at: datetime
    fingerprint: str
    csrf_token: str

    def __repr__(self) -> str:
        """Safe representation without identifier or CSRF token."""
        return (
            f"Session(user_id={self.user_id!r}, "
            f"last_activity_at={self.last_activity_at.isoformat()})"
        )

    def idle_for(self, now: datetime) -> timedelta:
        return now - self.last_activity_at

    def is_idle_expired(self, now: datetime, idle_timeout: timedelta) -> bool:
        """Valid only while `now - last_activity_at < idle_timeout`."""
        return self.idle_for(now) >= idle_timeout

    def is_lifetime_exceeded(self, now: datetime, absolute_timeout: Optional[timedelta]) -> bool:
        if absolute_timeout is None:
            return False
        return now - self.created_at >= absolute_timeout


@dataclass
class RememberToken:
    """
    Persistent remember-me record.

    Only the one-way hash of the token is kept; the raw value exists
    transiently in the response and during verification.
    """
    token_hash: str
    user_id: str
    issued_at: datetime
    expires_at: datetime

    def __repr__(self) -> str:
        return (
            f"RememberToken(user_id={self.user_id!r}, "
            f"expires_at={self.expires_at.isoformat()})"
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """A freshly issued raw remember token and its expiry."""
    raw_token: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"IssuedToken(expires_at={self.expires_at.isoformat()})"


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Outcome of a successful login."""
    user_id: str
    session_id: str
    csrf_token: str
    remember_token: Optional[IssuedToken] = None

    def __repr__(self) -> str:
        return f"LoginResult(user_id={self.user_id!r}, remember={self.remember_token is not None})"


@dataclass(frozen=True, slots=True)
class AuthenticatedContext:
    """
    Request-scoped result of AuthFacade.resume().

    `remember_token` is set only when a remember token was consumed and
    rotated; the HTTP layer must then replace the client's cookie.
    """
    user_id: str
    session_id: str
    csrf_token: str
    resumed_from: str  # "session" or "remember_token"
    remember_token: Optional[IssuedToken] = None

    def __repr__(self) -> str:
        return (
            f"AuthenticatedContext(user_id={self.user_id!r}, "
            f"resumed_from={self.resumed_from!r})"
        )
