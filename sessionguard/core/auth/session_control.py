"""
Session Control
================

Server-side sessions with idle-timeout enforcement and fixation
defenses.

State machine per session:
    Active -> Active   on activity (last_activity_at refreshed)
    Active -> Expired  idle timeout elapsed (record deleted)
    Active -> Revoked  explicit logout (record deleted)
    Active -> Invalid  fingerprint mismatch (record deleted, never refreshed)

Security Features:
- Cryptographically random session ids (256 bits by default)
- Id collisions rejected at insert time
- Session-id rotation on privilege change
- Fresh anti-CSRF token per session
- Constant-time fingerprint comparison
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Final, NoReturn, Optional

from sessionguard.core.auth.csrf import generate_csrf_token
from sessionguard.core.auth.fingerprint import fingerprints_match
from sessionguard.core.auth.models import Session
from sessionguard.core.errors import (
    SessionExpiredError,
    SessionInvalidError,
    StoreUnavailableError,
)
from sessionguard.security.audit import (
    AuditEventType,
    AuditSeverity,
    TamperAwareAuditLog,
    audit_log,
)
from sessionguard.security.constants import SESSION_ID_BYTES, SESSION_IDLE_TIMEOUT_SECONDS

if TYPE_CHECKING:
    from sessionguard.core.config import SecurityConfig
    from sessionguard.db.base import SessionStore


MAX_ID_ATTEMPTS: Final[int] = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Creates, validates, refreshes and destroys sessions.

    SessionManager is the only component that mutates session records.

    Usage:
        manager = SessionManager(InMemorySessionStore())

        # After successful authentication
        session = manager.create(user_id, fingerprint)

        # On every request
        session = manager.validate(session_id, fingerprint)

        # Logout
        manager.destroy(session_id)
    """

    __slots__ = (
        "_store", "_idle_timeout", "_absolute_timeout",
        "_id_bytes", "_clock", "_audit", "_log",
    )

    def __init__(
        self,
        store: "SessionStore",
        idle_timeout_seconds: int = SESSION_IDLE_TIMEOUT_SECONDS,
        absolute_timeout_seconds: Optional[int] = None,
        session_id_bytes: int = SESSION_ID_BYTES,
        clock: Callable[[], datetime] = _utcnow,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> None:
        """
        Initialize the session manager.

        Args:
            store: Backing session store
            idle_timeout_seconds: Inactivity allowed before expiry
            absolute_timeout_seconds: Optional cap on total session age
            session_id_bytes: Entropy of generated ids (>= 16)
            clock: Source of the current UTC time
            audit: Optional audit log
        """
        if session_id_bytes < 16:
            raise ValueError("session ids need at least 128 bits of entropy")

        self._store = store
        self._idle_timeout = timedelta(seconds=idle_timeout_seconds)
        self._absolute_timeout = (
            timedelta(seconds=absolute_timeout_seconds)
            if absolute_timeout_seconds is not None else None
        )
        self._id_bytes = session_id_bytes
        self._clock = clock
        self._audit = audit
        self._log = logging.getLogger("sessionguard.sessions")

    @classmethod
    def from_config(
        cls,
        store: "SessionStore",
        security: "SecurityConfig",
        clock: Callable[[], datetime] = _utcnow,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> SessionManager:
        return cls(
            store,
            idle_timeout_seconds=security.idle_timeout_seconds,
            absolute_timeout_seconds=security.absolute_timeout_seconds,
            session_id_bytes=security.session_id_bytes,
            clock=clock,
            audit=audit,
        )

    @property
    def idle_timeout(self) -> timedelta:
        return self._idle_timeout

    def _generate_id(self) -> str:
        """Generate a cryptographically secure session id."""
        return secrets.token_urlsafe(self._id_bytes)

    def create(self, user_id: str, fingerprint: str) -> Session:
        """
        Create a new session for an authenticated user.

        Returns:
            The stored Session; its session_id goes to the client as an
            HttpOnly, Secure, SameSite=Strict cookie

        Raises:
            StoreUnavailableError: If no unused id could be allocated or
                the store failed
        """
        for _ in range(MAX_ID_ATTEMPTS):
            now = self._clock()
            session = Session(
                session_id=self._generate_id(),
                user_id=user_id,
                created_at=now,
                last_activity_at=now,
                fingerprint=fingerprint,
                csrf_token=generate_csrf_token(),
            )
            if self._store.insert(session):
                self._log.info("Session created for user %s", user_id)
                audit_log(
                    self._audit, AuditEventType.SESSION_CREATED, AuditSeverity.INFO,
                    "Session created", user_id=user_id,
                )
                return session

            self._log.warning("Session id collision, regenerating")

        raise StoreUnavailableError("Could not allocate an unused session id")

    def validate(self, session_id: str, fingerprint: str) -> Session:
        """
        Validate a session and record the activity.

        Returns:
            The session with refreshed last_activity_at

        Raises:
            SessionExpiredError: Absent, idle-expired or past its absolute
                lifetime (the record is deleted)
            SessionInvalidError: Fingerprint mismatch (the record is deleted)
        """
        session = self._store.get(session_id)
        if session is None:
            self._expired(None, "Session not found")

        now = self._clock()

        if session.is_idle_expired(now, self._idle_timeout):
            self._store.pop(session_id)
            self._expired(session.user_id, "Session idle timeout elapsed")

        if session.is_lifetime_exceeded(now, self._absolute_timeout):
            self._store.pop(session_id)
            self._expired(session.user_id, "Session absolute lifetime elapsed")

        if not fingerprints_match(session.fingerprint, fingerprint):
            self._store.pop(session_id)
            self._log.warning(
                "Fingerprint mismatch for user %s; session destroyed",
                session.user_id,
                extra={"auth_event": SessionInvalidError.kind},
            )
            audit_log(
                self._audit, AuditEventType.SESSION_INVALID, AuditSeverity.CRITICAL,
                "Fingerprint mismatch, possible hijack", user_id=session.user_id,
            )
            raise SessionInvalidError("Session fingerprint mismatch")

        if not self._store.touch(session_id, now):
            # Destroyed concurrently between lookup and touch
            self._expired(session.user_id, "Session destroyed during validation")

        return replace(session, last_activity_at=max(now, session.last_activity_at))

    def _expired(self, user_id: Optional[str], reason: str) -> NoReturn:
        self._log.info(
            "%s (user %s)", reason, user_id or "-",
            extra={"auth_event": SessionExpiredError.kind},
        )
        audit_log(
            self._audit, AuditEventType.SESSION_EXPIRED, AuditSeverity.INFO,
            reason, user_id=user_id,
        )
        raise SessionExpiredError(reason)

    def touch(self, session_id: str) -> bool:
        """
        Record activity on a session.

        Returns:
            False if the session no longer exists
        """
        return self._store.touch(session_id, self._clock())

    def peek(self, session_id: str) -> Optional[Session]:
        """Look up a session without validating or refreshing it."""
        return self._store.get(session_id)

    def destroy(self, session_id: str) -> Optional[Session]:
        """
        Remove a session unconditionally. Idempotent.

        Returns:
            The removed session, or None if it was already gone
        """
        session = self._store.pop(session_id)
        if session is not None:
            self._log.info("Session destroyed for user %s", session.user_id)
        return session

    def rotate(self, old_session_id: str, fingerprint: Optional[str] = None) -> Session:
        """
        Replace a session id, preserving the user.

        The old id is invalid once this returns. Call immediately after
        any privilege change.

        Args:
            old_session_id: Id to retire
            fingerprint: Fingerprint for the new session (defaults to the
                old session's)

        Raises:
            SessionExpiredError: If the old session no longer exists
        """
        old = self._store.pop(old_session_id)
        if old is None:
            self._expired(None, "Cannot rotate a missing session")

        new = self.create(old.user_id, fingerprint if fingerprint is not None else old.fingerprint)
        audit_log(
            self._audit, AuditEventType.SESSION_ROTATED, AuditSeverity.INFO,
            "Session id rotated", user_id=old.user_id,
        )
        return new

    def destroy_all(self, user_id: str) -> int:
        """Invalidate all sessions for a user (logout everywhere)."""
        count = self._store.delete_for_user(user_id)
        self._log.info("Destroyed %d sessions for user %s", count, user_id)
        return count

    def purge_expired(self) -> int:
        """Remove idle-expired sessions from the store."""
        count = self._store.purge_idle(self._clock() - self._idle_timeout)
        if count:
            self._log.info("Purged %d idle sessions", count)
        return count
