"""
Authentication Facade
=====================

The three calls the HTTP layer makes: login, resume and logout.

Security Features:
- Session fixation defense: any pre-login session is destroyed and a
  fresh id issued on login
- Remember tokens are rotated on every use
- Fail closed: every session, token or store failure becomes a single
  UnauthenticatedError; the specific kind is only logged and audited
- Logout always succeeds from the caller's point of view
"""

from __future__ import annotations

import logging
from typing import Optional, Set, Tuple

from sessionguard.core.auth.authenticator import Authenticator
from sessionguard.core.auth.csrf import csrf_tokens_match
from sessionguard.core.auth.models import AuthenticatedContext, IssuedToken, LoginResult, Session, User
from sessionguard.core.auth.remember_tokens import RememberTokenManager
from sessionguard.core.auth.session_control import SessionManager
from sessionguard.core.errors import (
    AuthError,
    CsrfError,
    InvalidCredentialsError,
    StoreUnavailableError,
    UnauthenticatedError,
)
from sessionguard.security.audit import (
    AuditEventType,
    AuditSeverity,
    TamperAwareAuditLog,
    audit_log,
)


RESUMED_FROM_SESSION = "session"
RESUMED_FROM_REMEMBER_TOKEN = "remember_token"


class AuthFacade:
    """
    Entry point for the request-handling layer.

    Usage:
        facade = AuthFacade(authenticator, sessions, tokens)

        result = facade.login("alice", "correct-pw", True, fingerprint)
        context = facade.resume(result.session_id, fingerprint=fingerprint)
        facade.logout(result.session_id, result.remember_token.raw_token)
    """

    __slots__ = ("_authenticator", "_sessions", "_tokens", "_audit", "_log")

    def __init__(
        self,
        authenticator: Authenticator,
        sessions: SessionManager,
        tokens: RememberTokenManager,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> None:
        self._authenticator = authenticator
        self._sessions = sessions
        self._tokens = tokens
        self._audit = audit
        self._log = logging.getLogger("sessionguard.facade")

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def tokens(self) -> RememberTokenManager:
        return self._tokens

    def register(self, username: str, password: str) -> User:
        """
        Create a user account.

        Raises:
            ValidationError: Malformed username or password
            UserExistsError: Username already taken
        """
        user = self._authenticator.credentials.register(username, password)
        audit_log(
            self._audit, AuditEventType.USER_REGISTERED, AuditSeverity.INFO,
            "User registered", user_id=user.id,
        )
        return user

    def login(
        self,
        username: str,
        password: str,
        remember_requested: bool,
        fingerprint: str,
        previous_session_id: Optional[str] = None,
    ) -> LoginResult:
        """
        Authenticate and open a new session.

        Args:
            username: Submitted username
            password: Submitted password
            remember_requested: Issue a remember-me token as well
            fingerprint: Client fingerprint the session is bound to
            previous_session_id: Session id the client already held; it is
                destroyed so the pre-login id can never become authenticated

        Returns:
            LoginResult with the new session id, its CSRF token and the
            optional remember token

        Raises:
            InvalidCredentialsError: Wrong username or password
            UnauthenticatedError: A backing store failed
        """
        try:
            user_id = self._authenticator.authenticate(username, password)
        except InvalidCredentialsError:
            audit_log(
                self._audit, AuditEventType.LOGIN_FAILURE, AuditSeverity.WARNING,
                "Invalid credentials",
            )
            raise
        except StoreUnavailableError as exc:
            self._store_failure("login", exc)
            raise UnauthenticatedError() from exc

        try:
            if previous_session_id:
                self._sessions.destroy(previous_session_id)
            session = self._sessions.create(user_id, fingerprint)
        except StoreUnavailableError as exc:
            self._store_failure("login", exc)
            raise UnauthenticatedError() from exc

        remember = None
        if remember_requested:
            try:
                remember = self._tokens.issue(user_id)
            except StoreUnavailableError as exc:
                self._store_failure("login", exc)
                self._discard_session(session)
                raise UnauthenticatedError() from exc

        self._log.info("User %s logged in (remember=%s)", user_id, remember is not None)
        audit_log(
            self._audit, AuditEventType.LOGIN_SUCCESS, AuditSeverity.INFO,
            "Login succeeded", user_id=user_id,
            details={"remember": remember is not None},
        )
        return LoginResult(
            user_id=user_id,
            session_id=session.session_id,
            csrf_token=session.csrf_token,
            remember_token=remember,
        )

    def resume(
        self,
        session_id: Optional[str] = None,
        remember_token: Optional[str] = None,
        *,
        fingerprint: str,
    ) -> AuthenticatedContext:
        """
        Establish who is making the request.

        The session is tried first. If it is missing, expired or invalid,
        the remember token (if any) is consumed, rotated and used to open
        a new session.

        Raises:
            UnauthenticatedError: Neither credential is usable
        """
        if session_id:
            try:
                session = self._sessions.validate(session_id, fingerprint)
            except AuthError as exc:
                self._log.debug("Session resume failed: %s", exc.kind)
            else:
                return AuthenticatedContext(
                    user_id=session.user_id,
                    session_id=session.session_id,
                    csrf_token=session.csrf_token,
                    resumed_from=RESUMED_FROM_SESSION,
                )

        if remember_token:
            try:
                user_id, replacement = self._tokens.resume(remember_token)
            except AuthError as exc:
                self._log.debug("Remember-token resume failed: %s", exc.kind)
                raise UnauthenticatedError() from None

            try:
                session = self._sessions.create(user_id, fingerprint)
            except AuthError as exc:
                self._store_failure("session create", exc)
                # Nobody will ever receive the replacement
                self._discard_token(replacement)
            else:
                self._log.info("Session re-established from remember token for user %s", user_id)
                return AuthenticatedContext(
                    user_id=user_id,
                    session_id=session.session_id,
                    csrf_token=session.csrf_token,
                    resumed_from=RESUMED_FROM_REMEMBER_TOKEN,
                    remember_token=replacement,
                )

        raise UnauthenticatedError()

    def logout(self, session_id: Optional[str] = None, remember_token: Optional[str] = None) -> None:
        """
        End the session and, when a remember token is presented, revoke
        every remember token of its owner and of the session's owner.

        Never raises: store failures are logged and audited.
        """
        owners: Set[str] = set()

        if remember_token:
            try:
                owner = self._tokens.owner_of(remember_token)
            except AuthError as exc:
                self._store_failure("logout", exc)
            else:
                if owner:
                    owners.add(owner)

        if session_id:
            try:
                session = self._sessions.destroy(session_id)
            except AuthError as exc:
                self._store_failure("logout", exc)
            else:
                if session is not None:
                    audit_log(
                        self._audit, AuditEventType.LOGOUT, AuditSeverity.INFO,
                        "Logged out", user_id=session.user_id,
                    )
                    if remember_token:
                        owners.add(session.user_id)

        for owner in sorted(owners):
            try:
                self._tokens.revoke(owner)
            except AuthError as exc:
                self._store_failure("logout", exc)

    def is_active(self, session_id: Optional[str]) -> bool:
        """Whether a session record exists, without refreshing it."""
        if not session_id:
            return False
        try:
            return self._sessions.peek(session_id) is not None
        except AuthError as exc:
            self._store_failure("session lookup", exc)
            return False

    def verify_csrf(self, session_id: Optional[str], presented_token: Optional[str]) -> bool:
        """
        Check the anti-CSRF token presented with a state-changing request.

        Returns:
            True only if the session exists and the token matches it
        """
        if not session_id:
            return False

        try:
            session = self._sessions.peek(session_id)
        except AuthError as exc:
            self._store_failure("csrf check", exc)
            return False

        if session is not None and csrf_tokens_match(session.csrf_token, presented_token):
            return True

        self._log.warning("CSRF token rejected", extra={"auth_event": CsrfError.kind})
        audit_log(
            self._audit, AuditEventType.CSRF_REJECTED, AuditSeverity.WARNING,
            "CSRF token rejected", user_id=session.user_id if session else None,
        )
        return False

    def purge_expired(self) -> Tuple[int, int]:
        """
        Delete idle sessions and expired remember tokens.

        Store failures are logged and count as zero removed.

        Returns:
            (sessions removed, tokens removed)
        """
        removed = []
        for name, purge in (("session purge", self._sessions.purge_expired),
                            ("token purge", self._tokens.purge_expired)):
            try:
                removed.append(purge())
            except AuthError as exc:
                self._store_failure(name, exc)
                removed.append(0)
        return removed[0], removed[1]

    def _discard_session(self, session: Session) -> None:
        try:
            self._sessions.destroy(session.session_id)
        except AuthError as exc:
            self._store_failure("session cleanup", exc)

    def _discard_token(self, token: IssuedToken) -> None:
        try:
            self._tokens.discard(token.raw_token)
        except AuthError as exc:
            self._store_failure("token cleanup", exc)

    def _store_failure(self, operation: str, exc: AuthError) -> None:
        self._log.error(
            "%s failed: %s", operation, exc.kind,
            extra={"auth_event": exc.kind},
        )
        audit_log(
            self._audit, AuditEventType.STORE_UNAVAILABLE, AuditSeverity.CRITICAL,
            f"{operation} failed", details={"kind": exc.kind},
        )
