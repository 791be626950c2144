"""
Remember-Me Tokens
==================

Long-lived, single-use tokens that re-establish a session without a
password.

Security Features:
- High-entropy random tokens (256 bits by default)
- Only SHA-256 hashes stored; a store compromise yields no usable token
- Single use: every successful resume consumes the token and issues a
  replacement, so a stolen token is good for at most one use
- Consumption is one atomic pop, so concurrent replays cannot both win
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Final, NoReturn, Optional, Tuple

from sessionguard.core.auth.models import IssuedToken, RememberToken
from sessionguard.core.errors import (
    StoreUnavailableError,
    TokenExpiredError,
    TokenInvalidError,
)
from sessionguard.security.audit import (
    AuditEventType,
    AuditSeverity,
    TamperAwareAuditLog,
    audit_log,
)
from sessionguard.security.constants import REMEMBER_TOKEN_BYTES, REMEMBER_TOKEN_LIFETIME_DAYS

if TYPE_CHECKING:
    from sessionguard.core.config import SecurityConfig
    from sessionguard.db.base import RememberTokenStore


MAX_ISSUE_ATTEMPTS: Final[int] = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_token(raw_token: str) -> str:
    """
    Hash a remember token for storage and lookup.

    SHA-256 is enough here: the input is a 256-bit random value, not a
    guessable password.
    """
    return hashlib.sha256(raw_token.encode()).hexdigest()


class RememberTokenManager:
    """
    Issues, verifies and revokes remember-me tokens.

    Usage:
        tokens = RememberTokenManager(InMemoryRememberTokenStore())

        issued = tokens.issue(user_id)          # send issued.raw_token to client
        user_id, replacement = tokens.resume(raw_token_from_cookie)
        tokens.revoke(user_id)                  # logout / suspected compromise
    """

    __slots__ = ("_store", "_lifetime", "_token_bytes", "_clock", "_audit", "_log")

    def __init__(
        self,
        store: "RememberTokenStore",
        lifetime_days: int = REMEMBER_TOKEN_LIFETIME_DAYS,
        token_bytes: int = REMEMBER_TOKEN_BYTES,
        clock: Callable[[], datetime] = _utcnow,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> None:
        if token_bytes < 16:
            raise ValueError("remember tokens need at least 128 bits of entropy")

        self._store = store
        self._lifetime = timedelta(days=lifetime_days)
        self._token_bytes = token_bytes
        self._clock = clock
        self._audit = audit
        self._log = logging.getLogger("sessionguard.tokens")

    @classmethod
    def from_config(
        cls,
        store: "RememberTokenStore",
        security: "SecurityConfig",
        clock: Callable[[], datetime] = _utcnow,
        audit: Optional[TamperAwareAuditLog] = None,
    ) -> RememberTokenManager:
        return cls(
            store,
            lifetime_days=security.remember_token_days,
            token_bytes=security.remember_token_bytes,
            clock=clock,
            audit=audit,
        )

    def issue(self, user_id: str) -> IssuedToken:
        """
        Issue a new remember token for a user.

        Returns:
            The raw token (returned exactly once) and its expiry
        """
        for _ in range(MAX_ISSUE_ATTEMPTS):
            raw_token = secrets.token_urlsafe(self._token_bytes)
            now = self._clock()
            record = RememberToken(
                token_hash=hash_token(raw_token),
                user_id=user_id,
                issued_at=now,
                expires_at=now + self._lifetime,
            )
            if self._store.insert(record):
                self._log.info("Remember token issued for user %s", user_id)
                audit_log(
                    self._audit, AuditEventType.TOKEN_ISSUED, AuditSeverity.INFO,
                    "Remember token issued", user_id=user_id,
                )
                return IssuedToken(raw_token=raw_token, expires_at=record.expires_at)

        raise StoreUnavailableError("Could not allocate an unused remember token")

    def resume(self, raw_token: str) -> Tuple[str, IssuedToken]:
        """
        Consume a remember token and issue its replacement.

        Returns:
            (user_id, replacement token)

        Raises:
            TokenInvalidError: Unknown or already consumed
            TokenExpiredError: Past expiry (the record is removed)
        """
        if not raw_token:
            self._reject_invalid()

        record = self._store.pop(hash_token(raw_token))
        if record is None:
            self._reject_invalid()

        if record.is_expired(self._clock()):
            self._log.info(
                "Expired remember token presented for user %s", record.user_id,
                extra={"auth_event": TokenExpiredError.kind},
            )
            audit_log(
                self._audit, AuditEventType.TOKEN_EXPIRED, AuditSeverity.INFO,
                "Expired remember token presented", user_id=record.user_id,
            )
            raise TokenExpiredError("Remember token expired")

        replacement = self.issue(record.user_id)
        audit_log(
            self._audit, AuditEventType.TOKEN_RESUMED, AuditSeverity.INFO,
            "Remember token consumed and rotated", user_id=record.user_id,
        )
        return record.user_id, replacement

    def _reject_invalid(self) -> NoReturn:
        self._log.warning(
            "Unknown or replayed remember token presented",
            extra={"auth_event": TokenInvalidError.kind},
        )
        audit_log(
            self._audit, AuditEventType.TOKEN_INVALID, AuditSeverity.WARNING,
            "Unknown or replayed remember token",
        )
        raise TokenInvalidError("Remember token not recognised")

    def owner_of(self, raw_token: str) -> Optional[str]:
        """Non-consuming lookup of the user a token belongs to."""
        if not raw_token:
            return None
        record = self._store.get(hash_token(raw_token))
        return record.user_id if record else None

    def discard(self, raw_token: str) -> bool:
        """
        Delete a single token without issuing a replacement.

        Returns:
            True if a record was removed
        """
        if not raw_token:
            return False
        return self._store.pop(hash_token(raw_token)) is not None

    def revoke(self, user_id: str) -> int:
        """
        Delete all remember tokens for a user.

        Returns:
            Number of tokens removed
        """
        count = self._store.delete_for_user(user_id)
        self._log.info("Revoked %d remember tokens for user %s", count, user_id)
        audit_log(
            self._audit, AuditEventType.TOKEN_REVOKED, AuditSeverity.INFO,
            "Remember tokens revoked", user_id=user_id, details={"count": count},
        )
        return count

    def purge_expired(self) -> int:
        count = self._store.purge_expired(self._clock())
        if count:
            self._log.info("Purged %d expired remember tokens", count)
        return count
