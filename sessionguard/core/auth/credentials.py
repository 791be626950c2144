"""
Credential Store
================

Owns user records and answers one question: does this password belong
to this username?

Security Features:
- Argon2id password hashing
- Constant-time verification on the hash output
- Unknown usernames cost the same as wrong passwords
- Passwords and hashes never logged or returned
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sessionguard.core.auth.argon2_auth import Argon2Hasher
from sessionguard.core.auth.models import User
from sessionguard.core.errors import InvalidCredentialsError
from sessionguard.utils.validators import validate_password, validate_username

if TYPE_CHECKING:
    from sessionguard.db.base import UserStore


class CredentialStore:
    """
    User registration and credential verification over a UserStore.

    Usage:
        credentials = CredentialStore(InMemoryUserStore())

        user = credentials.register("alice", "correct-pw")
        user_id = credentials.verify("alice", "correct-pw")
    """

    __slots__ = ("_users", "_hasher", "_log")

    def __init__(self, users: "UserStore", hasher: Optional[Argon2Hasher] = None) -> None:
        self._users = users
        self._hasher = hasher or Argon2Hasher()
        self._log = logging.getLogger("sessionguard.credentials")

    def register(self, username: str, password: str) -> User:
        """
        Create a new user account.

        Raises:
            ValidationError: If username or password is malformed
            UserExistsError: If the username is already taken
        """
        username = validate_username(username.strip() if isinstance(username, str) else username)
        validate_password(password)

        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            username=username,
            password_hash=self._hasher.hash(password),
            created_at=now,
            updated_at=now,
        )
        self._users.add(user)

        self._log.info("Registered user %s", user.id)
        return user

    def verify(self, username: str, candidate_password: str) -> str:
        """
        Verify a username/password pair.

        Returns:
            The user id

        Raises:
            InvalidCredentialsError: Unknown user or wrong password (the
                two are indistinguishable to the caller)
        """
        user = self._users.get_by_username(username)

        if user is None:
            self._hasher.dummy_verify(candidate_password)
            raise InvalidCredentialsError("Invalid username or password")

        if not self._hasher.verify(candidate_password, user.password_hash):
            raise InvalidCredentialsError("Invalid username or password")

        if self._hasher.needs_rehash(user.password_hash):
            self._upgrade_hash(user, candidate_password)

        return user.id

    def _upgrade_hash(self, user: User, password: str) -> None:
        """Re-hash with the current parameters after a successful verify."""
        updated = self._users.update_password_hash(
            user.id, self._hasher.hash(password), datetime.now(timezone.utc),
        )
        if updated:
            self._log.info("Upgraded password hash parameters for user %s", user.id)

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get_by_id(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._users.get_by_username(username)
