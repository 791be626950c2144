"""
Store Interfaces
================

Key -> record mappings consumed by the credential check and the
session/token managers.

Contract:
- Every method is atomic per key
- Records are returned as copies
- Timeouts and I/O failures raise StoreUnavailableError
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sessionguard.core.auth.models import RememberToken, Session, User


class UserStore(ABC):
    """Users keyed by id, unique by case-insensitive username."""

    @abstractmethod
    def add(self, user: User) -> None:
        """Insert a user. Raises UserExistsError if the username is taken."""

    @abstractmethod
    def get_by_username(self, username: str) -> Optional[User]:
        ...

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def update_password_hash(self, user_id: str, password_hash: str, at: datetime) -> bool:
        """Replace a stored hash. Returns False if the user is gone."""

    @abstractmethod
    def clear(self) -> None:
        ...


class SessionStore(ABC):
    """Session records keyed by session id."""

    @abstractmethod
    def insert(self, session: Session) -> bool:
        """Insert if the id is unused. Returns False on an id collision."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    def touch(self, session_id: str, at: datetime) -> bool:
        """
        Advance last_activity_at to `at` (never backwards).

        Returns False if the session no longer exists, so a touch can
        never resurrect a destroyed session.
        """

    @abstractmethod
    def pop(self, session_id: str) -> Optional[Session]:
        """Remove and return the record; None if it was absent."""

    @abstractmethod
    def delete_for_user(self, user_id: str) -> int:
        ...

    @abstractmethod
    def purge_idle(self, cutoff: datetime) -> int:
        """Delete sessions whose last activity is at or before `cutoff`."""

    @abstractmethod
    def clear(self) -> None:
        ...


class RememberTokenStore(ABC):
    """Remember-token records keyed by token hash."""

    @abstractmethod
    def insert(self, token: RememberToken) -> bool:
        """Insert if the hash is unused. Returns False on collision."""

    @abstractmethod
    def get(self, token_hash: str) -> Optional[RememberToken]:
        ...

    @abstractmethod
    def pop(self, token_hash: str) -> Optional[RememberToken]:
        """
        Remove and return the record in one step.

        Of N concurrent pops for one hash exactly one gets the record.
        """

    @abstractmethod
    def delete_for_user(self, user_id: str) -> int:
        ...

    @abstractmethod
    def purge_expired(self, now: datetime) -> int:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...
