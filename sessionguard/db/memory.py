"""
In-Memory Stores
================

Thread-safe dict-backed stores for tests and single-process
deployments. Each store guards its state with one lock acquired with a
bounded timeout; a timeout raises StoreUnavailableError so callers fail
closed.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterator, Optional

from sessionguard.core.auth.models import RememberToken, Session, User
from sessionguard.core.errors import StoreUnavailableError, UserExistsError
from sessionguard.db.base import RememberTokenStore, SessionStore, UserStore


DEFAULT_LOCK_TIMEOUT: float = 2.0


class _LockedStore:
    """Shared lock handling for the in-memory stores."""

    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StoreUnavailableError(
                f"{type(self).__name__} lock not acquired within {self._lock_timeout}s"
            )
        try:
            yield
        finally:
            self._lock.release()


class InMemoryUserStore(_LockedStore, UserStore):
    """Users in a dict keyed by id, with a lower-cased username index."""

    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        super().__init__(lock_timeout)
        self._users: Dict[str, User] = {}
        self._by_username: Dict[str, str] = {}

    def add(self, user: User) -> None:
        key = user.username.lower()
        with self._locked():
            if key in self._by_username:
                raise UserExistsError(f"User '{user.username}' already exists")
            self._users[user.id] = replace(user)
            self._by_username[key] = user.id

    def get_by_username(self, username: str) -> Optional[User]:
        with self._locked():
            user_id = self._by_username.get(username.lower())
            if user_id is None:
                return None
            return replace(self._users[user_id])

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._locked():
            user = self._users.get(user_id)
            return replace(user) if user else None

    def update_password_hash(self, user_id: str, password_hash: str, at: datetime) -> bool:
        with self._locked():
            user = self._users.get(user_id)
            if user is None:
                return False
            self._users[user_id] = replace(user, password_hash=password_hash, updated_at=at)
            return True

    def clear(self) -> None:
        with self._locked():
            self._users.clear()
            self._by_username.clear()


class InMemorySessionStore(_LockedStore, SessionStore):
    """Sessions in a dict keyed by session id."""

    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        super().__init__(lock_timeout)
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        with self._locked():
            return len(self._sessions)

    def insert(self, session: Session) -> bool:
        with self._locked():
            if session.session_id in self._sessions:
                return False
            self._sessions[session.session_id] = replace(session)
            return True

    def get(self, session_id: str) -> Optional[Session]:
        with self._locked():
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def touch(self, session_id: str, at: datetime) -> bool:
        with self._locked():
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if at > session.last_activity_at:
                session.last_activity_at = at
            return True

    def pop(self, session_id: str) -> Optional[Session]:
        with self._locked():
            return self._sessions.pop(session_id, None)

    def delete_for_user(self, user_id: str) -> int:
        with self._locked():
            doomed = [sid for sid, s in self._sessions.items() if s.user_id == user_id]
            for sid in doomed:
                del self._sessions[sid]
            return len(doomed)

    def purge_idle(self, cutoff: datetime) -> int:
        with self._locked():
            doomed = [sid for sid, s in self._sessions.items() if s.last_activity_at <= cutoff]
            for sid in doomed:
                del self._sessions[sid]
            return len(doomed)

    def clear(self) -> None:
        with self._locked():
            self._sessions.clear()


class InMemoryRememberTokenStore(_LockedStore, RememberTokenStore):
    """Remember tokens in a dict keyed by token hash."""

    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        super().__init__(lock_timeout)
        self._tokens: Dict[str, RememberToken] = {}

    def __len__(self) -> int:
        with self._locked():
            return len(self._tokens)

    def insert(self, token: RememberToken) -> bool:
        with self._locked():
            if token.token_hash in self._tokens:
                return False
            self._tokens[token.token_hash] = replace(token)
            return True

    def get(self, token_hash: str) -> Optional[RememberToken]:
        with self._locked():
            token = self._tokens.get(token_hash)
            return replace(token) if token else None

    def pop(self, token_hash: str) -> Optional[RememberToken]:
        with self._locked():
            return self._tokens.pop(token_hash, None)

    def delete_for_user(self, user_id: str) -> int:
        with self._locked():
            doomed = [h for h, t in self._tokens.items() if t.user_id == user_id]
            for token_hash in doomed:
                del self._tokens[token_hash]
            return len(doomed)

    def purge_expired(self, now: datetime) -> int:
        with self._locked():
            doomed = [h for h, t in self._tokens.items() if t.is_expired(now)]
            for token_hash in doomed:
                del self._tokens[token_hash]
            return len(doomed)

    def clear(self) -> None:
        with self._locked():
            self._tokens.clear()
