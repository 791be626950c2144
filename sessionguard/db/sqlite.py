"""
SQLite Stores
=============

Persistent stores backed by a single SQLite database file.

Security Features:
- Parameterized queries only (SQL injection safe)
- Remember tokens stored as hashes only
- Every mutation runs in a BEGIN IMMEDIATE transaction, which gives the
  per-key atomic read-modify-write the managers rely on
- Connection timeout bounds how long a request can block; lock
  contention and I/O errors surface as StoreUnavailableError
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Final, Iterator, Optional

from sessionguard.core.auth.models import RememberToken, Session, User
from sessionguard.core.errors import StoreUnavailableError, UserExistsError
from sessionguard.db.base import RememberTokenStore, SessionStore, UserStore


DEFAULT_CONNECT_TIMEOUT: Final[float] = 2.0


def _iso(value: datetime) -> str:
    # Fixed-width timestamps keep string comparison in SQL chronological
    return value.isoformat(timespec="microseconds")


class _SQLiteStore:
    """Connection and transaction handling shared by the SQLite stores."""

    _SCHEMA: str = ""

    def __init__(self, db_path: Path | str, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait for a database lock before failing
        """
        self._db_path = Path(db_path)
        self._timeout = timeout
        self.initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection in autocommit mode."""
        conn = sqlite3.connect(
            self._db_path,
            timeout=self._timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_db(self) -> None:
        """Initialize the database schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._transaction(immediate=False) as conn:
            conn.executescript(self._SCHEMA)

    @contextmanager
    def _transaction(self, immediate: bool = True) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction; map lock/I-O errors to StoreUnavailableError."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot open {self._db_path.name}: {exc}") from exc

        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            if conn.in_transaction:
                conn.execute("COMMIT")
        except sqlite3.IntegrityError:
            raise
        except (sqlite3.OperationalError, sqlite3.DatabaseError) as exc:
            raise StoreUnavailableError(f"{type(self).__name__} failed: {exc}") from exc
        finally:
            conn.close()


class SQLiteUserStore(_SQLiteStore, UserStore):
    """Users table with a case-insensitive unique username."""

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT UNIQUE NOT NULL COLLATE NOCASE,
        password_hash TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """

    def add(self, user: User) -> None:
        try:
            with self._transaction() as conn:
                conn.execute("""
                    INSERT INTO users (id, username, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    user.id,
                    user.username,
                    user.password_hash,
                    _iso(user.created_at),
                    _iso(user.updated_at),
                ))
        except sqlite3.IntegrityError:
            raise UserExistsError(f"User '{user.username}' already exists")

    def get_by_username(self, username: str) -> Optional[User]:
        with self._transaction(immediate=False) as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE username = ? COLLATE NOCASE",
                (username,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._transaction(immediate=False) as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = ?",
                (user_id,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def update_password_hash(self, user_id: str, password_hash: str, at: datetime) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
                (password_hash, _iso(at), user_id)
            )
            return cursor.rowcount == 1

    def clear(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM users")

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        """Convert a database row to a User object."""
        return User(
            id=row["id"],
            username=row["username"],
            password_hash=row["password_hash"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteSessionStore(_SQLiteStore, SessionStore):
    """Sessions table keyed by session id."""

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS sessions (
        session_id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        last_activity_at TEXT NOT NULL,
        fingerprint TEXT NOT NULL,
        csrf_token TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);
    CREATE INDEX IF NOT EXISTS idx_sessions_activity ON sessions(last_activity_at);
    """

    def insert(self, session: Session) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO sessions (
                    session_id, user_id, created_at, last_activity_at,
                    fingerprint, csrf_token
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (
                session.session_id,
                session.user_id,
                _iso(session.created_at),
                _iso(session.last_activity_at),
                session.fingerprint,
                session.csrf_token,
            ))
            return cursor.rowcount == 1

    def get(self, session_id: str) -> Optional[Session]:
        with self._transaction(immediate=False) as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id = ?",
                (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row else None

    def touch(self, session_id: str, at: datetime) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("""
                UPDATE sessions
                SET last_activity_at = MAX(last_activity_at, ?)
                WHERE session_id = ?
            """, (_iso(at), session_id))
            return cursor.rowcount == 1

    def pop(self, session_id: str) -> Optional[Session]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id = ?",
                (session_id,)
            ).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
        return self._row_to_session(row)

    def delete_for_user(self, user_id: str) -> int:
        with self._transaction() as conn:
            return conn.execute(
                "DELETE FROM sessions WHERE user_id = ?", (user_id,)
            ).rowcount

    def purge_idle(self, cutoff: datetime) -> int:
        with self._transaction() as conn:
            return conn.execute(
                "DELETE FROM sessions WHERE last_activity_at <= ?", (_iso(cutoff),)
            ).rowcount

    def clear(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM sessions")

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        """Convert a database row to a Session object."""
        return Session(
            session_id=row["session_id"],
            user_id=row["user_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            last_activity_at=datetime.fromisoformat(row["last_activity_at"]),
            fingerprint=row["fingerprint"],
            csrf_token=row["csrf_token"],
        )


class SQLiteRememberTokenStore(_SQLiteStore, RememberTokenStore):
    """Remember-token table keyed by token hash."""

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS remember_tokens (
        token_hash TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        issued_at TEXT NOT NULL,
        expires_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_remember_user ON remember_tokens(user_id);
    CREATE INDEX IF NOT EXISTS idx_remember_expires ON remember_tokens(expires_at);
    """

    def insert(self, token: RememberToken) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO remember_tokens (token_hash, user_id, issued_at, expires_at)
                VALUES (?, ?, ?, ?)
            """, (
                token.token_hash,
                token.user_id,
                _iso(token.issued_at),
                _iso(token.expires_at),
            ))
            return cursor.rowcount == 1

    def get(self, token_hash: str) -> Optional[RememberToken]:
        with self._transaction(immediate=False) as conn:
            row = conn.execute(
                "SELECT * FROM remember_tokens WHERE token_hash = ?",
                (token_hash,)
            ).fetchone()
        return self._row_to_token(row) if row else None

    def pop(self, token_hash: str) -> Optional[RememberToken]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM remember_tokens WHERE token_hash = ?",
                (token_hash,)
            ).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM remember_tokens WHERE token_hash = ?", (token_hash,))
        return self._row_to_token(row)

    def delete_for_user(self, user_id: str) -> int:
        with self._transaction() as conn:
            return conn.execute(
                "DELETE FROM remember_tokens WHERE user_id = ?", (user_id,)
            ).rowcount

    def purge_expired(self, now: datetime) -> int:
        with self._transaction() as conn:
            return conn.execute(
                "DELETE FROM remember_tokens WHERE expires_at < ?", (_iso(now),)
            ).rowcount

    def clear(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM remember_tokens")

    @staticmethod
    def _row_to_token(row: sqlite3.Row) -> RememberToken:
        """Convert a database row to a RememberToken object."""
        return RememberToken(
            token_hash=row["token_hash"],
            user_id=row["user_id"],
            issued_at=datetime.fromisoformat(row["issued_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )
