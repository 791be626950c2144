"""
Database module - Stores for users, sessions and remember tokens.

Security Considerations:
- Remember tokens are persisted as one-way hashes only
- Each store offers atomic per-key read-modify-write
- Store failures raise StoreUnavailableError so callers fail closed
"""

from sessionguard.db.base import RememberTokenStore, SessionStore, UserStore
from sessionguard.db.memory import (
    InMemoryRememberTokenStore,
    InMemorySessionStore,
    InMemoryUserStore,
)
from sessionguard.db.retry import RetryPolicy, RetryingStore, call_with_retry
from sessionguard.db.sqlite import (
    SQLiteRememberTokenStore,
    SQLiteSessionStore,
    SQLiteUserStore,
)

__all__ = [
    "UserStore",
    "SessionStore",
    "RememberTokenStore",
    "InMemoryUserStore",
    "InMemorySessionStore",
    "InMemoryRememberTokenStore",
    "SQLiteUserStore",
    "SQLiteSessionStore",
    "SQLiteRememberTokenStore",
    "RetryPolicy",
    "RetryingStore",
    "call_with_retry",
]
