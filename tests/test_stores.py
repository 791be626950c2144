"""
Contract tests shared by the in-memory and SQLite stores.

Tests:
- UserStore: add, case-insensitive lookup, duplicates
- SessionStore: insert-if-absent, touch, pop, bulk deletes
- RememberTokenStore: insert-if-absent, atomic pop, expiry purge
- Records handed out are copies
- Lock and database timeouts raise StoreUnavailableError
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone

import pytest

from sessionguard.core.auth.models import RememberToken, Session, User
from sessionguard.core.errors import StoreUnavailableError, UserExistsError
from sessionguard.db import (
    InMemoryRememberTokenStore,
    InMemorySessionStore,
    InMemoryUserStore,
    SQLiteRememberTokenStore,
    SQLiteSessionStore,
    SQLiteUserStore,
)


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_user(user_id="u-1", username="alice"):
    return User(
        id=user_id,
        username=username,
        password_hash="$argon2id$v=19$m=1024,t=1,p=1$c2FsdA$aGFzaA",
        created_at=NOW,
        updated_at=NOW,
    )


def make_session(session_id="s-1", user_id="u-1", last=NOW):
    return Session(
        session_id=session_id,
        user_id=user_id,
        created_at=NOW,
        last_activity_at=last,
        fingerprint="fp",
        csrf_token="csrf",
    )


def make_token(token_hash="h-1", user_id="u-1", expires=NOW + timedelta(days=30)):
    return RememberToken(token_hash=token_hash, user_id=user_id, issued_at=NOW, expires_at=expires)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(params=["memory", "sqlite"])
def users(request, tmp_path):
    if request.param == "memory":
        return InMemoryUserStore()
    return SQLiteUserStore(tmp_path / "test.db")


@pytest.fixture(params=["memory", "sqlite"])
def session_records(request, tmp_path):
    if request.param == "memory":
        return InMemorySessionStore()
    return SQLiteSessionStore(tmp_path / "test.db")


@pytest.fixture(params=["memory", "sqlite"])
def token_records(request, tmp_path):
    if request.param == "memory":
        return InMemoryRememberTokenStore()
    return SQLiteRememberTokenStore(tmp_path / "test.db")


# =============================================================================
# UserStore
# =============================================================================


class TestUserStore:
    """Tests for the user store contract."""

    def test_add_and_get(self, users):
        users.add(make_user())

        assert users.get_by_id("u-1").username == "alice"
        assert users.get_by_username("alice").id == "u-1"

    def test_username_lookup_is_case_insensitive(self, users):
        users.add(make_user())
        assert users.get_by_username("ALICE").id == "u-1"

    def test_duplicate_username_rejected(self, users):
        users.add(make_user())
        with pytest.raises(UserExistsError):
            users.add(make_user(user_id="u-2", username="Alice"))

    def test_missing_user(self, users):
        assert users.get_by_id("nobody") is None
        assert users.get_by_username("nobody") is None

    def test_timestamps_round_trip(self, users):
        users.add(make_user())
        assert users.get_by_id("u-1").created_at == NOW

    def test_update_password_hash(self, users):
        users.add(make_user())
        later = NOW + timedelta(days=1)

        assert users.update_password_hash("u-1", "$argon2id$new", later) is True

        stored = users.get_by_id("u-1")
        assert stored.password_hash == "$argon2id$new"
        assert stored.updated_at == later
        assert stored.created_at == NOW

    def test_update_password_hash_missing_user(self, users):
        assert users.update_password_hash("nobody", "$argon2id$new", NOW) is False

    def test_clear(self, users):
        users.add(make_user())
        users.clear()
        assert users.get_by_id("u-1") is None


# =============================================================================
# SessionStore
# =============================================================================


class TestSessionStore:
    """Tests for the session store contract."""

    def test_insert_rejects_existing_id(self, session_records):
        assert session_records.insert(make_session()) is True
        assert session_records.insert(make_session(user_id="u-2")) is False
        assert session_records.get("s-1").user_id == "u-1"

    def test_get_returns_copy(self, session_records):
        session_records.insert(make_session())

        copy = session_records.get("s-1")
        copy.user_id = "tampered"

        assert session_records.get("s-1").user_id == "u-1"

    def test_touch_advances_only_forward(self, session_records):
        session_records.insert(make_session())

        assert session_records.touch("s-1", NOW + timedelta(minutes=5)) is True
        assert session_records.touch("s-1", NOW + timedelta(minutes=1)) is True
        assert session_records.get("s-1").last_activity_at == NOW + timedelta(minutes=5)

    def test_touch_missing_session(self, session_records):
        assert session_records.touch("s-1", NOW) is False
        assert session_records.get("s-1") is None

    def test_pop(self, session_records):
        session_records.insert(make_session())

        assert session_records.pop("s-1").session_id == "s-1"
        assert session_records.pop("s-1") is None

    def test_delete_for_user(self, session_records):
        session_records.insert(make_session("s-1", "u-1"))
        session_records.insert(make_session("s-2", "u-1"))
        session_records.insert(make_session("s-3", "u-2"))

        assert session_records.delete_for_user("u-1") == 2
        assert session_records.get("s-3") is not None

    def test_purge_idle(self, session_records):
        session_records.insert(make_session("s-1", last=NOW))
        session_records.insert(make_session("s-2", last=NOW + timedelta(minutes=10)))

        assert session_records.purge_idle(NOW + timedelta(minutes=5)) == 1
        assert session_records.get("s-1") is None
        assert session_records.get("s-2") is not None


# =============================================================================
# RememberTokenStore
# =============================================================================


class TestRememberTokenStore:
    """Tests for the remember-token store contract."""

    def test_insert_rejects_existing_hash(self, token_records):
        assert token_records.insert(make_token()) is True
        assert token_records.insert(make_token(user_id="u-2")) is False
        assert token_records.get("h-1").user_id == "u-1"

    def test_pop_is_single_shot(self, token_records):
        token_records.insert(make_token())

        assert token_records.pop("h-1").user_id == "u-1"
        assert token_records.pop("h-1") is None

    def test_concurrent_pop_has_one_winner(self, token_records):
        token_records.insert(make_token())
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        results_lock = threading.Lock()

        def pop():
            barrier.wait()
            record = token_records.pop("h-1")
            with results_lock:
                results.append(record)

        threads = [threading.Thread(target=pop) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(results) == workers
        assert sum(1 for r in results if r is not None) == 1

    def test_delete_for_user(self, token_records):
        token_records.insert(make_token("h-1", "u-1"))
        token_records.insert(make_token("h-2", "u-1"))
        token_records.insert(make_token("h-3", "u-2"))

        assert token_records.delete_for_user("u-1") == 2
        assert token_records.get("h-3") is not None

    def test_purge_expired(self, token_records):
        token_records.insert(make_token("h-1", expires=NOW + timedelta(days=1)))
        token_records.insert(make_token("h-2", expires=NOW + timedelta(days=10)))

        assert token_records.purge_expired(NOW + timedelta(days=2)) == 1
        assert token_records.get("h-1") is None
        assert token_records.get("h-2") is not None


# =============================================================================
# Failure handling
# =============================================================================


class TestStoreFailures:
    """Timeouts surface as StoreUnavailableError."""

    def test_memory_lock_timeout(self):
        store = InMemorySessionStore(lock_timeout=0.01)
        store._lock.acquire()
        try:
            with pytest.raises(StoreUnavailableError):
                store.get("s-1")
        finally:
            store._lock.release()

    def test_sqlite_lock_timeout(self, tmp_path):
        db_path = tmp_path / "locked.db"
        store = SQLiteSessionStore(db_path, timeout=0.05)

        holder = sqlite3.connect(db_path, isolation_level=None)
        holder.execute("BEGIN EXCLUSIVE")
        try:
            with pytest.raises(StoreUnavailableError):
                store.insert(make_session())
        finally:
            holder.execute("ROLLBACK")
            holder.close()

        assert store.insert(make_session()) is True

    def test_sqlite_stores_share_one_file(self, tmp_path):
        db_path = tmp_path / "shared.db"
        SQLiteUserStore(db_path).add(make_user())
        SQLiteSessionStore(db_path).insert(make_session())
        SQLiteRememberTokenStore(db_path).insert(make_token())

        assert SQLiteUserStore(db_path).get_by_id("u-1") is not None
        assert SQLiteSessionStore(db_path).get("s-1") is not None
        assert SQLiteRememberTokenStore(db_path).get("h-1") is not None
