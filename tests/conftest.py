"""Shared fixtures for the SessionGuard test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sessionguard.core.auth import (
    Argon2Hasher,
    AuthFacade,
    Authenticator,
    CredentialStore,
    RememberTokenManager,
    SessionManager,
)
from sessionguard.core.auth.fingerprint import fingerprint_from_user_agent
from sessionguard.core.config import SecureConfig
from sessionguard.db import (
    InMemoryRememberTokenStore,
    InMemorySessionStore,
    InMemoryUserStore,
)


IDLE_TIMEOUT = 1800


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Core components
# =============================================================================


@pytest.fixture(scope="session")
def hasher():
    """Argon2id with minimal cost so the suite stays fast."""
    return Argon2Hasher(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture
def user_store():
    return InMemoryUserStore()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def token_store():
    return InMemoryRememberTokenStore()


@pytest.fixture
def credentials(user_store, hasher):
    return CredentialStore(user_store, hasher)


@pytest.fixture
def sessions(session_store, clock):
    return SessionManager(session_store, idle_timeout_seconds=IDLE_TIMEOUT, clock=clock)


@pytest.fixture
def tokens(token_store, clock):
    return RememberTokenManager(token_store, lifetime_days=30, clock=clock)


@pytest.fixture
def facade(credentials, sessions, tokens):
    return AuthFacade(Authenticator(credentials), sessions, tokens)


@pytest.fixture
def alice(credentials):
    return credentials.register("alice", "correct-pw")


@pytest.fixture
def fingerprint():
    return fingerprint_from_user_agent("Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0")


@pytest.fixture
def other_fingerprint():
    return fingerprint_from_user_agent("curl/8.5.0")


@pytest.fixture(autouse=True)
def reset_config_singleton():
    """Keep SecureConfig.get_instance() from leaking between tests."""
    SecureConfig.reset_instance()
    yield
    SecureConfig.reset_instance()
