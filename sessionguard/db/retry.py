"""
Retrying Store Adapter
======================

Retries StoreUnavailableError a bounded number of times with
exponential backoff before letting it surface. Any other exception
(including UserExistsError) passes through on the first attempt.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from sessionguard.core.errors import StoreUnavailableError

T = TypeVar("T")
S = TypeVar("S")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff policy for store calls."""

    max_attempts: int = 3
    initial_delay: float = 0.05
    max_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_config(cls, security: Any) -> RetryPolicy:
        """Build a policy from a SecurityConfig section."""
        return cls(
            max_attempts=security.store_retry_attempts,
            initial_delay=security.store_retry_initial_delay,
            max_delay=security.store_retry_max_delay,
        )

    def compute_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number `attempt + 1`."""
        base = self.initial_delay * (self.multiplier ** attempt)
        capped = min(base, self.max_delay)
        if self.jitter:
            return capped * (0.9 + random.random() * 0.2)
        return capped


def call_with_retry(
    policy: RetryPolicy,
    fn: Callable[[], T],
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "store call",
) -> T:
    """Run `fn`, retrying StoreUnavailableError per `policy`."""
    log = logging.getLogger("sessionguard.db")
    last_error: StoreUnavailableError | None = None

    for attempt in range(policy.max_attempts):
        try:
            return fn()
        except StoreUnavailableError as exc:
            last_error = exc
            if attempt + 1 < policy.max_attempts:
                delay = policy.compute_delay(attempt)
                log.warning(
                    "%s unavailable (attempt %d/%d), retrying in %.3fs",
                    operation, attempt + 1, policy.max_attempts, delay,
                )
                sleep(delay)

    log.error("%s unavailable after %d attempts", operation, policy.max_attempts)
    raise StoreUnavailableError(
        f"{operation} failed after {policy.max_attempts} attempts"
    ) from last_error


class RetryingStore(Generic[S]):
    """
    Wraps any store so that each public method call is retried.

    Usage:
        sessions = RetryingStore(SQLiteSessionStore(db_path), RetryPolicy())
        sessions.get(session_id)  # retried on StoreUnavailableError
    """

    def __init__(
        self,
        store: S,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def wrapped(self) -> S:
        return self._store

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._store, name)
        if name.startswith("_") or not callable(attr):
            return attr

        @functools.wraps(attr)
        def retried(*args: Any, **kwargs: Any) -> Any:
            return call_with_retry(
                self._policy,
                lambda: attr(*args, **kwargs),
                sleep=self._sleep,
                operation=f"{type(self._store).__name__}.{name}",
            )

        return retried

    def __len__(self) -> int:
        return len(self._store)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return f"RetryingStore({self._store!r}, attempts={self._policy.max_attempts})"
