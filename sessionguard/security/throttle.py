"""
Login Throttle
==============

Limits failed login attempts per username and per client address.

Features:
- Rolling time window tracking
- Address-based rate limiting
- Username-based rate limiting
- Lockout once the threshold is reached, released when the window rolls
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional


class LoginThrottle:
    """
    Tracks login failures and answers whether an attempt may proceed.

    Usage:
        throttle = LoginThrottle(max_failures=5, window_seconds=300)

        if throttle.is_locked(username, remote_addr):
            ...  # reject without checking credentials
        throttle.record_failure(username, remote_addr)
        throttle.reset(username)  # on success
    """

    __slots__ = ("_failures", "_max_failures", "_window_seconds", "_clock", "_lock", "_log")

    def __init__(
        self,
        max_failures: int = 5,
        window_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the login throttle.

        Args:
            max_failures: Failures within the window that trigger a lockout
            window_seconds: Time window for counting failures
            clock: Monotonic time source in seconds
        """
        if max_failures < 1:
            raise ValueError("max_failures must be at least 1")

        self._max_failures = max_failures
        self._window_seconds = window_seconds
        self._clock = clock
        self._failures: Dict[str, List[float]] = {}  # key -> [timestamps]
        self._lock = threading.Lock()
        self._log = logging.getLogger("sessionguard.throttle")

    @staticmethod
    def _keys(username: Optional[str], remote_addr: Optional[str]) -> List[str]:
        keys = []
        if isinstance(username, str) and username.strip():
            keys.append(f"user:{username.strip().lower()}")
        if remote_addr:
            keys.append(f"addr:{remote_addr}")
        return keys

    def _recent(self, key: str, cutoff: float) -> List[float]:
        # Caller holds the lock
        recent = [t for t in self._failures.get(key, []) if t > cutoff]
        if recent:
            self._failures[key] = recent
        else:
            self._failures.pop(key, None)
        return recent

    def record_failure(self, username: Optional[str], remote_addr: Optional[str] = None) -> bool:
        """
        Record a failed login.

        Returns:
            True if the username or address is now locked out
        """
        now = self._clock()
        cutoff = now - self._window_seconds
        locked = False

        with self._lock:
            for key in self._keys(username, remote_addr):
                recent = self._recent(key, cutoff)
                recent.append(now)
                self._failures[key] = recent
                if len(recent) >= self._max_failures:
                    locked = True

        if locked:
            self._log.warning(
                "Login lockout triggered (address %s)", remote_addr or "-",
                extra={"auth_event": "login_throttled"},
            )
        return locked

    def is_locked(self, username: Optional[str], remote_addr: Optional[str] = None) -> bool:
        cutoff = self._clock() - self._window_seconds
        with self._lock:
            return any(
                len(self._recent(key, cutoff)) >= self._max_failures
                for key in self._keys(username, remote_addr)
            )

    def failure_count(self, username: Optional[str], remote_addr: Optional[str] = None) -> int:
        """Highest current failure count across the username and the address."""
        cutoff = self._clock() - self._window_seconds
        with self._lock:
            counts = [len(self._recent(key, cutoff)) for key in self._keys(username, remote_addr)]
        return max(counts, default=0)

    def reset(self, username: Optional[str]) -> None:
        """Clear a username's failures after a successful login."""
        with self._lock:
            for key in self._keys(username, None):
                self._failures.pop(key, None)
