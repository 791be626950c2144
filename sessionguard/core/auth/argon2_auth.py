"""
Argon2id Password Hashing
=========================

Implements salted one-way password hashing using Argon2id.

Security Properties:
- Memory-hard (resistant to GPU/ASIC attacks)
- Salt automatically managed by argon2-cffi
- Constant-time verification on the hash output
- Equal-cost dummy verification for unknown users

References:
- RFC 9106: Argon2 Memory-Hard Function
- OWASP Password Storage Cheat Sheet
"""

from __future__ import annotations

from typing import Final, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


# Argon2id parameters (OWASP 2023 recommended minimums)
ARGON2_MEMORY_COST: Final[int] = 65536  # 64 MB in KiB
ARGON2_TIME_COST: Final[int] = 3  # iterations
ARGON2_PARALLELISM: Final[int] = 4  # threads
ARGON2_HASH_LENGTH: Final[int] = 32  # 256 bits
ARGON2_SALT_LENGTH: Final[int] = 16  # 128 bits


class Argon2Hasher:
    """
    Argon2id password hasher with secure defaults.

    Usage:
        hasher = Argon2Hasher()

        encoded = hasher.hash("user_password")
        store(encoded)  # Store this in database

        is_valid = hasher.verify("user_password", stored_encoded)

    Security Notes:
        - Argon2id is the recommended variant (hybrid)
        - Memory cost should be as high as your system allows
        - dummy_verify() keeps "no such user" as slow as "wrong password"
    """

    __slots__ = ("_hasher", "_dummy_hash")

    def __init__(
        self,
        memory_cost: int = ARGON2_MEMORY_COST,
        time_cost: int = ARGON2_TIME_COST,
        parallelism: int = ARGON2_PARALLELISM,
        hash_length: int = ARGON2_HASH_LENGTH,
        salt_length: int = ARGON2_SALT_LENGTH,
    ) -> None:
        """
        Initialize the Argon2id hasher.

        Args:
            memory_cost: Memory usage in KiB (default: 65536 = 64MB)
            time_cost: Number of iterations (default: 3)
            parallelism: Degree of parallelism (default: 4)
            hash_length: Output hash length in bytes (default: 32)
            salt_length: Salt length in bytes (default: 16)
        """
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if memory_cost < 8 * parallelism:
            raise ValueError("memory_cost must be at least 8 KiB per lane")
        if time_cost < 1:
            raise ValueError("time_cost must be at least 1")
        if hash_length < 16:
            raise ValueError("hash_length must be at least 16 bytes")
        if salt_length < 8:
            raise ValueError("salt_length must be at least 8 bytes")

        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_length,
            salt_len=salt_length,
        )
        self._dummy_hash: Optional[str] = None

    @classmethod
    def from_config(cls, security) -> Argon2Hasher:
        """Build a hasher from a SecurityConfig section."""
        return cls(
            memory_cost=security.argon2_memory_cost,
            time_cost=security.argon2_time_cost,
            parallelism=security.argon2_parallelism,
        )

    def hash(self, password: str) -> str:
        """
        Hash a password using Argon2id.

        Returns:
            Encoded hash string ($argon2id$v=19$m=...,t=...,p=...$salt$hash)
        """
        if not password:
            raise ValueError("Password cannot be empty")
        return self._hasher.hash(password)

    def verify(self, password: str, encoded: str) -> bool:
        """
        Verify a password against an encoded hash.

        The library compares derived hashes in constant time; the raw
        secret is never compared directly.
        """
        if not password or not encoded:
            return False

        try:
            return self._hasher.verify(encoded, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def dummy_verify(self, password: str) -> None:
        """Spend one verification's worth of work against a throwaway hash."""
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash("sessionguard-dummy-password")
        self.verify(password or "x", self._dummy_hash)

    def needs_rehash(self, encoded: str) -> bool:
        """Check if a hash was produced with older/weaker parameters."""
        try:
            return self._hasher.check_needs_rehash(encoded)
        except InvalidHashError:
            return True
