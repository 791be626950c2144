"""
Client Fingerprinting
=====================

Derives a deterministic client fingerprint from stable request
attributes, used to detect a session being replayed from a different
client context.

Security Properties:
- Salted SHA-256 (no raw header values stored)
- Deterministic ordering of attributes
- Constant-time comparison

WARNING:
- User agents change on browser upgrades; an upgrade ends the session
  and the remember token re-establishes a new one
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Final, Mapping, Optional


DEFAULT_FINGERPRINT_SALT: Final[bytes] = b"SessionGuard_ClientBinding_v1"


def derive_fingerprint(
    attributes: Mapping[str, Optional[str]],
    salt: bytes = DEFAULT_FINGERPRINT_SALT,
) -> str:
    """
    Compute the fingerprint of a set of request attributes.

    Args:
        attributes: e.g. {"user_agent": "...", "accept_language": "..."};
            missing values hash as empty strings
        salt: Per-installation salt

    Returns:
        Hex SHA-256 digest
    """
    # Combine: SALT || NAME1:VALUE1 || NAME2:VALUE2 || ...
    hasher = hashlib.sha256(salt)
    for name in sorted(attributes):
        hasher.update(f"|{name}:{attributes[name] or ''}".encode())
    return hasher.hexdigest()


def fingerprint_from_user_agent(
    user_agent: Optional[str],
    salt: bytes = DEFAULT_FINGERPRINT_SALT,
) -> str:
    return derive_fingerprint({"user_agent": user_agent}, salt=salt)


def fingerprints_match(expected: str, presented: str) -> bool:
    """Constant-time comparison of two fingerprints."""
    return hmac.compare_digest(expected.encode(), presented.encode())
