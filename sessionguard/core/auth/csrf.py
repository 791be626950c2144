"""
Anti-CSRF Tokens
================

Per-session tokens are generated when a session is created and checked
on every state-changing request. Before a session exists (the login
form), a double-submit token is used: the same random value travels in
a SameSite=Strict cookie and in a request header.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Optional

from sessionguard.security.constants import CSRF_TOKEN_BYTES


def generate_csrf_token() -> str:
    """Generate a cryptographically random anti-CSRF token."""
    return secrets.token_urlsafe(CSRF_TOKEN_BYTES)


def csrf_tokens_match(expected: Optional[str], presented: Optional[str]) -> bool:
    """
    Constant-time token comparison.

    A missing value on either side never matches.
    """
    if not expected or not presented:
        return False
    return hmac.compare_digest(expected.encode(), presented.encode())
