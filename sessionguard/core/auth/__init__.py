"""
SessionGuard Authentication Module
==================================

Provides session-based authentication with:
- Argon2id password hashing
- Server-side sessions with idle timeout
- Single-use remember-me tokens
- Per-session anti-CSRF tokens

Security Properties:
- Memory-hard password hashing
- Constant-time verification
- Session-id rotation on login (fixation defense)
- Fail closed: every internal failure surfaces as "unauthenticated"
"""

from sessionguard.core.auth.argon2_auth import Argon2Hasher
from sessionguard.core.auth.authenticator import Authenticator
from sessionguard.core.auth.credentials import CredentialStore
from sessionguard.core.auth.facade import AuthFacade
from sessionguard.core.auth.models import (
    AuthenticatedContext,
    IssuedToken,
    LoginResult,
    RememberToken,
    Session,
    User,
)
from sessionguard.core.auth.remember_tokens import RememberTokenManager
from sessionguard.core.auth.session_control import SessionManager

__all__ = [
    "Argon2Hasher",
    "Authenticator",
    "CredentialStore",
    "AuthFacade",
    "AuthenticatedContext",
    "IssuedToken",
    "LoginResult",
    "RememberToken",
    "Session",
    "User",
    "RememberTokenManager",
    "SessionManager",
]
