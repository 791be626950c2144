"""
Security Constants
==================

Defines security-related constants used throughout the application.
These values should not be modified without careful security review.
"""

from typing import Final

# Credential Requirements
MIN_USERNAME_LENGTH: Final[int] = 3
MAX_USERNAME_LENGTH: Final[int] = 64
MIN_PASSWORD_LENGTH: Final[int] = 8
MAX_PASSWORD_LENGTH: Final[int] = 128

# Password Hashing
PASSWORD_HASH_ALGORITHM: Final[str] = "Argon2id"

# Session Security
SESSION_ID_BYTES: Final[int] = 32  # 256 bits
SESSION_IDLE_TIMEOUT_SECONDS: Final[int] = 1800  # 30 minutes
CSRF_TOKEN_BYTES: Final[int] = 32
PURGE_INTERVAL_SECONDS: Final[int] = 300  # expired-record sweep

# Remember-Me Tokens
REMEMBER_TOKEN_BYTES: Final[int] = 32
REMEMBER_TOKEN_LIFETIME_DAYS: Final[int] = 30

# Login Throttling
MAX_LOGIN_ATTEMPTS: Final[int] = 5
LOCKOUT_DURATION_SECONDS: Final[int] = 300  # 5 minutes

# Cookies
SESSION_COOKIE_NAME: Final[str] = "sg_session"
REMEMBER_COOKIE_NAME: Final[str] = "sg_remember"
CSRF_COOKIE_NAME: Final[str] = "sg_csrf"
CSRF_HEADER_NAME: Final[str] = "X-CSRF-Token"
