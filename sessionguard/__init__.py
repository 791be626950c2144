"""
SessionGuard - Session-Based Authentication Service
===================================================

This package provides password login, server-side sessions with idle
timeout, single-use remember-me tokens and CSRF protection.

Security Notice:
- No secrets are logged
- Fail-closed design pattern
- Only hashes of remember tokens are stored
"""

from sessionguard.core.config import SecureConfig
from sessionguard.core.logging import get_secure_logger

__version__ = "0.1.0"
__author__ = "SessionGuard Team"

__all__ = ["SecureConfig", "get_secure_logger", "__version__"]
