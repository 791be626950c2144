"""
Security module - Audit trail, login throttling and security constants.

Security Considerations:
- Audit entries carry user ids and failure kinds, never secrets
- Audit log is append-only with chained hashes
- Follow fail-closed design principles
"""

from sessionguard.security.constants import (
    MIN_PASSWORD_LENGTH,
    MAX_PASSWORD_LENGTH,
    MAX_LOGIN_ATTEMPTS,
    LOCKOUT_DURATION_SECONDS,
)
from sessionguard.security.throttle import LoginThrottle
from sessionguard.security.audit import (
    TamperAwareAuditLog,
    AuditEvent,
    AuditEventType,
    AuditSeverity,
    audit_log,
)

__all__ = [
    # Constants
    "MIN_PASSWORD_LENGTH",
    "MAX_PASSWORD_LENGTH",
    "MAX_LOGIN_ATTEMPTS",
    "LOCKOUT_DURATION_SECONDS",
    # Throttling
    "LoginThrottle",
    # Audit
    "TamperAwareAuditLog",
    "AuditEvent",
    "AuditEventType",
    "AuditSeverity",
    "audit_log",
]
