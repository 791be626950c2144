"""
Tamper-Aware Audit System
=========================

Append-only audit logging with integrity verification.

Every internal authentication failure is recorded with its specific
kind here, even though callers outside the core only see a generic
"unauthenticated" result.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Final, List, Optional


GENESIS_HASH: Final[str] = "genesis"


class AuditSeverity(Enum):
    """Audit event severity levels."""
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AuditEventType(Enum):
    """Types of auditable events."""
    # Credentials
    USER_REGISTERED = "USER_REGISTERED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILURE = "LOGIN_FAILURE"
    LOGIN_THROTTLED = "LOGIN_THROTTLED"
    LOGOUT = "LOGOUT"

    # Sessions
    SESSION_CREATED = "SESSION_CREATED"
    SESSION_ROTATED = "SESSION_ROTATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    SESSION_INVALID = "SESSION_INVALID"  # fingerprint mismatch, possible hijack

    # Remember tokens
    TOKEN_ISSUED = "TOKEN_ISSUED"
    TOKEN_RESUMED = "TOKEN_RESUMED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"

    # Infrastructure
    CSRF_REJECTED = "CSRF_REJECTED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


@dataclass
class AuditEvent:
    """An auditable security event."""
    event_type: AuditEventType
    severity: AuditSeverity
    timestamp: datetime
    user_id: Optional[str] = None
    description: str = ""
    details: Dict = field(default_factory=dict)

    # Computed fields
    event_id: str = field(default="")
    previous_hash: str = field(default="")
    event_hash: str = field(default="")

    def __post_init__(self):
        if not self.event_id:
            self.event_id = hashlib.sha256(
                f"{self.timestamp.isoformat()}{self.event_type.value}{os.urandom(8).hex()}".encode()
            ).hexdigest()[:16]

    def _hashed_fields(self) -> Dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }

    def compute_hash(self, previous_hash: str) -> str:
        """Compute event hash for chain integrity."""
        self.previous_hash = previous_hash
        self.event_hash = _digest(self._hashed_fields())
        return self.event_hash

    def to_dict(self) -> Dict:
        """Convert to dictionary for storage."""
        data = self._hashed_fields()
        data["event_hash"] = self.event_hash
        return data


def _digest(data: Dict) -> str:
    return hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()


class TamperAwareAuditLog:
    """
    Append-only audit log with tamper detection.

    Features:
    - Chained hashes for integrity
    - Append-only (no deletion)
    - JSON Lines format
    - No secrets: callers pass user ids and failure kinds only
    """

    def __init__(self, log_path: Path | str):
        self._log_path = Path(log_path)
        self._lock = threading.Lock()
        self._last_hash = GENESIS_HASH
        self._event_count = 0
        self._log = logging.getLogger("sessionguard.audit")

        self._log_path.parent.mkdir(parents=True, exist_ok=True)

        self._load_chain()

    @property
    def event_count(self) -> int:
        return self._event_count

    def _load_chain(self) -> None:
        """Resume the chain from the last entry of an existing log."""
        if not self._log_path.exists():
            return

        with open(self._log_path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    self._log.error("Audit log line %d is not valid JSON", line_no)
                    continue
                self._last_hash = event.get("event_hash", self._last_hash)
                self._event_count += 1

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        user_id: Optional[str] = None,
        details: Optional[Dict] = None,
    ) -> str:
        """
        Log an audit event.

        Returns:
            Event ID
        """
        event = AuditEvent(
            event_type=event_type,
            severity=severity,
            timestamp=datetime.now(timezone.utc),
            user_id=user_id,
            description=description,
            details=details or {},
        )

        with self._lock:
            event.compute_hash(self._last_hash)

            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict()) + "\n")
                f.flush()
                os.fsync(f.fileno())

            self._last_hash = event.event_hash
            self._event_count += 1

        return event.event_id

    def verify_integrity(self) -> tuple[bool, int]:
        """
        Verify log chain integrity.

        Each entry must link to its predecessor's hash and its own hash
        must match its content.

        Returns:
            Tuple of (is_valid, number of verified events)
        """
        if not self._log_path.exists():
            return True, 0

        previous_hash = GENESIS_HASH
        count = 0

        with open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    return False, count

                if event.get("previous_hash") != previous_hash:
                    return False, count

                stored_hash = event.pop("event_hash", "")
                if _digest(event) != stored_hash:
                    return False, count

                previous_hash = stored_hash
                count += 1

        return True, count

    def get_events(
        self,
        since: Optional[datetime] = None,
        event_type: Optional[AuditEventType] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict]:
        """Get filtered events (read-only)."""
        events: List[Dict] = []

        if not self._log_path.exists():
            return events

        with open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue

                if since and datetime.fromisoformat(event["timestamp"]) < since:
                    continue
                if event_type and event["event_type"] != event_type.value:
                    continue
                if user_id and event.get("user_id") != user_id:
                    continue

                events.append(event)

                if len(events) >= limit:
                    break

        return events


def audit_log(
    log: Optional[TamperAwareAuditLog],
    event_type: AuditEventType,
    severity: AuditSeverity,
    description: str,
    **kwargs
) -> Optional[str]:
    """Convenience function: record an event if an audit log is configured."""
    if log is None:
        return None
    return log.log(event_type, severity, description, **kwargs)
