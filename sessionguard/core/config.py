"""
Secure Configuration Module
===========================

Provides immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values
- Type-safe configuration access
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional

from sessionguard.security.constants import (
    CSRF_COOKIE_NAME,
    LOCKOUT_DURATION_SECONDS,
    MAX_LOGIN_ATTEMPTS,
    PURGE_INTERVAL_SECONDS,
    REMEMBER_COOKIE_NAME,
    REMEMBER_TOKEN_BYTES,
    REMEMBER_TOKEN_LIFETIME_DAYS,
    SESSION_COOKIE_NAME,
    SESSION_ID_BYTES,
    SESSION_IDLE_TIMEOUT_SECONDS,
)


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "salt", "pepper",
    "private", "credential",
})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "SessionGuard"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "SessionGuard" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "SessionGuard"
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "SessionGuard" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)

    def __post_init__(self) -> None:
        """Validate paths after initialization."""
        for field_name in ["data_dir", "log_dir"]:
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")

    @property
    def database_path(self) -> Path:
        """SQLite database holding users, sessions and remember tokens."""
        return self.data_dir / "sessionguard.db"

    @property
    def audit_log_path(self) -> Path:
        """Append-only audit log."""
        return self.log_dir / "audit.log"


@dataclass(frozen=True, slots=True)
class SecurityConfig:
    """Immutable security configuration."""

    # Session settings
    idle_timeout_seconds: int = SESSION_IDLE_TIMEOUT_SECONDS
    absolute_timeout_seconds: Optional[int] = None  # disabled
    session_id_bytes: int = SESSION_ID_BYTES
    purge_interval_seconds: int = PURGE_INTERVAL_SECONDS

    # Remember-me settings
    remember_token_days: int = REMEMBER_TOKEN_LIFETIME_DAYS
    remember_token_bytes: int = REMEMBER_TOKEN_BYTES

    # Argon2id password hashing (OWASP 2023 minimums)
    argon2_memory_cost: int = 65536  # 64 MB in KiB
    argon2_time_cost: int = 3
    argon2_parallelism: int = 4

    # Login throttling
    max_login_attempts: int = MAX_LOGIN_ATTEMPTS
    lockout_duration_seconds: int = LOCKOUT_DURATION_SECONDS

    # Store adapter
    store_timeout_seconds: float = 2.0
    store_retry_attempts: int = 3
    store_retry_initial_delay: float = 0.05
    store_retry_max_delay: float = 1.0

    # Fingerprint salt (per installation; never read from the environment)
    fingerprint_salt: bytes = b"SessionGuard_ClientBinding_v1"

    def __post_init__(self) -> None:
        """Validate security settings."""
        if self.idle_timeout_seconds <= 0:
            raise ValueError("Idle timeout must be positive")
        if self.absolute_timeout_seconds is not None and self.absolute_timeout_seconds < self.idle_timeout_seconds:
            raise ValueError("Absolute timeout cannot be shorter than the idle timeout")
        if self.session_id_bytes < 16:
            raise ValueError("Session identifiers need at least 16 bytes (128 bits)")
        if self.remember_token_bytes < 16:
            raise ValueError("Remember tokens need at least 16 bytes (128 bits)")
        if self.remember_token_days <= 0:
            raise ValueError("Remember token lifetime must be positive")
        if self.store_retry_attempts < 1:
            raise ValueError("Store retry attempts must be at least 1")
        if self.store_timeout_seconds <= 0:
            raise ValueError("Store timeout must be positive")
        if self.purge_interval_seconds <= 0:
            raise ValueError("Purge interval must be positive")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Immutable application configuration."""

    app_name: str = "SessionGuard"
    version: str = "0.1.0"
    debug_mode: bool = False  # Always False in production
    secure_cookies: bool = True
    session_cookie_name: str = SESSION_COOKIE_NAME
    remember_cookie_name: str = REMEMBER_COOKIE_NAME
    csrf_cookie_name: str = CSRF_COOKIE_NAME

    def __post_init__(self) -> None:
        """Validate and enforce security rules."""
        if self.debug_mode:
            warnings.warn(
                "Debug mode is enabled. This should NEVER be used in production.",
                SecurityWarning,
                stacklevel=2
            )
        if not self.secure_cookies:
            warnings.warn(
                "Secure cookies are disabled; cookies will travel over plain HTTP.",
                SecurityWarning,
                stacklevel=2
            )


class SecureConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = SecureConfig.load()
        timeout = config.security.idle_timeout_seconds
        db_path = config.paths.database_path
    """

    __slots__ = ("_paths", "_security", "_logging", "_app", "_frozen", "_config_hash")

    _instance: Optional[SecureConfig] = None

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        security: Optional[SecurityConfig] = None,
        logging: Optional[LoggingConfig] = None,
        app: Optional[AppConfig] = None,
    ) -> None:
        """Initialize configuration. Use SecureConfig.load() for standard initialization."""
        # Use object.__setattr__ to bypass our immutability check during init
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_security", security or SecurityConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_app", app or AppConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = f"{self._paths}|{self._security}|{self._logging}|{self._app}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        """Get path configuration."""
        return self._paths

    @property
    def security(self) -> SecurityConfig:
        """Get security configuration."""
        return self._security

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        return self._logging

    @property
    def app(self) -> AppConfig:
        """Get application configuration."""
        return self._app

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "SESSIONGUARD") -> SecureConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables should be prefixed with SESSIONGUARD_ and use
        double underscores for nested values.

        Examples:
            SESSIONGUARD_LOGGING__LEVEL=DEBUG
            SESSIONGUARD_SECURITY__IDLE_TIMEOUT_SECONDS=900
            SESSIONGUARD_PATHS__DATA_DIR=/custom/path

        Args:
            env_prefix: Prefix for environment variables (default: SESSIONGUARD)

        Returns:
            Configured SecureConfig instance
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        for name in ("data_dir", "log_dir"):
            if f"paths.{name}" in env_overrides:
                paths_kwargs[name] = Path(env_overrides[f"paths.{name}"])

        security_kwargs: dict[str, Any] = {}
        for name in (
            "idle_timeout_seconds",
            "absolute_timeout_seconds",
            "remember_token_days",
            "max_login_attempts",
            "lockout_duration_seconds",
            "store_retry_attempts",
            "purge_interval_seconds",
        ):
            if f"security.{name}" in env_overrides:
                security_kwargs[name] = int(env_overrides[f"security.{name}"])
        for name in ("store_timeout_seconds", "store_retry_initial_delay", "store_retry_max_delay"):
            if f"security.{name}" in env_overrides:
                security_kwargs[name] = float(env_overrides[f"security.{name}"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        for name in ("enable_console", "enable_file", "enable_json"):
            if f"logging.{name}" in env_overrides:
                logging_kwargs[name] = env_overrides[f"logging.{name}"].lower() == "true"

        # debug_mode and secure_cookies cannot be overridden via env for security
        app_kwargs: dict[str, Any] = {}

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            security=SecurityConfig(**security_kwargs) if security_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
            app=AppConfig(**app_kwargs) if app_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # Convert SESSIONGUARD_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> SecureConfig:
        """Get or create the singleton configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance. Use only for testing."""
        cls._instance = None

    def ensure_directories(self) -> None:
        """Create all required directories with secure permissions."""
        import stat

        for directory in (self._paths.data_dir, self._paths.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

            # Set restrictive permissions on Unix-like systems
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700 - owner only

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return f"SecureConfig(hash={self._config_hash}, app={self._app.app_name})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("SecureConfig is immutable after initialization")
        super().__setattr__(name, value)


class SecurityWarning(UserWarning):
    """Warning for security-related configuration issues."""
    pass
