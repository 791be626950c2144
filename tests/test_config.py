"""
Tests for SecureConfig.

Tests:
- Defaults
- Environment overrides
- Sensitive keys are never read from the environment
- Validation and immutability
"""

from __future__ import annotations

import warnings
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

from sessionguard.core.config import (
    AppConfig,
    LoggingConfig,
    PathConfig,
    SecureConfig,
    SecurityConfig,
    SecurityWarning,
)


class TestDefaults:
    """Tests for default values."""

    def test_security_defaults(self):
        security = SecurityConfig()

        assert security.idle_timeout_seconds == 1800
        assert security.absolute_timeout_seconds is None
        assert security.remember_token_days == 30
        assert security.session_id_bytes == 32

    def test_cookie_names(self):
        app = AppConfig()

        assert app.session_cookie_name == "sg_session"
        assert app.remember_cookie_name == "sg_remember"
        assert app.csrf_cookie_name == "sg_csrf"
        assert app.secure_cookies is True

    def test_derived_paths(self, tmp_path):
        paths = PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs")

        assert paths.database_path == tmp_path / "data" / "sessionguard.db"
        assert paths.audit_log_path == tmp_path / "logs" / "audit.log"


class TestEnvironmentOverrides:
    """Tests for SecureConfig.load()."""

    def test_security_override(self, monkeypatch):
        monkeypatch.setenv("SESSIONGUARD_SECURITY__IDLE_TIMEOUT_SECONDS", "900")
        monkeypatch.setenv("SESSIONGUARD_SECURITY__STORE_TIMEOUT_SECONDS", "0.5")

        config = SecureConfig.load()

        assert config.security.idle_timeout_seconds == 900
        assert config.security.store_timeout_seconds == 0.5

    def test_logging_override(self, monkeypatch):
        monkeypatch.setenv("SESSIONGUARD_LOGGING__LEVEL", "DEBUG")
        monkeypatch.setenv("SESSIONGUARD_LOGGING__ENABLE_JSON", "true")

        config = SecureConfig.load()

        assert config.logging.level == "DEBUG"
        assert config.logging.enable_json is True

    def test_paths_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SESSIONGUARD_PATHS__DATA_DIR", str(tmp_path))

        config = SecureConfig.load()

        assert config.paths.data_dir == Path(tmp_path)

    def test_sensitive_keys_ignored(self, monkeypatch):
        monkeypatch.setenv("SESSIONGUARD_SECURITY__FINGERPRINT_SALT", "attacker-salt")

        config = SecureConfig.load()

        assert config.security.fingerprint_salt == SecurityConfig().fingerprint_salt

    def test_invalid_override_rejected(self, monkeypatch):
        monkeypatch.setenv("SESSIONGUARD_SECURITY__IDLE_TIMEOUT_SECONDS", "0")
        with pytest.raises(ValueError):
            SecureConfig.load()

    def test_singleton(self):
        assert SecureConfig.get_instance() is SecureConfig.get_instance()


class TestValidation:
    """Tests for validation and immutability."""

    def test_short_session_ids_rejected(self):
        with pytest.raises(ValueError):
            SecurityConfig(session_id_bytes=8)

    def test_absolute_shorter_than_idle_rejected(self):
        with pytest.raises(ValueError):
            SecurityConfig(idle_timeout_seconds=600, absolute_timeout_seconds=300)

    def test_relative_paths_rejected(self):
        with pytest.raises(ValueError):
            PathConfig(data_dir=Path("relative"))

    def test_bad_log_level_rejected(self):
        with pytest.raises(ValueError):
            LoggingConfig(level="CHATTY")

    def test_insecure_cookies_warn(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            AppConfig(secure_cookies=False)

        assert any(issubclass(w.category, SecurityWarning) for w in caught)

    def test_sections_are_frozen(self):
        with pytest.raises(FrozenInstanceError):
            SecurityConfig().idle_timeout_seconds = 1

    def test_secure_config_is_immutable(self):
        config = SecureConfig()
        with pytest.raises(AttributeError):
            config._security = SecurityConfig(idle_timeout_seconds=1)

    def test_repr_is_safe(self):
        assert "fingerprint_salt" not in repr(SecureConfig())
