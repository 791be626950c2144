"""
Core module - Contains configuration, logging, errors and authentication.
"""

from sessionguard.core.config import SecureConfig
from sessionguard.core.logging import get_secure_logger, SecureLogFilter

__all__ = ["SecureConfig", "get_secure_logger", "SecureLogFilter"]
