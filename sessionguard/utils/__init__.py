"""
Utils module - Utility functions and helpers.

This module contains input validation used throughout SessionGuard.
"""

from sessionguard.utils.validators import (
    validate_password,
    validate_string_safe,
    validate_username,
)

__all__ = [
    "validate_password",
    "validate_string_safe",
    "validate_username",
]
