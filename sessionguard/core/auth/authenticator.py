"""
Authenticator
=============

Pure credential check. Touches neither sessions nor tokens, so it can
be tested independently of storage concerns.
"""

from __future__ import annotations

import logging

from sessionguard.core.auth.credentials import CredentialStore
from sessionguard.core.errors import InvalidCredentialsError


class Authenticator:
    """Verifies credentials against a CredentialStore."""

    __slots__ = ("_credentials", "_log")

    def __init__(self, credentials: CredentialStore) -> None:
        self._credentials = credentials
        self._log = logging.getLogger("sessionguard.authenticator")

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def authenticate(self, username: str, password: str) -> str:
        """
        Authenticate a username/password pair.

        Returns:
            The authenticated user id

        Raises:
            InvalidCredentialsError: Blank input, unknown user or wrong password
        """
        if not isinstance(username, str) or not isinstance(password, str):
            raise InvalidCredentialsError("Invalid username or password")
        if not username.strip() or not password.strip():
            self._log.info("Login rejected: blank username or password")
            raise InvalidCredentialsError("Invalid username or password")

        try:
            user_id = self._credentials.verify(username.strip(), password)
        except InvalidCredentialsError:
            self._log.warning(
                "Invalid credentials",
                extra={"auth_event": InvalidCredentialsError.kind},
            )
            raise

        self._log.info("User %s authenticated", user_id)
        return user_id
