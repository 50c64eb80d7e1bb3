"""Secure credential storage for wireftp.

FTP passwords are kept in the system keyring (Windows Credential
Manager, macOS Keychain, Linux Secret Service) keyed by
user@host:port, so they never land in settings.json.
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger("wireftp.credentials")

ANONYMOUS_PASSWORD = "anonymous@"


class CredentialManager:
    """Keyring-backed password store for FTP accounts."""

    SERVICE_NAME = "wireftp"

    def __init__(self, service_name: Optional[str] = None):
        """
        Initialize the store.

        Args:
            service_name: Keyring service, defaults to SERVICE_NAME
        """
        self.service_name = service_name or self.SERVICE_NAME

    @staticmethod
    def account_key(host: str, port: int, username: str) -> str:
        """Keyring account name for one FTP login."""
        return f"{username}@{host}:{port}"

    def save_password(self, host: str, port: int, username: str, password: str) -> bool:
        """
        Store a password.

        Returns:
            True if the keyring accepted it
        """
        try:
            keyring.set_password(self.service_name, self.account_key(host, port, username), password)
        except KeyringError as e:
            logger.warning(f"Could not store password for {username}@{host}: {e}")
            return False
        return True

    def get_password(self, host: str, port: int, username: str) -> Optional[str]:
        """Stored password, or None if absent or the keyring is unavailable."""
        try:
            return keyring.get_password(self.service_name, self.account_key(host, port, username))
        except KeyringError as e:
            logger.debug(f"Keyring lookup failed: {e}")
            return None

    def delete_password(self, host: str, port: int, username: str) -> bool:
        """Forget a stored password; False if there was nothing to delete."""
        try:
            keyring.delete_password(self.service_name, self.account_key(host, port, username))
        except KeyringError:
            return False
        return True

    def resolve_password(
        self,
        host: str,
        port: int,
        username: str,
        password: Optional[str] = None,
    ) -> str:
        """
        Pick the password to log in with.

        An explicit password wins, then the keyring, then the conventional
        anonymous password.
        """
        if password is not None:
            return password
        stored = self.get_password(host, port, username)
        if stored is not None:
            logger.debug(f"Using stored password for {username}@{host}")
            return stored
        return ANONYMOUS_PASSWORD
