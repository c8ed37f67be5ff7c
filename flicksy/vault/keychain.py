"""
OS keychain access for the vault master key.

Supports:
- macOS: Keychain
- Windows: Credential Locker
- Linux: Secret Service (GNOME Keyring / KWallet)

The master key is kept out of the SQLite file entirely. There is no
fallback to a file or plaintext backend: without a real keychain,
anything that needs the master key fails.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError

from .errors import KeychainUnavailableError

logger = logging.getLogger(__name__)

# Backends that store nothing, or store it unprotected on disk
_REJECTED_BACKENDS = ("fail", "null", "plaintext", "unencrypted")


class KeychainIntegration:
    """
    Thin accessor over the system keychain.

    Entries are written under a single service namespace. On macOS and
    Windows the platform backends keep items local to the device and
    unreadable while the session is locked; backends that cannot offer
    that are rejected by is_available().
    """

    SERVICE_NAME = "flicksy"

    def __init__(self, service_name: str = None, backend: KeyringBackend = None):
        """
        Args:
            service_name: Keyring service namespace
            backend: Explicit keyring backend, defaults to the active one
        """
        self.service_name = service_name or self.SERVICE_NAME
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        if self._backend is None:
            self._backend = keyring.get_keyring()
        return self._backend

    def get_backend_name(self) -> Optional[str]:
        """Get the qualified name of the keyring backend in use."""
        try:
            backend_type = type(self.backend)
        except Exception as e:
            logger.debug(f"Keyring probe failed: {e}")
            return None
        return f"{backend_type.__module__}.{backend_type.__name__}"

    def is_available(self) -> bool:
        """Check if a secure keychain backend is active."""
        name = self.get_backend_name()
        if name is None:
            return False
        if any(marker in name.lower() for marker in _REJECTED_BACKENDS):
            logger.debug(f"Keyring backend not usable: {name}")
            return False
        logger.debug(f"Keyring backend: {name}")
        return True

    def get(self, identifier: str) -> Optional[str]:
        """Read an entry, None if absent."""
        self._require_backend()
        try:
            return self.backend.get_password(self.service_name, identifier)
        except KeyringError as e:
            raise KeychainUnavailableError(f"Keychain read failed: {e}") from e

    def set(self, identifier: str, value: str) -> None:
        self._require_backend()
        try:
            self.backend.set_password(self.service_name, identifier, value)
        except KeyringError as e:
            raise KeychainUnavailableError(f"Keychain write failed: {e}") from e

    def get_or_create(self, identifier: str, generator: Callable[[], str]) -> str:
        """
        Return the entry under identifier, creating it if absent.

        Not atomic: two processes creating at once both generate a value
        and the keychain keeps the last write. Callers serialize creation
        within a process.

        Args:
            identifier: Fixed entry name
            generator: Produces fresh key material when the entry is absent

        Raises:
            KeychainUnavailableError: No secure backend, or the backend failed
        """
        existing = self.get(identifier)
        if existing:
            logger.debug(f"Read '{identifier}' from keychain")
            return existing

        value = generator()
        self.set(identifier, value)
        logger.info(f"Created '{identifier}' in keychain ({self.get_backend_name()})")
        return value

    def _require_backend(self) -> None:
        if not self.is_available():
            raise KeychainUnavailableError(
                f"No secure keychain backend available (active: {self.get_backend_name()})"
            )
