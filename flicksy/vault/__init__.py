"""
Credential vault - local accounts and encrypted API key storage.
"""

from .cipher import EncryptedPayload
from .crypto import PasswordHash, hash_identity, normalize_identity
from .errors import (
    VaultError,
    DuplicateIdentityError,
    StorageError,
    TamperedSecretError,
    KeychainUnavailableError,
)
from .keychain import KeychainIntegration
from .service import CredentialService, RegistrationResult, MASTER_KEY_ID
from .store import VaultStore, UserRecord, SecretRecord

__all__ = [
    # Service
    "CredentialService",
    "RegistrationResult",
    "MASTER_KEY_ID",
    # Store
    "VaultStore",
    "UserRecord",
    "SecretRecord",
    # Keychain
    "KeychainIntegration",
    # Crypto
    "EncryptedPayload",
    "PasswordHash",
    "hash_identity",
    "normalize_identity",
    # Errors
    "VaultError",
    "DuplicateIdentityError",
    "StorageError",
    "TamperedSecretError",
    "KeychainUnavailableError",
]
