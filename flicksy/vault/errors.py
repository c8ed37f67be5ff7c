"""
Vault error kinds.

Lookup misses are not errors: stores return None and authentication
returns False.
"""


class VaultError(Exception):
    """Base class for credential/secret core failures."""
    pass


class DuplicateIdentityError(VaultError):
    """An account with this identity hash already exists."""
    pass


class StorageError(VaultError):
    """SQLite I/O or constraint failure."""
    pass


class TamperedSecretError(VaultError):
    """
    Stored secret failed authenticated decryption.

    Raised for a bad GCM tag as well as for ciphertext or nonce values
    that cannot be decoded at all. Either way the row was corrupted or
    modified outside the vault.
    """
    pass


class KeychainUnavailableError(VaultError):
    """No usable OS keychain backend for the master key."""
    pass
