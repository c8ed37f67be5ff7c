"""
Credential and secret service.

Registers and authenticates local users, and stores service API keys
encrypted under a master key held in the OS keychain (envelope
encryption). All public operations are coroutines; sqlite, keychain and
scrypt work runs in worker threads.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from . import cipher
from .crypto import (
    KEY_LENGTH,
    SALT_LENGTH,
    constant_time_equal,
    generate_key_hex,
    hash_identity,
    hash_password,
)
from .errors import DuplicateIdentityError, TamperedSecretError
from .keychain import KeychainIntegration
from .store import VaultStore

logger = logging.getLogger(__name__)

MASTER_KEY_ID = "flicksy.master_key_hex"

# Burned on unknown identities so a miss costs the same scrypt run as a hit
_DUMMY_SALT_HEX = "00" * SALT_LENGTH


@dataclass
class RegistrationResult:
    """Outcome of register(): a user ID or a generic error message."""
    user_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.user_id is not None


class CredentialService:
    """
    Entry point for the auth context and settings screens.

    Authentication is stateless per call; session state belongs to the
    caller. The store and keychain are constructed once and injected.
    """

    def __init__(
        self,
        store: VaultStore,
        keychain: KeychainIntegration,
        master_key_id: str = MASTER_KEY_ID,
        key_lock: asyncio.Lock = None,
    ):
        """
        Args:
            store: Initialized (or initializable) SQLite store
            keychain: Keychain accessor holding the master key
            master_key_id: Keychain entry name for the master key
            key_lock: Guard for first-time master key creation
        """
        self.store = store
        self.keychain = keychain
        self.master_key_id = master_key_id
        self._key_lock = key_lock or asyncio.Lock()
        self._master_key: Optional[str] = None
        self._schema_ready = False

    @classmethod
    def from_settings(cls, settings) -> CredentialService:
        """Build store, keychain and service from AppSettings."""
        return cls(
            store=VaultStore(settings.db_path),
            keychain=KeychainIntegration(service_name=settings.keychain_service),
            master_key_id=settings.master_key_id,
        )

    async def _ensure_schema(self) -> None:
        if not self._schema_ready:
            await asyncio.to_thread(self.store.initialize_schema)
            self._schema_ready = True

    # ── Users ────────────────────────────────────────────────────────

    async def register(self, identity: str, password: str) -> RegistrationResult:
        """
        Create a local account.

        Returns:
            RegistrationResult with user_id, or error "User already exists"

        Raises:
            StorageError: Database failure
        """
        await self._ensure_schema()
        identity_hash = hash_identity(identity)

        existing = await asyncio.to_thread(self.store.find_user_by_identity_hash, identity_hash)
        if existing:
            return RegistrationResult(error="User already exists")

        hashed = await asyncio.to_thread(hash_password, password)
        try:
            user_id = await asyncio.to_thread(
                self.store.insert_user, identity_hash, hashed.hash_hex, hashed.salt_hex
            )
        except DuplicateIdentityError:
            # Lost a race with a concurrent registration
            return RegistrationResult(error="User already exists")

        logger.info(f"Registered user {user_id}")
        return RegistrationResult(user_id=user_id)

    async def authenticate(self, identity: str, password: str) -> bool:
        """
        Verify a password.

        Unknown identity and wrong password both return False.
        """
        await self._ensure_schema()
        identity_hash = hash_identity(identity)
        user = await asyncio.to_thread(self.store.find_user_by_identity_hash, identity_hash)

        if user is None:
            await asyncio.to_thread(hash_password, password, _DUMMY_SALT_HEX)
            logger.warning("Authentication failed")
            return False

        recomputed = await asyncio.to_thread(hash_password, password, user.password_salt)
        if constant_time_equal(recomputed.hash_hex, user.password_hash):
            logger.debug(f"Authenticated user {user.id}")
            return True

        logger.warning("Authentication failed")
        return False

    # ── Master key ───────────────────────────────────────────────────

    async def ensure_master_key(self) -> str:
        """
        Get the master key, creating it in the keychain on first use.

        Raises:
            KeychainUnavailableError: No usable keychain
        """
        if self._master_key:
            return self._master_key

        async with self._key_lock:
            if not self._master_key:
                self._master_key = await asyncio.to_thread(
                    self.keychain.get_or_create,
                    self.master_key_id,
                    lambda: generate_key_hex(KEY_LENGTH),
                )
        return self._master_key

    # ── Secrets ──────────────────────────────────────────────────────

    async def store_secret(self, service_name: str, plaintext: str) -> None:
        """Encrypt and store (or replace) the secret for service_name."""
        await self._ensure_schema()
        key_hex = await self.ensure_master_key()
        payload = cipher.encrypt(plaintext, key_hex)
        await asyncio.to_thread(
            self.store.upsert_secret, service_name, payload.ciphertext, payload.nonce_hex
        )
        logger.info(f"Stored secret '{service_name}'")

    async def retrieve_secret(self, service_name: str) -> Optional[str]:
        """
        Decrypt the secret for service_name.

        Returns:
            Plaintext, or None if nothing is stored

        Raises:
            TamperedSecretError: Stored row failed authentication
        """
        await self._ensure_schema()
        record = await asyncio.to_thread(self.store.get_secret, service_name)
        if record is None:
            logger.debug(f"No secret stored for '{service_name}'")
            return None

        key_hex = await self.ensure_master_key()
        try:
            return cipher.decrypt(record.ciphertext, key_hex, record.nonce)
        except TamperedSecretError:
            logger.error(f"Secret '{service_name}' failed integrity check")
            raise

    # Names used by the app's settings screens
    store_encrypted_api_key = store_secret
    retrieve_decrypted_api_key = retrieve_secret
