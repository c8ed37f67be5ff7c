"""Tests for the credential and secret service."""

import asyncio
import base64
import sqlite3

import pytest
from keyring.backends import fail

from flicksy.config import AppSettings
from flicksy.vault import CredentialService, KeychainIntegration, VaultStore
from flicksy.vault.crypto import hash_identity
from flicksy.vault.errors import KeychainUnavailableError, StorageError, TamperedSecretError


def stored_users(db_path):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute("SELECT id, password_salt FROM users ORDER BY id").fetchall()
    finally:
        conn.close()


# ── Registration / authentication ────────────────────────────────────


@pytest.mark.asyncio
async def test_register_then_authenticate(service):
    result = await service.register("alice@example.com", "Secur3P@ss")

    assert result.ok
    assert result.user_id is not None
    assert await service.authenticate("alice@example.com", "Secur3P@ss") is True
    assert await service.authenticate("alice@example.com", "wrong") is False


@pytest.mark.asyncio
async def test_authenticate_normalizes_identity(service):
    await service.register("Alice@Example.com", "pw")

    assert await service.authenticate("  alice@EXAMPLE.com ", "pw") is True


@pytest.mark.asyncio
async def test_register_duplicate_returns_error(service, store):
    first = await service.register("alice@example.com", "x")
    second = await service.register("alice@example.com", "x")

    assert first.ok
    assert not second.ok
    assert second.error == "User already exists"
    assert second.user_id is None
    user = store.find_user_by_identity_hash(hash_identity("alice@example.com"))
    assert user.id == first.user_id


@pytest.mark.asyncio
async def test_register_duplicate_race_returns_error(service, store, monkeypatch):
    await service.register("alice@example.com", "x")
    # Pre-check misses, the unique constraint catches it
    monkeypatch.setattr(store, "find_user_by_identity_hash", lambda identity_hash: None)

    result = await service.register("alice@example.com", "y")

    assert result.error == "User already exists"


@pytest.mark.asyncio
async def test_register_uses_unique_salts(service, db_path):
    await service.register("alice@example.com", "same-password")
    await service.register("bob@example.com", "same-password")

    salts = [row[1] for row in stored_users(db_path)]

    assert len(salts) == 2
    assert salts[0] != salts[1]


@pytest.mark.asyncio
async def test_register_does_not_store_plain_identity(service, db_path):
    await service.register("alice@example.com", "pw")

    # Includes the WAL file
    for path in db_path.parent.glob("flicksy.db*"):
        assert b"alice@example.com" not in path.read_bytes()


@pytest.mark.asyncio
async def test_unknown_user_and_wrong_password_look_identical(service):
    await service.register("real@example.com", "rightpassword")

    missing = await service.authenticate("nosuchuser@example.com", "anything")
    wrong = await service.authenticate("real@example.com", "wrongpassword")

    assert missing is False
    assert wrong is False
    assert type(missing) is type(wrong)


@pytest.mark.asyncio
async def test_register_propagates_storage_error(service, db_path):
    await service.register("alice@example.com", "pw")
    conn = sqlite3.connect(db_path)
    conn.execute("DROP TABLE users")
    conn.commit()
    conn.close()

    with pytest.raises(StorageError):
        await service.register("bob@example.com", "pw")


# ── Master key ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_master_key_created_once(service, memory_keyring):
    keys = await asyncio.gather(*(service.ensure_master_key() for _ in range(5)))

    assert len(set(keys)) == 1
    assert len(bytes.fromhex(keys[0])) == 32
    assert memory_keyring.writes == 1


@pytest.mark.asyncio
async def test_master_key_survives_new_service(store, keychain, memory_keyring):
    first = await CredentialService(store, keychain).ensure_master_key()
    second = await CredentialService(store, keychain).ensure_master_key()

    assert first == second
    assert memory_keyring.writes == 1


@pytest.mark.asyncio
async def test_registration_does_not_touch_keychain(service, memory_keyring):
    await service.register("alice@example.com", "pw")

    assert memory_keyring.writes == 0


@pytest.mark.asyncio
async def test_store_secret_requires_keychain(store):
    service = CredentialService(store, KeychainIntegration(backend=fail.Keyring()))

    with pytest.raises(KeychainUnavailableError):
        await service.store_secret("tmdb", "abc123")

    assert store.get_secret("tmdb") is None


# ── Secrets ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_store_and_retrieve_api_key(service):
    await service.store_encrypted_api_key("tmdb", "abc123")

    assert await service.retrieve_decrypted_api_key("tmdb") == "abc123"
    assert await service.retrieve_decrypted_api_key("unknown-service") is None


@pytest.mark.asyncio
async def test_secret_is_not_stored_in_plaintext(service, store):
    await service.store_secret("tmdb", "abc123")

    record = store.get_secret("tmdb")

    assert "abc123" not in record.ciphertext
    assert b"abc123" not in base64.b64decode(record.ciphertext)


@pytest.mark.asyncio
async def test_store_secret_overwrites(service, db_path):
    await service.store_secret("tmdb", "KEY1")
    await service.store_secret("tmdb", "KEY2")

    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT COUNT(*) FROM secrets WHERE service_name = 'tmdb'").fetchone()[0]
    finally:
        conn.close()

    assert rows == 1
    assert await service.retrieve_secret("tmdb") == "KEY2"


@pytest.mark.asyncio
async def test_each_write_uses_new_nonce(service, store):
    await service.store_secret("tmdb", "KEY1")
    first = store.get_secret("tmdb").nonce
    await service.store_secret("tmdb", "KEY1")

    assert store.get_secret("tmdb").nonce != first


@pytest.mark.asyncio
async def test_corrupted_ciphertext_raises(service, db_path):
    await service.store_encrypted_api_key("tmdb", "abc123")
    conn = sqlite3.connect(db_path)
    raw = bytearray(base64.b64decode(
        conn.execute("SELECT ciphertext FROM secrets WHERE service_name = 'tmdb'").fetchone()[0]
    ))
    raw[0] ^= 0x01
    conn.execute(
        "UPDATE secrets SET ciphertext = ? WHERE service_name = 'tmdb'",
        (base64.b64encode(bytes(raw)).decode(),)
    )
    conn.commit()
    conn.close()

    with pytest.raises(TamperedSecretError):
        await service.retrieve_decrypted_api_key("tmdb")


@pytest.mark.asyncio
async def test_corrupted_nonce_raises(service, db_path):
    await service.store_secret("tmdb", "abc123")
    conn = sqlite3.connect(db_path)
    conn.execute("UPDATE secrets SET nonce = ? WHERE service_name = 'tmdb'", ("00" * 12,))
    conn.commit()
    conn.close()

    with pytest.raises(TamperedSecretError):
        await service.retrieve_secret("tmdb")


@pytest.mark.asyncio
async def test_service_initializes_fresh_database(tmp_path, keychain):
    service = CredentialService(VaultStore(tmp_path / "new.db"), keychain)

    assert await service.retrieve_secret("tmdb") is None
    assert service.store.is_initialized()
    service.store.close()


def test_from_settings(tmp_path):
    settings = AppSettings(
        db_path=tmp_path / "vault.db",
        keychain_service="flicksy-dev",
        master_key_id="dev.master",
    )

    service = CredentialService.from_settings(settings)

    assert service.store.db_path == tmp_path / "vault.db"
    assert service.keychain.service_name == "flicksy-dev"
    assert service.master_key_id == "dev.master"
