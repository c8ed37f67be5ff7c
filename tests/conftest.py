import asyncio

import pytest

from flicksy.vault import CredentialService, KeychainIntegration, VaultStore

from .helpers import MemoryKeyring


@pytest.fixture
def memory_keyring():
    return MemoryKeyring()


@pytest.fixture
def keychain(memory_keyring):
    return KeychainIntegration(service_name="flicksy-test", backend=memory_keyring)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "flicksy.db"


@pytest.fixture
def store(db_path):
    store = VaultStore(db_path)
    store.initialize_schema()
    yield store
    store.close()


@pytest.fixture
def service(store, keychain):
    return CredentialService(store=store, keychain=keychain, key_lock=asyncio.Lock())
