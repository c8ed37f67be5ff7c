"""
Password hashing and random/digest primitives.

scrypt parameters are fixed (N=2**14, r=8, p=1). Changing them
invalidates every stored password hash.
"""

from __future__ import annotations
import hashlib
import logging
import secrets
from typing import NamedTuple, Optional

from cryptography.hazmat.primitives import constant_time
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

logger = logging.getLogger(__name__)

SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

KEY_LENGTH = 32
SALT_LENGTH = 16


class PasswordHash(NamedTuple):
    """Hex-encoded scrypt output and the salt that produced it."""
    hash_hex: str
    salt_hex: str


def random_bytes(n: int) -> bytes:
    """Return n bytes from the OS CSPRNG."""
    if n <= 0:
        raise ValueError(f"Byte count must be positive, got {n}")
    return secrets.token_bytes(n)


def derive_key(password: str, salt: bytes, key_length: int = KEY_LENGTH) -> bytes:
    """
    Derive key material from a password with scrypt.

    Args:
        password: Plaintext password
        salt: Raw salt bytes
        key_length: Output length in bytes

    Returns:
        Derived key (deterministic for identical inputs)
    """
    kdf = Scrypt(
        salt=salt,
        length=key_length,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )
    return kdf.derive(password.encode("utf-8"))


def hash_password(password: str, salt_hex: Optional[str] = None) -> PasswordHash:
    """
    Hash a password for storage or verification.

    With no salt a fresh random one is generated (registration). Pass the
    stored salt to reproduce a hash for comparison (login).
    """
    salt = bytes.fromhex(salt_hex) if salt_hex else random_bytes(SALT_LENGTH)
    key = derive_key(password, salt, KEY_LENGTH)
    return PasswordHash(hash_hex=key.hex(), salt_hex=salt.hex())


def constant_time_equal(a_hex: str, b_hex: str) -> bool:
    """Compare two hex strings without leaking the first differing position."""
    return constant_time.bytes_eq(a_hex.encode("ascii"), b_hex.encode("ascii"))


def digest_hex(value: str) -> str:
    """SHA-256 of the UTF-8 encoding, hex-encoded."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def normalize_identity(identity: str) -> str:
    return identity.strip().lower()


def hash_identity(identity: str) -> str:
    """One-way lookup key for a username or email."""
    return digest_hex(normalize_identity(identity))


def generate_key_hex(length: int = KEY_LENGTH) -> str:
    """Fresh random symmetric key, hex-encoded."""
    return random_bytes(length).hex()
