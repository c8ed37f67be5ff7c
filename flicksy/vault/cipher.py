"""
AES-256-GCM encryption of secret strings.

Ciphertext is stored base64-encoded (GCM tag appended by the library),
the 12-byte nonce hex-encoded. Every call to encrypt() draws a new
nonce; the master key is long-lived so nonces must never be reused.
"""

from __future__ import annotations
import base64
import binascii
import logging
from typing import NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .crypto import random_bytes
from .errors import TamperedSecretError

logger = logging.getLogger(__name__)

NONCE_LENGTH = 12


class EncryptedPayload(NamedTuple):
    """Base64 ciphertext+tag and the hex nonce used to produce it."""
    ciphertext: str
    nonce_hex: str


def _load_key(key_hex: str) -> AESGCM:
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as e:
        raise ValueError("Encryption key is not valid hex") from e
    # AESGCM also accepts 128/192-bit keys; the vault only uses 256-bit
    if len(key) != 32:
        raise ValueError(f"Encryption key must be 32 bytes, got {len(key)}")
    return AESGCM(key)


def encrypt(plaintext: str, key_hex: str) -> EncryptedPayload:
    """
    Encrypt a string under a hex-encoded 256-bit key.

    Args:
        plaintext: Secret to encrypt
        key_hex: 64-character hex key

    Returns:
        EncryptedPayload with a freshly generated nonce
    """
    aesgcm = _load_key(key_hex)
    nonce = random_bytes(NONCE_LENGTH)
    sealed = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
    return EncryptedPayload(
        ciphertext=base64.b64encode(sealed).decode("ascii"),
        nonce_hex=nonce.hex(),
    )


def decrypt(ciphertext: str, key_hex: str, nonce_hex: str) -> str:
    """
    Decrypt and authenticate a payload produced by encrypt().

    Raises:
        TamperedSecretError: Tag mismatch, or ciphertext/nonce not decodable
        ValueError: Key is malformed
    """
    aesgcm = _load_key(key_hex)

    try:
        sealed = base64.b64decode(ciphertext, validate=True)
        nonce = bytes.fromhex(nonce_hex)
    except (binascii.Error, ValueError) as e:
        raise TamperedSecretError("Stored secret is not decodable") from e

    if len(nonce) != NONCE_LENGTH:
        raise TamperedSecretError(f"Stored nonce has wrong length ({len(nonce)} bytes)")

    try:
        plaintext = aesgcm.decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise TamperedSecretError("Stored secret failed authentication") from e

    return plaintext.decode("utf-8")
