"""At-rest encryption for session credential fragments.

Security:
- AES-256-GCM encryption
- Random 96-bit nonce per value, stored in front of the ciphertext
- Key comes from CREDENTIALS_KEY (64 hex chars)
- Plaintext fragments are never logged
"""

from __future__ import annotations

import base64
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

_NONCE_SIZE = 12


def parse_key(key_hex: str | None) -> bytes:
    """Parse and validate an AES-256 key given as hex.

    Raises:
        RuntimeError: If the key is missing or not 32 bytes.
    """
    if not key_hex:
        raise RuntimeError(
            "CREDENTIALS_KEY not configured. "
            "Generate with: openssl rand -hex 32"
        )
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as e:
        raise RuntimeError("CREDENTIALS_KEY must be hex encoded") from e
    if len(key) != 32:
        raise RuntimeError(
            "CREDENTIALS_KEY must be 32 bytes hex (64 hex chars). "
            "Generate with: openssl rand -hex 32"
        )
    return key


def encrypt(key: bytes, plaintext: str) -> str:
    """Encrypt string with AES-256-GCM.

    Returns:
        Base64-encoded nonce + ciphertext.
    """
    nonce = os.urandom(_NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode(), None)
    return base64.b64encode(nonce + ciphertext).decode()


def decrypt(key: bytes, encrypted: str) -> str:
    """Decrypt a base64 nonce + ciphertext string produced by encrypt().

    Raises:
        cryptography.exceptions.InvalidTag: If the key is wrong or data was tampered.
    """
    data = base64.b64decode(encrypted)
    plaintext = AESGCM(key).decrypt(data[:_NONCE_SIZE], data[_NONCE_SIZE:], None)
    return plaintext.decode()
