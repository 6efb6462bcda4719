"""
At-rest encryption for private feed credentials.

AES-256-GCM via the cryptography package. Stored format is
``base64(iv):base64(tag):base64(ciphertext)``; the key is a 64-character
hex string (32 bytes) from FEED_ENCRYPTION_KEY.
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import config

IV_LENGTH = 12
TAG_LENGTH = 16


class FeedEncryptionError(Exception):
    """Raised when a credential cannot be encrypted or decrypted."""

    pass


def _load_key(key_hex: str | None = None) -> bytes:
    key_hex = key_hex if key_hex is not None else config.FEED_ENCRYPTION_KEY
    if not key_hex:
        raise FeedEncryptionError("FEED_ENCRYPTION_KEY is not set")
    if len(key_hex) != 64:
        raise FeedEncryptionError("FEED_ENCRYPTION_KEY must be a 64-character hex string (32 bytes)")
    try:
        return bytes.fromhex(key_hex)
    except ValueError as e:
        raise FeedEncryptionError("FEED_ENCRYPTION_KEY is not valid hex") from e


def encrypt_feed_credential(plaintext: str, key_hex: str | None = None) -> str:
    """Encrypt a credential (e.g. an Authorization header value)."""
    aesgcm = AESGCM(_load_key(key_hex))
    iv = os.urandom(IV_LENGTH)
    sealed = aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return ":".join(
        base64.b64encode(part).decode("ascii") for part in (iv, tag, ciphertext)
    )


def decrypt_feed_credential(encrypted: str, key_hex: str | None = None) -> str:
    """Decrypt a stored credential; raises FeedEncryptionError on any failure."""
    parts = encrypted.split(":")
    if len(parts) != 3:
        raise FeedEncryptionError("Invalid encrypted credential format")
    try:
        iv, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
    except (binascii.Error, ValueError) as e:
        raise FeedEncryptionError("Invalid base64 in encrypted credential") from e

    aesgcm = AESGCM(_load_key(key_hex))
    try:
        return aesgcm.decrypt(iv, ciphertext + tag, None).decode("utf-8")
    except InvalidTag as e:
        raise FeedEncryptionError("Credential failed authentication") from e
    except ValueError as e:
        # Bad IV length or non-UTF-8 plaintext
        raise FeedEncryptionError(f"Credential could not be decrypted: {e}") from e
