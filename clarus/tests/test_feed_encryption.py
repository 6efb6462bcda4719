"""
Tests for private feed credential encryption.
"""

import base64
import os

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from clarus.config import config
from clarus.feed_encryption import (
    FeedEncryptionError,
    decrypt_feed_credential,
    encrypt_feed_credential,
)

KEY = "0f" * 32
OTHER_KEY = "a1" * 32


class TestFeedEncryption:
    """Tests for AES-GCM credential storage."""

    def test_round_trip(self):
        encrypted = encrypt_feed_credential("Basic dXNlcjpwYXNz", KEY)
        assert decrypt_feed_credential(encrypted, KEY) == "Basic dXNlcjpwYXNz"

    def test_stored_format(self):
        """Stored value is iv:tag:ciphertext in base64."""
        encrypted = encrypt_feed_credential("Bearer token", KEY)
        iv, tag, ciphertext = (base64.b64decode(part) for part in encrypted.split(":"))
        assert len(iv) == 12
        assert len(tag) == 16
        assert len(ciphertext) == len("Bearer token")
        assert "Bearer" not in encrypted

    def test_random_iv(self):
        assert encrypt_feed_credential("same", KEY) != encrypt_feed_credential("same", KEY)

    def test_wrong_key_rejected(self):
        encrypted = encrypt_feed_credential("secret", KEY)
        with pytest.raises(FeedEncryptionError):
            decrypt_feed_credential(encrypted, OTHER_KEY)

    def test_tampered_ciphertext_rejected(self):
        iv, tag, ciphertext = encrypt_feed_credential("secret", KEY).split(":")
        flipped = bytearray(base64.b64decode(ciphertext))
        flipped[0] ^= 0x01
        tampered = ":".join([iv, tag, base64.b64encode(bytes(flipped)).decode("ascii")])
        with pytest.raises(FeedEncryptionError):
            decrypt_feed_credential(tampered, KEY)

    def test_invalid_format(self):
        with pytest.raises(FeedEncryptionError, match="format"):
            decrypt_feed_credential("not-encrypted", KEY)

    def test_invalid_base64(self):
        with pytest.raises(FeedEncryptionError, match="base64"):
            decrypt_feed_credential("!!:??:##", KEY)

    def test_short_iv_rejected(self):
        _, tag, ciphertext = encrypt_feed_credential("secret", KEY).split(":")
        short_iv = base64.b64encode(b"\x00" * 4).decode("ascii")
        with pytest.raises(FeedEncryptionError, match="could not be decrypted"):
            decrypt_feed_credential(":".join([short_iv, tag, ciphertext]), KEY)

    def test_non_utf8_plaintext_rejected(self):
        iv = os.urandom(12)
        sealed = AESGCM(bytes.fromhex(KEY)).encrypt(iv, b"\xff\xfe\xfd", None)
        stored = ":".join(base64.b64encode(part).decode("ascii") for part in (iv, sealed[-16:], sealed[:-16]))
        with pytest.raises(FeedEncryptionError):
            decrypt_feed_credential(stored, KEY)

    def test_bad_key_length(self):
        with pytest.raises(FeedEncryptionError, match="64-character"):
            encrypt_feed_credential("x", "abcd")

    def test_non_hex_key(self):
        with pytest.raises(FeedEncryptionError, match="hex"):
            encrypt_feed_credential("x", "zz" * 32)

    def test_key_from_config(self, monkeypatch):
        monkeypatch.setattr(config, "FEED_ENCRYPTION_KEY", KEY)
        assert decrypt_feed_credential(encrypt_feed_credential("from config")) == "from config"

    def test_missing_key(self, monkeypatch):
        monkeypatch.setattr(config, "FEED_ENCRYPTION_KEY", "")
        with pytest.raises(FeedEncryptionError, match="not set"):
            encrypt_feed_credential("x")
