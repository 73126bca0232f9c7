"""
Tests for the authenticated cipher module.

Tests cover:
- encrypt/decrypt for both AEAD backends
- Fail-closed decryption (wrong key, tampering, malformed input)
- Nonce and salt generation
"""
import os

import pytest

from lockdown_vault.exceptions import AuthenticationError, EnvelopeFormatError
from lockdown_vault.vault.crypto import (
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    decrypt,
    encrypt,
    generate_nonce,
    generate_salt,
    get_cipher_cls,
)

KEY = bytes(range(32))


@pytest.fixture(params=["aesgcm", "chacha20"])
def cipher(request):
    return request.param


class TestEncryptDecrypt:
    """Tests for the AEAD wrapper."""

    def test_round_trip(self, cipher):
        nonce = generate_nonce()
        ct, tag = encrypt(KEY, nonce, b"top secret", cipher)
        assert len(tag) == TAG_SIZE
        assert ct != b"top secret"
        assert decrypt(KEY, nonce, ct, tag, cipher) == b"top secret"

    def test_wrong_key(self, cipher):
        nonce = generate_nonce()
        ct, tag = encrypt(KEY, nonce, b"top secret", cipher)
        with pytest.raises(AuthenticationError):
            decrypt(os.urandom(32), nonce, ct, tag, cipher)

    def test_tampered_ciphertext(self, cipher):
        nonce = generate_nonce()
        ct, tag = encrypt(KEY, nonce, b"top secret", cipher)
        tampered = bytes([ct[0] ^ 0x01]) + ct[1:]
        with pytest.raises(AuthenticationError):
            decrypt(KEY, nonce, tampered, tag, cipher)

    def test_tampered_tag(self):
        nonce = generate_nonce()
        ct, tag = encrypt(KEY, nonce, b"top secret")
        with pytest.raises(AuthenticationError):
            decrypt(KEY, nonce, ct, tag[:-1] + bytes([tag[-1] ^ 0xFF]))

    def test_wrong_nonce(self):
        ct, tag = encrypt(KEY, generate_nonce(), b"top secret")
        with pytest.raises(AuthenticationError):
            decrypt(KEY, generate_nonce(), ct, tag)

    def test_malformed_inputs_fail_closed(self):
        nonce = generate_nonce()
        ct, tag = encrypt(KEY, nonce, b"top secret")
        with pytest.raises(AuthenticationError):
            decrypt(KEY[:16], nonce, ct, tag)
        with pytest.raises(AuthenticationError):
            decrypt(KEY, nonce[:8], ct, tag)
        with pytest.raises(AuthenticationError):
            decrypt(KEY, nonce, ct, tag[:4])

    def test_encrypt_rejects_bad_sizes(self):
        with pytest.raises(ValueError):
            encrypt(KEY[:16], generate_nonce(), b"x")
        with pytest.raises(ValueError):
            encrypt(KEY, b"short", b"x")

    def test_backends_are_not_interchangeable(self):
        nonce = generate_nonce()
        ct, tag = encrypt(KEY, nonce, b"top secret", "aesgcm")
        with pytest.raises(AuthenticationError):
            decrypt(KEY, nonce, ct, tag, "chacha20")

    def test_unknown_backend(self):
        with pytest.raises(EnvelopeFormatError):
            get_cipher_cls("rot13")


class TestRandomness:
    """Tests for nonce and salt generation."""

    def test_sizes(self):
        assert len(generate_nonce()) == NONCE_SIZE == 12
        assert len(generate_salt()) == SALT_SIZE

    def test_unique(self):
        assert len({generate_nonce() for _ in range(100)}) == 100
        assert len({generate_salt() for _ in range(100)}) == 100
