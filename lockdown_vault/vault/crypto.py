"""
Vault Crypto Core — Authenticated encryption and payload serialization.

Wraps an AEAD cipher (AES-256-GCM by default, ChaCha20-Poly1305 optional)
with a 256-bit key and a 96-bit nonce. The 16-byte tag is returned
separately by ``encrypt`` and appended to the ciphertext in envelopes,
which matches the WebCrypto layout used by the browser extension.

Security Note:
    Never log plaintext or ciphertext values.
    Callers must pass a fresh ``generate_nonce()`` on every encryption;
    nonces are never stored per vault and never reused under one key.
"""
import os
import logging
from typing import Any

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import AuthenticationError, EnvelopeFormatError

logger = logging.getLogger("lockdown.vault")

NONCE_SIZE = 12  # 96-bit nonce
SALT_SIZE = 16
KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16

DEFAULT_CIPHER = "aesgcm"

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


def get_cipher_cls(name: str = DEFAULT_CIPHER) -> type:
    """Return the AEAD cipher class for a backend name."""
    try:
        return _CIPHERS[name]
    except KeyError:
        raise EnvelopeFormatError(f"Unsupported cipher backend: {name}") from None


def generate_nonce() -> bytes:
    """Return a fresh random 96-bit nonce."""
    return os.urandom(NONCE_SIZE)


def generate_salt() -> bytes:
    """Return a fresh random salt for key derivation."""
    return os.urandom(SALT_SIZE)


def encrypt(
    key: bytes, nonce: bytes, plaintext: bytes, cipher: str = DEFAULT_CIPHER
) -> tuple[bytes, bytes]:
    """Encrypt plaintext with an AEAD cipher.

    Args:
        key: 32-byte key from the key derivation module.
        nonce: 12-byte nonce, freshly generated for this call.
        plaintext: Data to encrypt.
        cipher: Backend name (``aesgcm`` or ``chacha20``).

    Returns:
        Tuple of (ciphertext, tag).

    Raises:
        ValueError: If key or nonce has the wrong size.
    """
    if len(key) != KEY_LENGTH:
        raise ValueError(f"key must be {KEY_LENGTH} bytes, got {len(key)}")
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")
    sealed = get_cipher_cls(cipher)(key).encrypt(nonce, plaintext, None)
    return sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]


def decrypt(
    key: bytes,
    nonce: bytes,
    ciphertext: bytes,
    tag: bytes,
    cipher: str = DEFAULT_CIPHER,
) -> bytes:
    """Decrypt and verify AEAD ciphertext.

    Fails closed: no partial plaintext is ever returned.

    Raises:
        AuthenticationError: On tag mismatch or malformed input.
    """
    if len(key) != KEY_LENGTH or len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
        raise AuthenticationError()
    try:
        return get_cipher_cls(cipher)(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag:
        raise AuthenticationError() from None


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a vault payload to bytes for encryption.

    Args:
        value: JSON-compatible Python value.

    Returns:
        orjson-encoded bytes.
    """
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes produced by ``serialize_value``."""
    return orjson.loads(data)
