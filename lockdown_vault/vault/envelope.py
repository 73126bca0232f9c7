"""
Vault Envelope — Persisted form of an encrypted vault.

Record layout (JSON, byte arrays as lists of ints)::

    {
        "encrypted": [...],    # AEAD ciphertext with the 16-byte tag appended
        "salt": [...],         # random per write
        "iv": [...],           # random per encryption
        "version": "1.1",
        "kdf": "argon2id" | "enhanced-pbkdf2",   # absent: legacy PBKDF2
        "kdfParams": {...},
        "cipher": "chacha20"   # absent: AES-256-GCM
    }

Records without ``kdf`` were written by the historical extension with
PBKDF2-SHA256 at 100 000 iterations and stay readable. New writes always
use the preferred scheme, so old vaults upgrade on their next save.

Security Note:
    Decryption uses exactly the recorded algorithm, never a fallback.
    Never log passphrases, keys or payloads.
"""
import base64
import binascii
import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from ..data import VAULT_FORMAT_VERSION, Vault
from ..exceptions import (
    AuthenticationError,
    DerivationError,
    EnvelopeFormatError,
    InvalidPassphrase,
)
from .config import VaultConfig
from .crypto import (
    DEFAULT_CIPHER,
    NONCE_SIZE,
    TAG_SIZE,
    decrypt,
    deserialize_value,
    encrypt,
    generate_nonce,
    generate_salt,
    get_cipher_cls,
    serialize_value,
)
from .kdf import (
    KdfAlgorithm,
    KdfParams,
    derive_key,
    fallback_kdf,
    params_from_dict,
    params_to_dict,
    preferred_kdf,
)

logger = logging.getLogger("lockdown.vault")


class Envelope(BaseModel):
    """Parsed envelope: everything needed to rederive the key and decrypt."""

    model_config = {"frozen": True}

    ciphertext: bytes
    salt: bytes
    nonce: bytes
    kdf: KdfAlgorithm
    kdf_params: KdfParams
    format_version: str = VAULT_FORMAT_VERSION
    cipher: str = DEFAULT_CIPHER

    def __repr__(self) -> str:
        return (
            f'<Envelope [kdf:{self.kdf.value}, cipher:{self.cipher}, '
            f'version:{self.format_version}] {len(self.ciphertext)} bytes>'
        )

    @property
    def is_legacy(self) -> bool:
        return self.kdf is KdfAlgorithm.LEGACY_PBKDF2

    def to_record(self) -> dict[str, Any]:
        record = {
            "encrypted": list(self.ciphertext),
            "salt": list(self.salt),
            "iv": list(self.nonce),
            "version": self.format_version,
        }
        if not self.is_legacy:
            record["kdf"] = self.kdf.value
            record["kdfParams"] = params_to_dict(self.kdf_params)
        if self.cipher != DEFAULT_CIPHER:
            record["cipher"] = self.cipher
        return record

    def dumps(self) -> bytes:
        return orjson.dumps(self.to_record())


def _bytes_field(record: Mapping, *names: str) -> bytes:
    for name in names:
        if name in record:
            value = record[name]
            break
    else:
        raise EnvelopeFormatError(f"Envelope is missing '{names[0]}'")
    try:
        if isinstance(value, str):
            return base64.b64decode(value, validate=True)
        if isinstance(value, Mapping):
            # Uint8Array serialized as {"0": .., "1": ..}
            value = [value[k] for k in sorted(value, key=int)]
        if isinstance(value, (list, tuple)):
            return bytes(value)
    except (binascii.Error, ValueError, TypeError) as err:
        raise EnvelopeFormatError(f"Envelope field '{names[0]}' is malformed") from err
    raise EnvelopeFormatError(f"Envelope field '{names[0]}' is malformed")


def parse(data: Union[bytes, bytearray, str, Mapping]) -> Envelope:
    """Parse a persisted record into an ``Envelope``.

    Accepts raw JSON (bytes or str) or an already-decoded mapping.

    Raises:
        EnvelopeFormatError: If the record is not a valid envelope.
    """
    if isinstance(data, (bytes, bytearray, str)):
        try:
            record = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise EnvelopeFormatError() from err
    else:
        record = data
    if not isinstance(record, Mapping):
        raise EnvelopeFormatError()

    ciphertext = _bytes_field(record, "encrypted", "ciphertext")
    salt = _bytes_field(record, "salt")
    nonce = _bytes_field(record, "iv", "nonce")
    if len(nonce) != NONCE_SIZE:
        raise EnvelopeFormatError(f"Envelope nonce must be {NONCE_SIZE} bytes")

    tag = record.get("kdf")
    if tag is None:
        kdf = KdfAlgorithm.LEGACY_PBKDF2
    else:
        try:
            kdf = KdfAlgorithm(tag)
        except ValueError:
            raise EnvelopeFormatError(f"Unknown key derivation: {tag}") from None
    params = params_from_dict(kdf, record.get("kdfParams"))

    cipher = record.get("cipher") or DEFAULT_CIPHER
    get_cipher_cls(cipher)

    return Envelope(
        ciphertext=ciphertext,
        salt=salt,
        nonce=nonce,
        kdf=kdf,
        kdf_params=params,
        format_version=str(record.get("version", VAULT_FORMAT_VERSION)),
        cipher=cipher,
    )


def encrypt_vault(
    vault: Vault,
    key: bytes,
    salt: bytes,
    nonce: bytes,
    kdf: KdfAlgorithm,
    kdf_params: KdfParams,
    cipher: str = DEFAULT_CIPHER,
) -> Envelope:
    """Encrypt a vault payload into an ``Envelope``."""
    ct, tag = encrypt(key, nonce, serialize_value(vault.to_dict()), cipher)
    return Envelope(
        ciphertext=ct + tag,
        salt=salt,
        nonce=nonce,
        kdf=kdf,
        kdf_params=kdf_params,
        format_version=vault.version or VAULT_FORMAT_VERSION,
        cipher=cipher,
    )


def serialize(
    vault: Vault,
    key: bytes,
    salt: bytes,
    nonce: bytes,
    kdf: KdfAlgorithm,
    kdf_params: KdfParams,
    cipher: str = DEFAULT_CIPHER,
) -> bytes:
    """Encrypt a vault and return the persisted record bytes."""
    return encrypt_vault(vault, key, salt, nonce, kdf, kdf_params, cipher).dumps()


def upgrade_if_needed(
    envelope: Envelope,
    preferred: Optional[tuple[KdfAlgorithm, KdfParams]] = None,
) -> bool:
    """Return True if the envelope is not on the preferred scheme.

    Only reports; the session re-encrypts with the preferred scheme on
    its next write.
    """
    if envelope.is_legacy:
        return True
    if preferred is None:
        preferred = preferred_kdf(VaultConfig())
    algorithm, params = preferred
    return envelope.kdf is not algorithm or envelope.kdf_params != params


def seal(
    vault: Vault,
    passphrase: Union[str, bytes, bytearray],
    config: VaultConfig,
) -> tuple[bytes, Envelope]:
    """Encrypt a vault with a fresh salt and nonce under the preferred KDF.

    Falls back to enhanced PBKDF2 if Argon2id derivation fails. Stamps
    ``vault.security`` with the scheme actually used.

    Returns:
        Tuple of (record bytes, envelope).

    Raises:
        DerivationError: If the fallback derivation fails too.
    """
    algorithm, params = preferred_kdf(config)
    salt = generate_salt()
    try:
        key = derive_key(passphrase, salt, algorithm, params)
    except DerivationError:
        if algorithm is not KdfAlgorithm.ARGON2ID:
            raise
        logger.warning("Argon2id derivation failed, falling back to PBKDF2")
        algorithm, params = fallback_kdf(config)
        key = derive_key(passphrase, salt, algorithm, params)
    vault.security = algorithm.value
    envelope = encrypt_vault(
        vault, key, salt, generate_nonce(), algorithm, params, config.cipher_backend
    )
    return envelope.dumps(), envelope


def open_envelope(
    envelope: Envelope, passphrase: Union[str, bytes, bytearray]
) -> Vault:
    """Rederive the key with the recorded scheme and decrypt the vault.

    Raises:
        InvalidPassphrase: Wrong passphrase or tampered ciphertext.
        EnvelopeFormatError: The payload decrypted but is not a vault.
        DerivationError: The recorded primitive failed.
    """
    key = derive_key(passphrase, envelope.salt, envelope.kdf, envelope.kdf_params)
    ct = envelope.ciphertext
    try:
        plaintext = decrypt(
            key, envelope.nonce, ct[:-TAG_SIZE], ct[-TAG_SIZE:], envelope.cipher
        )
    except AuthenticationError:
        raise InvalidPassphrase() from None
    try:
        vault = Vault.from_dict(deserialize_value(plaintext))
    except (orjson.JSONDecodeError, ModelValidationError) as err:
        raise EnvelopeFormatError() from err
    vault.security = envelope.kdf.value
    return vault
