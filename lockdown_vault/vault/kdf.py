"""
Vault Key Derivation — Master password + salt → 256-bit symmetric key.

Three schemes are supported, identified by a closed tag:

- ``legacy-pbkdf2``: PBKDF2-HMAC-SHA256, 100 000 iterations. Historical
  extension format; envelopes without a ``kdf`` field use it. Read-only.
- ``enhanced-pbkdf2``: PBKDF2-HMAC with a configurable iteration count.
  Fallback when Argon2 cannot run.
- ``argon2id``: memory-hard Argon2id, preferred for every new write.

Every parameter is recorded in the envelope, so ``derive_key`` is a pure
function of (passphrase, salt, algorithm, params).

Security Note:
    Never log passphrases or derived keys.
"""
import enum
import logging
from functools import lru_cache
from typing import Literal, Union

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, Field
from pydantic import ValidationError as ModelValidationError

from ..exceptions import DerivationError, EnvelopeFormatError
from .config import VaultConfig

logger = logging.getLogger("lockdown.vault")

KEY_LENGTH = 32  # AES-256


class KdfAlgorithm(str, enum.Enum):
    LEGACY_PBKDF2 = "legacy-pbkdf2"
    ENHANCED_PBKDF2 = "enhanced-pbkdf2"
    ARGON2ID = "argon2id"


class Pbkdf2Params(BaseModel):
    """PBKDF2-HMAC parameters."""

    model_config = {"frozen": True}

    iterations: int = Field(ge=1)
    hash: Literal["sha256", "sha512"] = "sha256"
    length: int = Field(default=KEY_LENGTH, ge=KEY_LENGTH, le=KEY_LENGTH)


class Argon2Params(BaseModel):
    """Argon2id parameters (memory cost in KiB)."""

    model_config = {"frozen": True}

    time_cost: int = Field(ge=1)
    memory_cost: int = Field(ge=8)
    parallelism: int = Field(ge=1)
    length: int = Field(default=KEY_LENGTH, ge=KEY_LENGTH, le=KEY_LENGTH)


KdfParams = Union[Pbkdf2Params, Argon2Params]

LEGACY_PARAMS = Pbkdf2Params(iterations=100_000, hash="sha256")

_HASHES = {
    "sha256": hashes.SHA256,
    "sha512": hashes.SHA512,
}

_PARAM_TYPES = {
    KdfAlgorithm.LEGACY_PBKDF2: Pbkdf2Params,
    KdfAlgorithm.ENHANCED_PBKDF2: Pbkdf2Params,
    KdfAlgorithm.ARGON2ID: Argon2Params,
}


def _check_params(algorithm: KdfAlgorithm, params: KdfParams) -> None:
    expected = _PARAM_TYPES[algorithm]
    if not isinstance(params, expected):
        raise DerivationError(
            f"{algorithm.value} requires {expected.__name__}, "
            f"got {type(params).__name__}"
        )


def _pbkdf2(passphrase: bytes, salt: bytes, params: Pbkdf2Params) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=_HASHES[params.hash](),
        length=params.length,
        salt=salt,
        iterations=params.iterations,
    )
    return kdf.derive(passphrase)


def _argon2id(passphrase: bytes, salt: bytes, params: Argon2Params) -> bytes:
    return hash_secret_raw(
        secret=passphrase,
        salt=salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=params.length,
        type=Type.ID,
    )


def derive_key(
    passphrase: Union[str, bytes, bytearray],
    salt: bytes,
    algorithm: KdfAlgorithm,
    params: KdfParams,
) -> bytes:
    """Derive a 32-byte key from a master passphrase.

    Args:
        passphrase: Master password (str is UTF-8 encoded).
        salt: Random salt stored alongside the envelope.
        algorithm: Derivation scheme tag.
        params: Parameter struct matching ``algorithm``.

    Returns:
        32-byte derived key.

    Raises:
        DerivationError: If the primitive fails, the parameters do not
            match the algorithm, the output is not a full-length key or
            the passphrase is not text or bytes.
    """
    algorithm = KdfAlgorithm(algorithm)
    _check_params(algorithm, params)
    if isinstance(passphrase, str):
        secret = passphrase.encode("utf-8")
    elif isinstance(passphrase, (bytes, bytearray)):
        secret = bytes(passphrase)
    else:
        raise DerivationError(
            f"Passphrase must be str or bytes, got {type(passphrase).__name__}"
        )
    try:
        if algorithm is KdfAlgorithm.ARGON2ID:
            key = _argon2id(secret, salt, params)
        elif algorithm in (KdfAlgorithm.LEGACY_PBKDF2, KdfAlgorithm.ENHANCED_PBKDF2):
            key = _pbkdf2(secret, salt, params)
        else:  # pragma: no cover
            raise DerivationError(f"Unhandled key derivation: {algorithm}")
    except DerivationError:
        raise
    except (HashingError, MemoryError, ValueError, TypeError, OverflowError) as err:
        logger.error("Key derivation failed (%s): %s", algorithm.value, type(err).__name__)
        raise DerivationError(f"{algorithm.value} derivation failed") from err
    if len(key) != KEY_LENGTH:
        raise DerivationError(
            f"{algorithm.value} produced a {len(key)}-byte key"
        )
    return key


@lru_cache(maxsize=1)
def memory_hard_available() -> bool:
    """Return True if Argon2id can run in this process.

    Runs once with minimal costs; the result is cached.
    """
    try:
        _argon2id(
            b"selftest", b"lockdown-check!!",
            Argon2Params(time_cost=1, memory_cost=8, parallelism=1),
        )
    except (HashingError, MemoryError, OSError) as err:
        logger.warning("Argon2id unavailable, using PBKDF2 fallback: %s", err)
        return False
    return True


def argon2_params(config: VaultConfig) -> Argon2Params:
    return Argon2Params(
        time_cost=config.argon2_time_cost,
        memory_cost=config.argon2_memory_cost,
        parallelism=config.argon2_parallelism,
    )


def pbkdf2_params(config: VaultConfig) -> Pbkdf2Params:
    return Pbkdf2Params(iterations=config.pbkdf2_iterations, hash="sha256")


def preferred_kdf(config: VaultConfig) -> tuple[KdfAlgorithm, KdfParams]:
    """Return the (algorithm, params) used for new writes."""
    if config.kdf == KdfAlgorithm.ARGON2ID.value and memory_hard_available():
        return KdfAlgorithm.ARGON2ID, argon2_params(config)
    return KdfAlgorithm.ENHANCED_PBKDF2, pbkdf2_params(config)


def fallback_kdf(config: VaultConfig) -> tuple[KdfAlgorithm, KdfParams]:
    """Return the iterated-hash scheme used when Argon2id fails."""
    return KdfAlgorithm.ENHANCED_PBKDF2, pbkdf2_params(config)


# ---------------------------------------------------------------------------
# Envelope helpers
# ---------------------------------------------------------------------------

def params_from_dict(algorithm: KdfAlgorithm, raw: dict) -> KdfParams:
    """Build the parameter struct recorded in an envelope.

    Raises:
        EnvelopeFormatError: If the parameters are missing or invalid.
    """
    if algorithm is KdfAlgorithm.LEGACY_PBKDF2:
        return LEGACY_PARAMS
    if not isinstance(raw, dict):
        raise EnvelopeFormatError(f"Missing parameters for {algorithm.value}")
    if algorithm is KdfAlgorithm.ARGON2ID:
        data = {
            "time_cost": raw.get("timeCost", raw.get("time_cost")),
            "memory_cost": raw.get("memoryCost", raw.get("memory_cost")),
            "parallelism": raw.get("parallelism"),
            "length": raw.get("hashLength", raw.get("length", KEY_LENGTH)),
        }
    else:
        data = {
            "iterations": raw.get("iterations"),
            "hash": str(raw.get("hash", "sha256")).lower().replace("-", ""),
            "length": raw.get("keyLength", raw.get("length", KEY_LENGTH)),
        }
    try:
        return _PARAM_TYPES[algorithm](**data)
    except ModelValidationError as err:
        raise EnvelopeFormatError(
            f"Invalid {algorithm.value} parameters"
        ) from err


def params_to_dict(params: KdfParams) -> dict:
    if isinstance(params, Argon2Params):
        return {
            "timeCost": params.time_cost,
            "memoryCost": params.memory_cost,
            "parallelism": params.parallelism,
            "hashLength": params.length,
        }
    return {
        "iterations": params.iterations,
        "hash": params.hash,
        "keyLength": params.length,
    }
