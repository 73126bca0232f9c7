"""Vault core — key derivation, envelope encryption and the unlocked session.

Security Note (Threat Model):
    Credentials are decrypted in process memory while the session is
    unlocked. A memory dump of the process during that window could
    expose them. Locking drops the vault and zeroes the held passphrase
    bytes, but Python cannot guarantee that no copies remain.
    This is an accepted limitation.
"""

from .session_vault import VaultSession, VaultState
from .key_rotation import rotate_master_key, migrate_envelope
from .config import VaultConfig
from .kdf import KdfAlgorithm, Argon2Params, Pbkdf2Params, derive_key
from .envelope import Envelope, parse, serialize, upgrade_if_needed
from .storage import EnvelopeStorage, FileStorage, MemoryStorage

__all__ = [
    "VaultSession",
    "VaultState",
    "rotate_master_key",
    "migrate_envelope",
    "VaultConfig",
    "KdfAlgorithm",
    "Argon2Params",
    "Pbkdf2Params",
    "derive_key",
    "Envelope",
    "parse",
    "serialize",
    "upgrade_if_needed",
    "EnvelopeStorage",
    "FileStorage",
    "MemoryStorage",
]
