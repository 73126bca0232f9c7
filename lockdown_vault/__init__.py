"""Lockdown Vault.

Local credential vault: saved logins encrypted at rest under one master
password, decrypted only while the session is unlocked.
"""
from .version import __version__
from .data import Credential, Vault
from .exceptions import (
    VaultError,
    AlreadyInitialized,
    NoVaultFound,
    InvalidPassphrase,
    VaultLocked,
    NotFound,
    DerivationError,
    AuthenticationError,
    PersistenceError,
    EnvelopeFormatError,
    ValidationError,
)
from .handlers import VaultMessageHandler
from .vault import VaultConfig, VaultSession, VaultState, FileStorage, MemoryStorage

__all__ = [
    "__version__",
    "Credential",
    "Vault",
    "VaultError",
    "AlreadyInitialized",
    "NoVaultFound",
    "InvalidPassphrase",
    "VaultLocked",
    "NotFound",
    "DerivationError",
    "AuthenticationError",
    "PersistenceError",
    "EnvelopeFormatError",
    "ValidationError",
    "VaultMessageHandler",
    "VaultConfig",
    "VaultSession",
    "VaultState",
    "FileStorage",
    "MemoryStorage",
]
