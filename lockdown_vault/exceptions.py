"""
Vault Exceptions — Error taxonomy shared by the session, store and handlers.

Every error carries a short, user-facing ``message``. Messages for
authentication and locked-state failures never reveal which part of a
check failed.
"""
from typing import Optional


class VaultError(Exception):
    """Base class for all vault errors."""

    message: str = "Vault error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AlreadyInitialized(VaultError):
    message = "Vault already exists"


class NoVaultFound(VaultError):
    message = "No vault found"


class InvalidPassphrase(VaultError):
    """Wrong master password or failed tag verification (never distinguished)."""

    message = "Invalid password"


class VaultLocked(VaultError):
    message = "Vault is locked"


class NotFound(VaultError):
    message = "Credential not found"


class DerivationError(VaultError):
    """The key derivation primitive failed or is unavailable."""

    message = "Key derivation failed"


class AuthenticationError(VaultError):
    """AEAD tag mismatch or malformed cipher input."""

    message = "Authentication failed"


class PersistenceError(VaultError):
    message = "Failed to persist vault"


class EnvelopeFormatError(PersistenceError):
    """The persisted record cannot be parsed as a vault envelope."""

    message = "Vault data is corrupted"


class ValidationError(VaultError):
    message = "Invalid input"
