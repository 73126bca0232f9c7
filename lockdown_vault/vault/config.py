"""
Vault Configuration — Validated settings for key derivation and auto-lock.

Reads settings from environment variables:
    LOCKDOWN_AUTO_LOCK_DELAY = <milliseconds> | never
    LOCKDOWN_KDF = argon2id | enhanced-pbkdf2
    LOCKDOWN_ARGON2_TIME_COST / _MEMORY_COST / _PARALLELISM = <int>
    LOCKDOWN_PBKDF2_ITERATIONS = <int>
    LOCKDOWN_CIPHER_BACKEND = aesgcm | chacha20
    LOCKDOWN_VAULT_PATH = <path to the envelope file> (default ~/.lockdown/vault.json)
    LOCKDOWN_MIN_MASTER_LENGTH = <int>

Security Note:
    Never log key material or passphrases. Only log algorithm tags and costs.
"""
import os
import logging
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("lockdown.vault")

DEFAULT_AUTO_LOCK_DELAY = 5 * 60 * 1000  # 5 minutes, in ms
DEFAULT_VAULT_PATH = "~/.lockdown/vault.json"
NEVER = "never"

_CIPHER_BACKENDS = ("aesgcm", "chacha20")
_PREFERRED_KDFS = ("argon2id", "enhanced-pbkdf2")


def parse_auto_lock_delay(value: Union[int, float, str, None]) -> Optional[int]:
    """Normalize an auto-lock delay to milliseconds.

    Accepts an int, a numeric string, ``"never"`` or None. A delay of
    zero, ``"never"`` and None all disable the auto-lock (returns None).

    Raises:
        ValueError: If the value is negative or not a number.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip().lower()
        if value in (NEVER, ""):
            return None
        value = int(value)
    if isinstance(value, bool):
        raise ValueError("Auto-lock delay must be a number of milliseconds")
    delay = int(value)
    if delay < 0:
        raise ValueError(f"Auto-lock delay cannot be negative: {delay}")
    return delay or None


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    auto_lock_delay: Optional[int] = Field(default=DEFAULT_AUTO_LOCK_DELAY)
    kdf: str = Field(default="argon2id")
    argon2_time_cost: int = Field(default=3, ge=1)
    argon2_memory_cost: int = Field(default=65536, ge=8)  # KiB
    argon2_parallelism: int = Field(default=4, ge=1, le=64)
    pbkdf2_iterations: int = Field(default=600_000, ge=1)
    cipher_backend: str = Field(default="aesgcm")
    min_master_length: int = Field(default=8, ge=1)
    vault_path: Optional[str] = None

    @field_validator("auto_lock_delay", mode="before")
    @classmethod
    def validate_delay(cls, v):
        """Accept milliseconds or 'never'."""
        return parse_auto_lock_delay(v)

    @field_validator("kdf")
    @classmethod
    def validate_kdf(cls, v: str) -> str:
        """Only modern schemes can be preferred for new writes."""
        v = v.lower()
        if v not in _PREFERRED_KDFS:
            raise ValueError(f"Unsupported key derivation: {v}")
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in _CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @model_validator(mode="after")
    def validate_argon2_memory(self) -> "VaultConfig":
        """Argon2 requires at least 8 KiB of memory per lane."""
        if self.argon2_memory_cost < 8 * self.argon2_parallelism:
            raise ValueError(
                f"argon2_memory_cost ({self.argon2_memory_cost} KiB) must be "
                f"at least 8 * parallelism ({8 * self.argon2_parallelism} KiB)"
            )
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables keep their defaults.

        Returns:
            Populated VaultConfig instance.
        """
        mapping = {
            "LOCKDOWN_AUTO_LOCK_DELAY": "auto_lock_delay",
            "LOCKDOWN_KDF": "kdf",
            "LOCKDOWN_ARGON2_TIME_COST": "argon2_time_cost",
            "LOCKDOWN_ARGON2_MEMORY_COST": "argon2_memory_cost",
            "LOCKDOWN_ARGON2_PARALLELISM": "argon2_parallelism",
            "LOCKDOWN_PBKDF2_ITERATIONS": "pbkdf2_iterations",
            "LOCKDOWN_CIPHER_BACKEND": "cipher_backend",
            "LOCKDOWN_MIN_MASTER_LENGTH": "min_master_length",
            "LOCKDOWN_VAULT_PATH": "vault_path",
        }
        values = {
            field: os.environ[name]
            for name, field in mapping.items()
            if name in os.environ
        }
        config = cls(**values)
        logger.debug(
            "Vault config: kdf=%s cipher=%s auto_lock=%s",
            config.kdf, config.cipher_backend, config.auto_lock_delay,
        )
        return config
