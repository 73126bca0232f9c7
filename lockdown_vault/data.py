"""Credential and Vault models.

A ``Vault`` is the decrypted payload held by an unlocked session. It only
exists in memory; on disk it is always an encrypted envelope.
"""
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

VAULT_FORMAT_VERSION = "1.1"


def now_ms(clock: Callable[[], float] = time.time) -> int:
    """Current time in epoch milliseconds."""
    return int(clock() * 1000)


class Credential(BaseModel):
    """One saved login.

    Extra fields are kept as-is so vaults written by older clients
    round-trip without losing data.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    domain: str = ""
    username: str = ""
    email: str = ""
    password: str = ""
    url: str = ""
    notes: str = ""
    created: int = 0
    modified: Optional[int] = None

    @field_validator(
        "name", "domain", "username", "email", "password", "url", "notes",
        mode="before",
    )
    @classmethod
    def null_as_empty(cls, v):
        """Older clients stored missing text fields as null."""
        return "" if v is None else v

    @field_validator("created", mode="before")
    @classmethod
    def null_created(cls, v):
        return 0 if v is None else v

    @property
    def recency(self) -> int:
        return self.modified or self.created

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class Vault(BaseModel):
    """Decrypted vault payload."""

    model_config = ConfigDict(extra="allow")

    credentials: list[Credential] = Field(default_factory=list)
    created: int = Field(default_factory=now_ms)
    version: str = VAULT_FORMAT_VERSION
    security: Optional[str] = None

    @field_validator("credentials", mode="before")
    @classmethod
    def null_credentials(cls, v):
        return [] if v is None else v

    @field_validator("created", mode="before")
    @classmethod
    def null_created(cls, v):
        return 0 if v is None else v

    @field_validator("version", mode="before")
    @classmethod
    def null_version(cls, v):
        return VAULT_FORMAT_VERSION if v is None else v

    def __repr__(self) -> str:
        # never include secrets
        return (
            f'<Vault [version:{self.version}, security:{self.security}] '
            f'credentials={len(self.credentials)}>'
        )

    def __len__(self) -> int:
        return len(self.credentials)

    def get(self, credential_id: str) -> Optional[Credential]:
        for cred in self.credentials:
            if cred.id == credential_id:
                return cred
        return None

    def ids(self) -> set[str]:
        return {cred.id for cred in self.credentials}

    def to_dict(self) -> dict[str, Any]:
        """Return the payload that gets encrypted."""
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Vault":
        return cls.model_validate(data)
