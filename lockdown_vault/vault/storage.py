"""
Vault Storage — Persistence backends for the single envelope record.

The session only sees ``EnvelopeStorage``: an async API over one opaque
byte record. ``FileStorage`` writes atomically (temp file + rename) so a
crash mid-write leaves the previous envelope intact.

Security Note:
    Storage only ever receives ciphertext envelopes. Never log record contents.
"""
import os
import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from ..exceptions import PersistenceError
from .config import DEFAULT_VAULT_PATH, VaultConfig

logger = logging.getLogger("lockdown.vault")


class EnvelopeStorage(ABC):
    """Async storage for one persisted envelope."""

    @abstractmethod
    async def exists(self) -> bool:
        """Return True if an envelope has been saved."""

    @abstractmethod
    async def load(self) -> Optional[bytes]:
        """Return the saved envelope, or None if there is none."""

    @abstractmethod
    async def save(self, data: bytes) -> None:
        """Replace the saved envelope.

        Raises:
            PersistenceError: If the write fails.
        """

    @abstractmethod
    async def clear(self) -> None:
        """Remove the saved envelope."""


class MemoryStorage(EnvelopeStorage):
    """In-process storage; used by tests and embedded callers."""

    def __init__(self, data: Optional[bytes] = None):
        self._data = data

    async def exists(self) -> bool:
        return self._data is not None

    async def load(self) -> Optional[bytes]:
        return self._data

    async def save(self, data: bytes) -> None:
        self._data = bytes(data)

    async def clear(self) -> None:
        self._data = None


class FileStorage(EnvelopeStorage):
    """Envelope stored in a single file, readable only by the owner."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def __repr__(self) -> str:
        return f'<FileStorage path={str(self.path)!r}>'

    @classmethod
    def from_config(cls, config: VaultConfig) -> "FileStorage":
        """File storage at ``config.vault_path``, or the default location."""
        return cls(config.vault_path or DEFAULT_VAULT_PATH)

    def _exists(self) -> bool:
        # 0-byte files are leftovers, not vaults
        return self.path.is_file() and self.path.stat().st_size > 0

    def _read(self) -> Optional[bytes]:
        if not self._exists():
            return None
        return self.path.read_bytes()

    def _write(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "wb") as fp:
                fp.write(data)
                fp.flush()
                os.fsync(fp.fileno())
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def exists(self) -> bool:
        try:
            return await asyncio.to_thread(self._exists)
        except OSError as err:
            raise PersistenceError(f"Cannot access vault file: {err.strerror}") from err

    async def load(self) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(self._read)
        except OSError as err:
            logger.error("Vault read failed: %s", err)
            raise PersistenceError(f"Cannot read vault file: {err.strerror}") from err

    async def save(self, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._write, data)
        except OSError as err:
            logger.error("Vault write failed: %s", err)
            raise PersistenceError(f"Cannot write vault file: {err.strerror}") from err
        logger.debug("Vault envelope written: %s (%d bytes)", self.path, len(data))

    async def clear(self) -> None:
        try:
            await asyncio.to_thread(self.path.unlink, missing_ok=True)
        except OSError as err:
            raise PersistenceError(f"Cannot remove vault file: {err.strerror}") from err
