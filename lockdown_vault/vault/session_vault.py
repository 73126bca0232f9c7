"""
VaultSession — Lifecycle of the decrypted vault (locked / unlocked / auto-lock).

Provides the public API used by the message handlers:

- ``setup(passphrase)`` — create the first envelope and unlock
- ``unlock(passphrase)`` / ``lock()`` — state transitions
- ``save_credential`` / ``update_credential`` / ``delete_credential`` —
  mutations, each re-encrypted and persisted before returning
- ``get_credentials(domain)`` / ``search(query)`` / ``get_all()`` — reads,
  empty while locked
- ``update_auto_lock(delay)`` / ``remaining_time()`` — auto-lock countdown
- ``status()`` — snapshot for the UI

Every state-changing operation runs under a single ``asyncio.Lock`` so
operations never interleave. Key derivation and storage I/O run in worker
threads and are awaited while the lock is held.

Security Note:
    The master passphrase is kept as a ``bytearray`` only while unlocked and
    is zeroed on lock. Never log passphrases, keys or credential secrets.
    Decrypted values exist in process memory while unlocked — this is an
    accepted limitation (see threat model in ``__init__.py``).
"""
import enum
import time
import asyncio
import logging
from typing import Any, Callable, Mapping, Optional, Union

from ..data import Credential, Vault, now_ms
from ..exceptions import (
    AlreadyInitialized,
    InvalidPassphrase,
    NoVaultFound,
    ValidationError,
    VaultLocked,
)
from ..store import CredentialStore
from .config import VaultConfig, parse_auto_lock_delay
from .envelope import Envelope, open_envelope, parse, seal, upgrade_if_needed
from .key_rotation import rekey
from .kdf import preferred_kdf
from .storage import EnvelopeStorage, FileStorage

logger = logging.getLogger("lockdown.vault")


class VaultState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


def _wipe(buffer: Optional[bytearray]) -> None:
    if buffer is not None:
        for i in range(len(buffer)):
            buffer[i] = 0


def _passphrase_text(value: Any) -> str:
    """Normalize a passphrase from a request; None becomes empty.

    Raises:
        ValidationError: If the value is not a string.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("Password must be a string")
    return value


class VaultSession:
    """Process-wide owner of the decrypted vault.

    One instance per vault; pass it explicitly to whatever handles
    requests. Without an explicit storage the envelope lives in the
    file named by ``config.vault_path``. Starts ``LOCKED`` (or ``UNINITIALIZED`` when no envelope
    exists) and only becomes ``UNLOCKED`` through a successful decrypt.
    """

    def __init__(
        self,
        storage: Optional[EnvelopeStorage] = None,
        config: Optional[VaultConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or VaultConfig()
        if storage is None:
            storage = FileStorage.from_config(self._config)
        self._storage = storage
        self._clock = clock
        self._lock = asyncio.Lock()
        self._started = False
        self._has_vault = False
        self._vault: Optional[Vault] = None
        self._passphrase: Optional[bytearray] = None
        self._security: Optional[str] = None
        self._needs_upgrade = False
        self._auto_lock_delay: Optional[int] = self._config.auto_lock_delay
        self._unlock_time: Optional[int] = None
        self._auto_lock_task: Optional[asyncio.Task] = None
        # bumped on every transition; a stale timer never locks a newer session
        self._epoch = 0

    def __repr__(self) -> str:
        return (
            f'<VaultSession [state:{self.state.value}, '
            f'security:{self._security}, auto_lock:{self._auto_lock_delay}]>'
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> VaultState:
        if self._vault is not None:
            return VaultState.UNLOCKED
        if self._has_vault:
            return VaultState.LOCKED
        return VaultState.UNINITIALIZED

    @property
    def is_unlocked(self) -> bool:
        return self._vault is not None

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def auto_lock_delay(self) -> Optional[int]:
        return self._auto_lock_delay

    @property
    def unlock_time(self) -> Optional[int]:
        return self._unlock_time

    @property
    def security_level(self) -> Optional[str]:
        return self._security

    @property
    def needs_upgrade(self) -> bool:
        return self._needs_upgrade

    async def start(self) -> None:
        """Load the initial state from storage. Safe to call repeatedly."""
        if self._started:
            return
        self._has_vault = await self._storage.exists()
        self._started = True
        logger.debug("Vault session started: state=%s", self.state.value)

    async def close(self) -> None:
        """Teardown: lock and cancel the auto-lock timer."""
        await self.lock()
        self._started = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _store(self, vault: Optional[Vault] = None) -> CredentialStore:
        return CredentialStore(
            vault if vault is not None else self._vault, clock=self._clock
        )

    async def _load_envelope(self) -> Envelope:
        data = await self._storage.load()
        if data is None:
            self._has_vault = False
            raise NoVaultFound()
        return parse(data)

    async def _persist(self, vault: Vault, passphrase: bytes) -> None:
        """Seal ``vault`` under the preferred scheme and write it.

        Raises:
            DerivationError: If no derivation scheme could run.
            PersistenceError: If the storage write fails.
        """
        previous = self._security
        data, envelope = await asyncio.to_thread(seal, vault, passphrase, self._config)
        await self._storage.save(data)
        self._has_vault = True
        self._security = envelope.kdf.value
        if self._needs_upgrade:
            logger.info(
                "Vault envelope upgraded from %s to %s", previous, self._security
            )
            self._needs_upgrade = False

    async def _mutate(self, operation: Callable[[CredentialStore], Any]) -> Any:
        """Apply ``operation`` to a copy of the vault, persist, then swap in.

        The in-memory vault only changes once the new envelope is durable.
        """
        await self.start()
        async with self._lock:
            if self._vault is None:
                raise VaultLocked()
            candidate = self._vault.model_copy(deep=True)
            result = operation(self._store(candidate))
            await self._persist(candidate, bytes(self._passphrase))
            self._vault = candidate
            return result

    def _enter_unlocked(self, vault: Vault, passphrase: str, security: str) -> None:
        _wipe(self._passphrase)
        self._epoch += 1
        self._vault = vault
        self._passphrase = bytearray(passphrase.encode("utf-8"))
        self._security = security
        self._arm_auto_lock()

    def _enter_locked(self) -> None:
        self._epoch += 1
        self._cancel_auto_lock()
        _wipe(self._passphrase)
        self._passphrase = None
        self._vault = None
        self._unlock_time = None

    # ------------------------------------------------------------------
    # Auto-lock timer
    # ------------------------------------------------------------------

    def _cancel_auto_lock(self) -> None:
        task, self._auto_lock_task = self._auto_lock_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _arm_auto_lock(self) -> None:
        self._cancel_auto_lock()
        self._unlock_time = now_ms(self._clock)
        if not self._auto_lock_delay:
            logger.debug("Auto-lock disabled, not starting timer")
            return
        self._auto_lock_task = asyncio.get_running_loop().create_task(
            self._auto_lock_after(self._auto_lock_delay, self._epoch)
        )
        logger.debug("Auto-lock armed for %d ms", self._auto_lock_delay)

    async def _auto_lock_after(self, delay: int, epoch: int) -> None:
        await asyncio.sleep(delay / 1000)
        async with self._lock:
            if epoch != self._epoch or self._vault is None:
                return
            logger.info("Auto-locking vault after %d ms", delay)
            self._enter_locked()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def setup(self, passphrase: str) -> str:
        """Create a new empty vault protected by ``passphrase`` and unlock it.

        Returns:
            Tag of the key derivation scheme protecting the vault.

        Raises:
            AlreadyInitialized: If an envelope already exists.
            ValidationError: If the passphrase is too short.
            DerivationError: If no derivation scheme could run.
            PersistenceError: If the envelope cannot be written.
        """
        passphrase = _passphrase_text(passphrase)
        await self.start()
        async with self._lock:
            if self._has_vault or await self._storage.exists():
                self._has_vault = True
                raise AlreadyInitialized()
            if not passphrase or len(passphrase) < self._config.min_master_length:
                raise ValidationError(
                    f"Password must be at least {self._config.min_master_length} characters"
                )
            vault = Vault(created=now_ms(self._clock))
            await self._persist(vault, passphrase.encode("utf-8"))
            self._enter_unlocked(vault, passphrase, self._security)
            logger.info("Vault created (security=%s)", self._security)
            return self._security

    async def unlock(self, passphrase: str) -> Vault:
        """Decrypt the stored vault.

        Returns:
            The decrypted vault.

        Raises:
            NoVaultFound: If no envelope exists.
            InvalidPassphrase: Wrong passphrase or tampered envelope.
            EnvelopeFormatError: If the stored record is corrupted.
        """
        passphrase = _passphrase_text(passphrase)
        await self.start()
        async with self._lock:
            envelope = await self._load_envelope()
            self._has_vault = True
            try:
                vault = await asyncio.to_thread(open_envelope, envelope, passphrase)
            except InvalidPassphrase:
                logger.warning("Vault unlock failed: invalid password")
                raise
            self._enter_unlocked(vault, passphrase, envelope.kdf.value)
            self._needs_upgrade = upgrade_if_needed(
                envelope, preferred_kdf(self._config)
            )
            if self._needs_upgrade:
                logger.info(
                    "Vault uses %s; it will be re-encrypted on next save",
                    envelope.kdf.value,
                )
            logger.info("Vault unlocked (%d credentials)", len(vault))
            return vault

    async def lock(self) -> None:
        """Discard the decrypted vault and key material. Idempotent.

        A session with no stored envelope stays ``UNINITIALIZED``: the
        state follows whether an envelope exists, so ``setup`` remains
        available after locking.
        """
        async with self._lock:
            was_unlocked = self._vault is not None
            self._enter_locked()
        if was_unlocked:
            logger.info("Vault locked")

    async def change_passphrase(self, old: str, new: str) -> str:
        """Re-encrypt the vault under a new master passphrase.

        Returns:
            Tag of the key derivation scheme now protecting the vault.

        Raises:
            VaultLocked: If the vault is locked.
            InvalidPassphrase: If ``old`` does not open the stored envelope.
            ValidationError: If ``new`` is too short or a password is not
                a string.
        """
        old, new = _passphrase_text(old), _passphrase_text(new)
        await self.start()
        async with self._lock:
            if self._vault is None:
                raise VaultLocked()
            if not new or len(new) < self._config.min_master_length:
                raise ValidationError(
                    f"Password must be at least {self._config.min_master_length} characters"
                )
            data = await self._storage.load()
            if data is None:
                raise NoVaultFound()
            new_data, envelope, vault = await asyncio.to_thread(
                rekey, data, old, new, self._config
            )
            await self._storage.save(new_data)
            self._needs_upgrade = False
            self._enter_unlocked(vault, new, envelope.kdf.value)
            logger.info("Master password changed (security=%s)", self._security)
            return self._security

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def save_credential(self, data: Union[Mapping[str, Any], Credential]) -> Credential:
        """Create a credential and persist the vault.

        Raises:
            VaultLocked, ValidationError, PersistenceError, DerivationError
        """
        credential = await self._mutate(lambda store: store.create(data))
        logger.info("Credential saved: id=%s", credential.id)
        return credential

    async def update_credential(
        self, credential_id: str, fields: Mapping[str, Any]
    ) -> Credential:
        """Merge fields into a credential and persist the vault.

        Raises:
            VaultLocked, NotFound, ValidationError, PersistenceError
        """
        return await self._mutate(lambda store: store.update(credential_id, fields))

    async def delete_credential(self, credential_id: str) -> None:
        """Remove a credential and persist the vault.

        Raises:
            VaultLocked, NotFound, PersistenceError
        """
        await self._mutate(lambda store: store.delete(credential_id))

    # ------------------------------------------------------------------
    # Reads (empty while locked)
    # ------------------------------------------------------------------

    def get_credentials(self, domain: str) -> list[Credential]:
        if self._vault is None:
            return []
        return self._store().find_by_domain(domain)

    def search(self, query: str) -> list[Credential]:
        if self._vault is None:
            return []
        return self._store().search(query)

    def get_all(self) -> list[Credential]:
        if self._vault is None:
            return []
        return self._store().list_all()

    # ------------------------------------------------------------------
    # Auto-lock configuration
    # ------------------------------------------------------------------

    async def update_auto_lock(self, delay: Union[int, str, None]) -> Optional[int]:
        """Set the auto-lock delay (ms, or ``"never"``) and re-arm the timer.

        Returns:
            The normalized delay in ms, or None for "never".

        Raises:
            ValidationError: If the delay is not a valid duration.
        """
        try:
            normalized = parse_auto_lock_delay(delay)
        except (TypeError, ValueError) as err:
            raise ValidationError("Invalid auto-lock delay") from err
        async with self._lock:
            self._auto_lock_delay = normalized
            if self._vault is not None:
                self._arm_auto_lock()
        logger.info("Auto-lock delay set to %s", normalized or "never")
        return normalized

    def remaining_time(self) -> dict[str, Optional[int]]:
        """Time left before auto-lock.

        Returns ``{"remaining": None}`` when locked or when auto-lock is off.
        """
        if self._vault is None or not self._unlock_time or not self._auto_lock_delay:
            return {"remaining": None}
        elapsed = now_ms(self._clock) - self._unlock_time
        remaining = max(0, self._auto_lock_delay - elapsed)
        total_seconds = remaining // 1000
        return {
            "remaining": remaining,
            "remainingMinutes": total_seconds // 60,
            "remainingSeconds": total_seconds % 60,
            "totalSeconds": total_seconds,
        }

    def status(self) -> dict[str, Any]:
        return {
            "isUnlocked": self.is_unlocked,
            "hasVault": self._has_vault,
            "unlockTime": self._unlock_time,
            "autoLockDelay": self._auto_lock_delay,
            "credentialCount": len(self._vault) if self._vault is not None else 0,
            "securityLevel": self._security,
        }
