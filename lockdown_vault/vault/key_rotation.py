"""
Vault Key Rotation — Re-encryption of the envelope under a new key.

Two cases:

- Changing the master passphrase (``rotate_master_key``).
- Forcing a legacy or outdated envelope onto the preferred key derivation
  without waiting for the next save (``migrate_envelope``).

Both work directly on storage, so they can run while no session is
unlocked. The operation is idempotent: an envelope already on the
preferred scheme is skipped by ``migrate_envelope``.

Security Note:
    Plaintext exists in memory only during re-encryption.
    Never log passphrases, plaintext or ciphertext values.
"""
import asyncio
import logging
from typing import Optional, Union

from ..data import Vault
from ..exceptions import NoVaultFound
from .config import VaultConfig
from .envelope import Envelope, open_envelope, parse, seal, upgrade_if_needed
from .kdf import preferred_kdf
from .storage import EnvelopeStorage

logger = logging.getLogger("lockdown.vault")

Secret = Union[str, bytes, bytearray]


def rekey(
    data: bytes, old_passphrase: Secret, new_passphrase: Secret, config: VaultConfig
) -> tuple[bytes, Envelope, Vault]:
    """Decrypt a stored record and re-seal it under ``new_passphrase``.

    Fresh salt and nonce; the preferred key derivation is always used.

    Returns:
        Tuple of (new record bytes, new envelope, decrypted vault).

    Raises:
        InvalidPassphrase: If ``old_passphrase`` does not open the record.
        EnvelopeFormatError: If the record is corrupted.
    """
    envelope = parse(data)
    vault = open_envelope(envelope, old_passphrase)
    new_data, new_envelope = seal(vault, new_passphrase, config)
    return new_data, new_envelope, vault


async def rotate_master_key(
    storage: EnvelopeStorage,
    old_passphrase: str,
    new_passphrase: str,
    config: Optional[VaultConfig] = None,
) -> dict:
    """Re-encrypt the stored vault under a new master passphrase.

    Returns:
        Stats dict with keys: from, to, credentials.

    Raises:
        NoVaultFound: If storage holds no envelope.
        InvalidPassphrase: If ``old_passphrase`` is wrong.
        PersistenceError: If the new envelope cannot be written.
    """
    config = config or VaultConfig()
    data = await storage.load()
    if data is None:
        raise NoVaultFound()
    previous = parse(data).kdf.value
    new_data, envelope, vault = await asyncio.to_thread(
        rekey, data, old_passphrase, new_passphrase, config
    )
    await storage.save(new_data)
    stats = {"from": previous, "to": envelope.kdf.value, "credentials": len(vault)}
    logger.info("Master key rotated: %s", stats)
    return stats


async def migrate_envelope(
    storage: EnvelopeStorage,
    passphrase: str,
    config: Optional[VaultConfig] = None,
) -> dict:
    """Upgrade the stored envelope to the preferred key derivation now.

    Returns:
        Stats dict with keys: from, to, upgraded.

    Raises:
        NoVaultFound: If storage holds no envelope.
        InvalidPassphrase: If ``passphrase`` is wrong.
    """
    config = config or VaultConfig()
    data = await storage.load()
    if data is None:
        raise NoVaultFound()
    envelope = parse(data)
    if not upgrade_if_needed(envelope, preferred_kdf(config)):
        logger.debug("Envelope already on %s, skipping", envelope.kdf.value)
        return {"from": envelope.kdf.value, "to": envelope.kdf.value, "upgraded": False}
    new_data, new_envelope, _ = await asyncio.to_thread(
        rekey, data, passphrase, passphrase, config
    )
    await storage.save(new_data)
    stats = {
        "from": envelope.kdf.value,
        "to": new_envelope.kdf.value,
        "upgraded": True,
    }
    logger.info("Envelope migrated: %s", stats)
    return stats
