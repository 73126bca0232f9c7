"""
Shared fixtures for the Lockdown Vault test suite.

Key derivation costs are lowered so the suite runs quickly; the legacy
scheme keeps its fixed historical cost because that is what is tested.
"""
import hashlib
import os

import orjson
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from lockdown_vault.vault.config import VaultConfig
from lockdown_vault.vault.session_vault import VaultSession
from lockdown_vault.vault.storage import MemoryStorage
from lockdown_vault.exceptions import PersistenceError


def make_extension_record(payload: dict, password: str) -> dict:
    """Build a record exactly as the historical browser extension stored it:
    PBKDF2-SHA256 at 100k iterations, AES-GCM, byte arrays as int lists and
    no ``kdf`` tag."""
    salt = os.urandom(16)
    iv = os.urandom(12)
    key = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, 100_000, 32)
    encrypted = AESGCM(key).encrypt(iv, orjson.dumps(payload), None)
    return {
        "encrypted": list(encrypted),
        "salt": list(salt),
        "iv": list(iv),
        "version": "1.1",
    }


class FakeClock:
    """Controllable replacement for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStorage(MemoryStorage):
    """MemoryStorage whose writes can be made to fail."""

    def __init__(self, data: bytes = None):
        super().__init__(data)
        self.fail = False
        self.writes = 0

    async def save(self, data: bytes) -> None:
        if self.fail:
            raise PersistenceError("disk full")
        self.writes += 1
        await super().save(data)


@pytest.fixture
def config():
    """Cheap, deterministic vault configuration."""
    return VaultConfig(
        argon2_time_cost=1,
        argon2_memory_cost=64,
        argon2_parallelism=1,
        pbkdf2_iterations=1000,
        auto_lock_delay=5 * 60 * 1000,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return FailingStorage()


@pytest_asyncio.fixture
async def session(storage, config, clock):
    """A fresh, uninitialized session; locked again on teardown."""
    vault_session = VaultSession(storage, config=config, clock=clock)
    yield vault_session
    await vault_session.close()


@pytest.fixture
def extension_record():
    """Factory for legacy extension records."""
    return make_extension_record
