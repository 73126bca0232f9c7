"""
Tests for key rotation and envelope migration.

Tests cover:
- rotate_master_key with correct and wrong passphrases
- migrate_envelope of legacy and current envelopes
- Empty storage
"""
import orjson
import pytest

from lockdown_vault.data import Credential, Vault
from lockdown_vault.exceptions import InvalidPassphrase, NoVaultFound
from lockdown_vault.vault.envelope import open_envelope, parse, seal
from lockdown_vault.vault.key_rotation import migrate_envelope, rotate_master_key
from lockdown_vault.vault.storage import MemoryStorage


@pytest.fixture
def sealed_storage(config):
    vault = Vault(credentials=[Credential(id="c1", name="Gmail", password="x")])
    data, _ = seal(vault, "Secret123!", config)
    return MemoryStorage(data)


class TestRotateMasterKey:
    """Tests for rotate_master_key."""

    @pytest.mark.asyncio
    async def test_rotate(self, sealed_storage, config):
        before = parse(await sealed_storage.load())
        stats = await rotate_master_key(sealed_storage, "Secret123!", "Rotated789!", config)
        assert stats == {"from": "argon2id", "to": "argon2id", "credentials": 1}

        after = parse(await sealed_storage.load())
        assert after.salt != before.salt
        with pytest.raises(InvalidPassphrase):
            open_envelope(after, "Secret123!")
        assert open_envelope(after, "Rotated789!").get("c1").name == "Gmail"

    @pytest.mark.asyncio
    async def test_wrong_passphrase_leaves_storage(self, sealed_storage, config):
        before = await sealed_storage.load()
        with pytest.raises(InvalidPassphrase):
            await rotate_master_key(sealed_storage, "wrong", "Rotated789!", config)
        assert await sealed_storage.load() == before

    @pytest.mark.asyncio
    async def test_empty_storage(self, config):
        with pytest.raises(NoVaultFound):
            await rotate_master_key(MemoryStorage(), "a", "b", config)


class TestMigrateEnvelope:
    """Tests for migrate_envelope."""

    @pytest.mark.asyncio
    async def test_migrates_legacy(self, config, extension_record):
        record = extension_record(
            {"credentials": [{"id": "c1", "password": "x"}], "created": 1}, "Secret123!"
        )
        storage = MemoryStorage(orjson.dumps(record))
        stats = await migrate_envelope(storage, "Secret123!", config)
        assert stats == {"from": "legacy-pbkdf2", "to": "argon2id", "upgraded": True}
        envelope = parse(await storage.load())
        assert envelope.kdf.value == "argon2id"
        assert open_envelope(envelope, "Secret123!").get("c1") is not None

    @pytest.mark.asyncio
    async def test_skips_current(self, sealed_storage, config):
        before = await sealed_storage.load()
        stats = await migrate_envelope(sealed_storage, "Secret123!", config)
        assert stats == {"from": "argon2id", "to": "argon2id", "upgraded": False}
        assert await sealed_storage.load() == before

    @pytest.mark.asyncio
    async def test_migrates_to_stronger_costs(self, sealed_storage, config):
        stronger = config.model_copy(update={"argon2_time_cost": 2})
        stats = await migrate_envelope(sealed_storage, "Secret123!", stronger)
        assert stats["upgraded"] is True
        assert parse(await sealed_storage.load()).kdf_params.time_cost == 2

    @pytest.mark.asyncio
    async def test_wrong_passphrase(self, config, extension_record):
        record = extension_record({"credentials": [], "created": 1}, "Secret123!")
        storage = MemoryStorage(orjson.dumps(record))
        with pytest.raises(InvalidPassphrase):
            await migrate_envelope(storage, "wrong", config)
        assert parse(await storage.load()).is_legacy

    @pytest.mark.asyncio
    async def test_empty_storage(self, config):
        with pytest.raises(NoVaultFound):
            await migrate_envelope(MemoryStorage(), "a", config)
