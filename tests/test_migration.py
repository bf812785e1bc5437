"""
Tests for vault migration and backup helpers.
"""
import base64

import pytest

from zk_vault import Vault
from zk_vault.exceptions import KeyUnavailableError
from zk_vault.migration import (
    MigrationStrategy,
    backup_vault_data,
    is_vault_accessible,
    migrate_vault,
    recommend_strategy,
    restore_vault_data,
    validate_key_protection,
)
from zk_vault.protection import KeyWrapProtection, MockKeyProtection
from zk_vault.storage import FileVaultStorage


class HardwareProtection(MockKeyProtection):
    """Mock protection reporting hardware backing."""

    async def is_hardware_backed(self):
        return True


class BrokenProtection(MockKeyProtection):
    """Protection whose unwrap returns a different key."""

    async def unwrap(self, wrapped, require_biometric=False):
        key = await super().unwrap(wrapped, require_biometric)
        return bytes(b ^ 0xFF for b in key)


@pytest.fixture
def kek_protection():
    return KeyWrapProtection(b"\x42" * 32)


async def _seed(config, vault_id, protection, data):
    vault = await Vault.open(vault_id, key_protection=protection, config=config)
    for key, value in data.items():
        await vault.set(key, value)
    await vault.lock()


async def _read(config, vault_id, protection):
    vault = await Vault.open(vault_id, key_protection=protection, config=config)
    try:
        return {key: await vault.get(key) for key in await vault.keys()}
    finally:
        await vault.lock()


@pytest.mark.asyncio
class TestMigrateVault:
    """Tests for migrate_vault."""

    async def test_migrate_in_place(self, config, protection, kek_protection):
        """Test moving a vault from mock to KEK protection under the same id."""
        data = {"a": b"alpha", "b": b"beta", "empty": b""}
        await _seed(config, "v1", protection, data)

        stats = await migrate_vault(
            "v1", protection, kek_protection, config=config,
        )

        assert stats == {"total": 3, "migrated": 3, "errors": 0}
        assert await _read(config, "v1", kek_protection) == data
        assert await is_vault_accessible("v1", protection, config=config) is False

    async def test_migrate_to_new_id(self, config, protection, kek_protection):
        """Test migration into another vault id destroys the source."""
        await _seed(config, "old", protection, {"k": b"v"})

        stats = await migrate_vault(
            "old", protection, kek_protection,
            target_vault_id="new", config=config,
        )

        assert stats["migrated"] == 1
        assert await _read(config, "new", kek_protection) == {"k": b"v"}
        assert await FileVaultStorage("old", config.storage_path).exists() is False

    async def test_migrate_skips_corrupted_records(self, config, protection, kek_protection):
        """Test that unreadable records are counted, not fatal."""
        await _seed(config, "v1", protection, {"good": b"ok", "bad": b"broken"})
        storage = FileVaultStorage("v1", config.storage_path)
        records = await storage.load_records()
        tag = bytearray(base64.b64decode(records["bad"]["tag"]))
        tag[0] ^= 0x01
        records["bad"]["tag"] = base64.b64encode(bytes(tag)).decode()
        await storage.save_records(records)

        stats = await migrate_vault(
            "v1", protection, kek_protection, config=config,
        )

        assert stats == {"total": 2, "migrated": 1, "errors": 1}
        assert await _read(config, "v1", kek_protection) == {"good": b"ok"}

    async def test_migrate_with_storage_factory(self, config, protection, kek_protection):
        """Test that an injected storage factory is used."""
        opened = []

        def factory(vault_id):
            opened.append(vault_id)
            return FileVaultStorage(vault_id, config.storage_path)

        await _seed(config, "v1", protection, {"k": b"v"})
        await migrate_vault(
            "v1", protection, kek_protection,
            target_vault_id="v2", config=config, storage_factory=factory,
        )
        assert opened == ["v1", "v2"]

    async def test_unavailable_biometric_keeps_source(
        self, config, protection, kek_protection,
    ):
        """Test that a target without biometrics aborts before destroying."""
        await _seed(config, "v1", protection, {"k": b"v"})

        with pytest.raises(KeyUnavailableError):
            await migrate_vault(
                "v1", protection, kek_protection,
                target_require_biometric=True, config=config,
            )

        assert await FileVaultStorage("v1", config.storage_path).exists() is True
        assert await _read(config, "v1", protection) == {"k": b"v"}

    async def test_broken_target_keeps_source(self, config, protection):
        """Test that a target failing its self-test aborts the migration."""
        await _seed(config, "v1", protection, {"k": b"v"})

        with pytest.raises(KeyUnavailableError):
            await migrate_vault("v1", protection, BrokenProtection(), config=config)

        assert await _read(config, "v1", protection) == {"k": b"v"}

    async def test_unreadable_records_are_lost(self, config, protection, kek_protection):
        """Test that records skipped while copying do not survive the source."""
        await _seed(config, "old", protection, {"good": b"ok", "bad": b"broken"})
        storage = FileVaultStorage("old", config.storage_path)
        records = await storage.load_records()
        records["bad"]["nonce"] = "not base64!"
        await storage.save_records(records)

        stats = await migrate_vault(
            "old", protection, kek_protection,
            target_vault_id="new", config=config,
        )

        assert stats == {"total": 2, "migrated": 1, "errors": 1}
        assert await _read(config, "new", kek_protection) == {"good": b"ok"}
        assert await storage.exists() is False
        assert await storage.load_records() == {}


@pytest.mark.asyncio
class TestBackupRestore:
    """Tests for backup and restore."""

    async def test_backup(self, config, protection):
        """Test reading a full vault into memory."""
        data = {"a": b"1", "b": b"2"}
        await _seed(config, "v1", protection, data)
        assert await backup_vault_data("v1", protection, config=config) == data

    async def test_restore_replaces_contents(self, config, protection):
        """Test that restore leaves exactly the backup entries."""
        await _seed(config, "v1", protection, {"stale": b"x", "a": b"old"})
        await restore_vault_data(
            "v1", {"a": b"new", "b": b"2"}, protection, config=config,
        )
        assert await _read(config, "v1", protection) == {"a": b"new", "b": b"2"}

    async def test_backup_restore_across_vaults(self, config, protection, kek_protection):
        """Test copying data between vaults with different protection."""
        await _seed(config, "src", protection, {"k": b"v"})
        backup = await backup_vault_data("src", protection, config=config)
        await restore_vault_data("dst", backup, kek_protection, config=config)
        assert await _read(config, "dst", kek_protection) == {"k": b"v"}


@pytest.mark.asyncio
class TestAccessibility:
    """Tests for accessibility and self checks."""

    async def test_missing_vault_not_accessible(self, config, protection):
        """Test that checking never creates a vault."""
        assert await is_vault_accessible("nope", protection, config=config) is False
        assert await FileVaultStorage("nope", config.storage_path).exists() is False

    async def test_accessible_vault(self, config, protection):
        """Test an existing vault with the right protection."""
        await _seed(config, "v1", protection, {})
        assert await is_vault_accessible("v1", protection, config=config) is True

    async def test_wrong_protection_not_accessible(self, config, protection, kek_protection):
        """Test an existing vault with the wrong protection."""
        await _seed(config, "v1", protection, {})
        assert await is_vault_accessible("v1", kek_protection, config=config) is False

    async def test_validate_key_protection(self, protection, kek_protection):
        """Test the wrap/unwrap self test."""
        assert await validate_key_protection(protection) is True
        assert await validate_key_protection(kek_protection) is True
        assert await validate_key_protection(BrokenProtection()) is False
        assert await validate_key_protection(
            kek_protection, require_biometric=True,
        ) is False


@pytest.mark.asyncio
class TestRecommendStrategy:
    """Tests for recommend_strategy."""

    async def test_hardware_with_biometric(self):
        """Test recommending biometric gating on capable devices."""
        protection = HardwareProtection()
        strategy = await recommend_strategy(protection)
        assert isinstance(strategy, MigrationStrategy)
        assert strategy.protection is protection
        assert strategy.require_biometric is True

    async def test_hardware_without_biometric(self):
        """Test hardware backing without biometrics."""
        protection = HardwareProtection(biometric_available=False)
        strategy = await recommend_strategy(protection)
        assert strategy.protection is protection
        assert strategy.require_biometric is False

    async def test_software_protection(self, kek_protection):
        """Test a working software protection."""
        strategy = await recommend_strategy(kek_protection)
        assert strategy.protection is kek_protection
        assert strategy.require_biometric is False

    async def test_fallback_to_mock(self):
        """Test fallback when the candidate fails its self test."""
        strategy = await recommend_strategy(BrokenProtection(biometric_available=False))
        assert isinstance(strategy.protection, MockKeyProtection)
        assert not isinstance(strategy.protection, BrokenProtection)
        assert "mock" in strategy.reason

