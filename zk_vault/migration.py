"""
Vault Migration — moving vault data between key protection implementations.

Typical use is promoting a vault created with ``MockKeyProtection`` during
development to ``KeyWrapProtection`` (or a hardware-backed implementation)
in production. Records are read through the source protection and written
again through the target one, so every payload is re-encrypted under a new
master key.

Security Note:
    Plaintext exists in memory only while a record is being copied.
    Never log plaintext or ciphertext values.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from .config import VaultConfig
from .exceptions import CorruptedError, KeyUnavailableError, VaultError
from .protection import KeyProtection, MockKeyProtection
from .storage import FileVaultStorage, VaultStorage
from .vault import Vault

logger = logging.getLogger("zk_vault")

StorageFactory = Callable[[str], VaultStorage]


def _storage_for(
    vault_id: str,
    config: VaultConfig,
    storage_factory: Optional[StorageFactory],
) -> VaultStorage:
    if storage_factory is not None:
        return storage_factory(vault_id)
    return FileVaultStorage(vault_id, config.storage_path)


async def _open(
    vault_id: str,
    protection: KeyProtection,
    require_biometric: bool,
    config: VaultConfig,
    storage_factory: Optional[StorageFactory],
) -> Vault:
    return await Vault.open(
        vault_id,
        require_biometric,
        protection,
        storage=_storage_for(vault_id, config, storage_factory),
        config=config,
    )


async def _read_all(vault: Vault, stats: Optional[dict] = None) -> dict[str, bytes]:
    """Decrypt every record of an open vault, skipping unreadable ones."""
    data: dict[str, bytes] = {}
    for key in await vault.keys():
        if stats is not None:
            stats["total"] += 1
        try:
            value = await vault.get(key)
        except CorruptedError as err:
            logger.error(
                "Error reading vault=%s key=%s: %s", vault.vault_id, key, err,
            )
            if stats is not None:
                stats["errors"] += 1
            continue
        if value is not None:
            data[key] = value
    return data


async def migrate_vault(
    vault_id: str,
    source_protection: KeyProtection,
    target_protection: KeyProtection,
    *,
    source_require_biometric: bool = False,
    target_require_biometric: bool = False,
    target_vault_id: Optional[str] = None,
    config: Optional[VaultConfig] = None,
    storage_factory: Optional[StorageFactory] = None,
) -> dict:
    """Copy all records of a vault into a vault protected by another KMS.

    When ``target_vault_id`` equals ``vault_id`` (the default) the source
    vault is destroyed and recreated under the target protection, then the
    records are written back. Otherwise the source vault is destroyed after
    a successful copy. The target protection is checked before anything is
    destroyed.

    Records that cannot be read from the source are counted as errors and
    are lost for good once the source vault is destroyed. Run
    ``backup_vault_data`` first when they must be investigated.

    Args:
        vault_id: Source vault identifier.
        source_protection: Protection able to unwrap the source vault.
        target_protection: Protection used for the target vault.
        source_require_biometric: Biometric policy for opening the source.
        target_require_biometric: Biometric policy for the target.
        target_vault_id: Target vault identifier (defaults to ``vault_id``).
        config: Settings; loaded from environment when omitted.
        storage_factory: Optional ``vault_id -> VaultStorage`` callable.

    Returns:
        Stats dict with keys: total, migrated, errors.

    Raises:
        KeyUnavailableError: If the target protection cannot wrap and
            unwrap keys under the requested biometric policy. The source
            vault is left untouched.
    """
    config = config or VaultConfig.from_env()
    target_id = target_vault_id or vault_id
    stats = {"total": 0, "migrated": 0, "errors": 0}

    if (
        target_require_biometric
        and not await target_protection.is_biometric_available()
    ):
        raise KeyUnavailableError(
            "Target protection has no biometric authentication available"
        )
    if not await validate_key_protection(
        target_protection, target_require_biometric,
    ):
        raise KeyUnavailableError("Target key protection failed its self-test")

    logger.info(
        "Starting migration of vault=%s to vault=%s", vault_id, target_id,
    )

    source = await _open(
        vault_id, source_protection, source_require_biometric,
        config, storage_factory,
    )
    try:
        data = await _read_all(source, stats)
        if target_id == vault_id:
            await source.destroy()
    finally:
        await source.lock()

    target = await _open(
        target_id, target_protection, target_require_biometric,
        config, storage_factory,
    )
    try:
        for key, value in data.items():
            await target.set(key, value)
            stats["migrated"] += 1
        if target_id != vault_id:
            await source.destroy()
    finally:
        await target.lock()

    logger.info("Vault migration complete: %s", stats)
    return stats


async def backup_vault_data(
    vault_id: str,
    protection: KeyProtection,
    require_biometric: bool = False,
    *,
    config: Optional[VaultConfig] = None,
    storage_factory: Optional[StorageFactory] = None,
) -> dict[str, bytes]:
    """Return the decrypted contents of a vault.

    The returned mapping holds plaintext and must be handled as a secret.
    Unreadable records are logged and left out.
    """
    config = config or VaultConfig.from_env()
    vault = await _open(
        vault_id, protection, require_biometric, config, storage_factory,
    )
    try:
        return await _read_all(vault)
    finally:
        await vault.lock()


async def restore_vault_data(
    vault_id: str,
    backup: dict[str, bytes],
    protection: KeyProtection,
    require_biometric: bool = False,
    *,
    config: Optional[VaultConfig] = None,
    storage_factory: Optional[StorageFactory] = None,
) -> None:
    """Replace the contents of a vault with ``backup``.

    Existing keys are deleted first, so the vault ends up holding exactly
    the backup entries.
    """
    config = config or VaultConfig.from_env()
    vault = await _open(
        vault_id, protection, require_biometric, config, storage_factory,
    )
    try:
        for key in await vault.keys():
            await vault.delete(key)
        for key, value in backup.items():
            await vault.set(key, value)
    finally:
        await vault.lock()
    logger.info("Restored %d record(s) into vault=%s", len(backup), vault_id)


async def is_vault_accessible(
    vault_id: str,
    protection: KeyProtection,
    require_biometric: bool = False,
    *,
    config: Optional[VaultConfig] = None,
    storage_factory: Optional[StorageFactory] = None,
) -> bool:
    """Return True if an existing vault can be unlocked with ``protection``.

    Never creates a vault.
    """
    config = config or VaultConfig.from_env()
    storage = _storage_for(vault_id, config, storage_factory)
    if not await storage.exists():
        return False
    try:
        vault = await Vault.open(
            vault_id, require_biometric, protection,
            storage=storage, config=config,
        )
    except VaultError as err:
        logger.debug("Vault=%s is not accessible: %s", vault_id, err)
        return False
    await vault.lock()
    return True


async def validate_key_protection(
    protection: KeyProtection,
    require_biometric: bool = False,
) -> bool:
    """Check that ``protection`` round-trips a known test key."""
    test_key = bytes(range(32))
    try:
        wrapped = await protection.wrap(test_key, require_biometric)
        unwrapped = await protection.unwrap(wrapped, require_biometric)
    except VaultError as err:
        logger.warning("Key protection self-test failed: %s", err)
        return False
    return unwrapped == test_key


@dataclass
class MigrationStrategy:
    """Recommended key protection setup for the current device."""

    protection: KeyProtection
    require_biometric: bool
    reason: str


async def recommend_strategy(protection: KeyProtection) -> MigrationStrategy:
    """Recommend how to protect vaults given a candidate protection."""
    hardware = await protection.is_hardware_backed()
    biometric = await protection.is_biometric_available()
    if hardware and biometric:
        return MigrationStrategy(
            protection=protection,
            require_biometric=True,
            reason="Device supports hardware-backed keys with biometric authentication",
        )
    if hardware:
        return MigrationStrategy(
            protection=protection,
            require_biometric=False,
            reason="Device supports hardware-backed keys",
        )
    if await validate_key_protection(protection):
        return MigrationStrategy(
            protection=protection,
            require_biometric=False,
            reason="Hardware key storage not available, using software key protection",
        )
    return MigrationStrategy(
        protection=MockKeyProtection(),
        require_biometric=False,
        reason="Key protection unavailable, using mock implementation",
    )
