"""
Vault — Encrypted key-value storage protected by a wrapped master key.

Provides the public API of the vault engine:
- ``Vault.open(vault_id, ...)`` — create or unlock a vault
- ``set(key, value)`` — encrypt and persist a payload
- ``get(key)`` — decrypt and return a payload, or None if absent
- ``contains(key)`` / ``keys()`` / ``delete(key)``
- ``lock()`` / ``unlock()`` — drop or recover the in-memory master key
- ``destroy()`` — wipe the key and remove all persisted data

Every operation runs under one per-handle ``asyncio.Lock``. That lock is
not reentrant, so no operation may await another public operation of the
same handle while holding it.

Security Note:
    Never log plaintext, ciphertext or key values. Only log vault ids,
    key names and operations.
"""
import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from . import codec
from .config import VaultConfig
from .exceptions import (
    AuthenticationFailedError,
    CorruptedError,
    InvalidArgumentError,
    KeyUnavailableError,
    VaultLockedError,
)
from .models import EncryptedRecord, VaultMetadata, utcnow
from .protection import KeyProtection, default_key_protection
from .secret import MasterKey
from .storage import FileVaultStorage, VaultStorage, validate_vault_id

logger = logging.getLogger("zk_vault")


class Vault:
    """Handle on a single encrypted vault.

    States: unlocked (master key in memory), locked (no key) and destroyed
    (terminal). Data operations on a locked or destroyed handle always raise
    ``VaultLockedError``.
    """

    def __init__(
        self,
        vault_id: str,
        storage: VaultStorage,
        key_protection: KeyProtection,
        require_biometric: bool = False,
        max_key_length: int = 255,
    ):
        self._vault_id = vault_id
        self._storage = storage
        self._protection = key_protection
        self._require_biometric = require_biometric
        self._max_key_length = max_key_length
        self._master_key: Optional[MasterKey] = None
        self._metadata: Optional[VaultMetadata] = None
        self._destroyed = False
        self._mutex = asyncio.Lock()

    def __repr__(self) -> str:
        if self._destroyed:
            state = "destroyed"
        else:
            state = "locked" if self._master_key is None else "unlocked"
        return f"<Vault {self._vault_id!r} [{state}]>"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def vault_id(self) -> str:
        return self._vault_id

    @property
    def is_locked(self) -> bool:
        return self._master_key is None

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def metadata(self) -> Optional[VaultMetadata]:
        return self._metadata

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        vault_id: str,
        require_biometric: bool = False,
        key_protection: Optional[KeyProtection] = None,
        *,
        storage: Optional[VaultStorage] = None,
        config: Optional[VaultConfig] = None,
    ) -> "Vault":
        """Open the vault ``vault_id``, creating it on first use.

        Args:
            vault_id: Vault identifier (letters, digits, '.', '_', '-').
            require_biometric: Ask key protection for biometric gating.
            key_protection: Wrap/unwrap capability. Defaults to
                ``KeyWrapProtection`` when a KEK is configured, else
                ``MockKeyProtection``.
            storage: Persistence capability. Defaults to
                ``FileVaultStorage`` under ``config.storage_path``.
            config: Settings; loaded from environment when omitted.

        Returns:
            Unlocked Vault handle.

        Raises:
            KeyUnavailableError: If biometric is required but unavailable.
            CorruptedError: If persisted metadata or the wrapped key is invalid.
            InvalidArgumentError: If the vault id is invalid.
        """
        validate_vault_id(vault_id)
        if config is None:
            config = VaultConfig.from_env()
        protection = key_protection or default_key_protection(config.kek)

        if require_biometric and not await protection.is_biometric_available():
            raise KeyUnavailableError(
                "Biometric authentication is not available"
            )

        if storage is None:
            storage = FileVaultStorage(vault_id, config.storage_path)
        elif storage.vault_id != vault_id:
            raise InvalidArgumentError(
                f"Storage belongs to vault {storage.vault_id!r}, not {vault_id!r}"
            )

        vault = cls(
            vault_id,
            storage,
            protection,
            require_biometric=require_biometric,
            max_key_length=config.max_key_length,
        )
        metadata = await storage.load_metadata()
        if metadata is None:
            vault._master_key = await vault._create_vault()
        else:
            vault._master_key = await vault._load_vault(metadata)
        return vault

    # ------------------------------------------------------------------
    # Master key lifecycle
    # ------------------------------------------------------------------

    async def _create_vault(self) -> MasterKey:
        """Generate and wrap a new master key, persist empty vault state."""
        master_key = MasterKey.generate()
        try:
            with master_key.exposed() as material:
                wrapped = await self._protection.wrap(
                    material, self._require_biometric,
                )
            metadata = VaultMetadata(
                vault_id=self._vault_id,
                wrapped_master_key=wrapped,
                requires_biometric=self._require_biometric,
                is_hardware_backed=await self._protection.is_hardware_backed(),
            )
            await self._storage.save_metadata(metadata.to_dict())
            await self._storage.save_records({})
        except BaseException:
            master_key.wipe()
            raise
        self._metadata = metadata
        logger.info(
            "Created vault=%s (hardware_backed=%s, biometric=%s)",
            self._vault_id,
            metadata.is_hardware_backed,
            metadata.requires_biometric,
        )
        return master_key

    async def _load_vault(self, data: dict[str, Any]) -> MasterKey:
        """Unwrap the master key recorded in existing metadata."""
        try:
            metadata = VaultMetadata.from_dict(data)
        except ValidationError as err:
            raise CorruptedError(f"Vault metadata is corrupted: {err}") from err
        if metadata.vault_id != self._vault_id:
            raise CorruptedError(
                f"Vault metadata belongs to {metadata.vault_id!r}, "
                f"not {self._vault_id!r}"
            )

        try:
            raw = await self._protection.unwrap(
                metadata.wrapped_master_key,
                self._require_biometric or metadata.requires_biometric,
            )
        except InvalidArgumentError as err:
            raise CorruptedError(f"Failed to unwrap master key: {err}") from err

        try:
            master_key = MasterKey(raw)
        except InvalidArgumentError as err:
            raise CorruptedError("Invalid master key size") from err
        self._metadata = metadata
        logger.debug("Unlocked vault=%s", self._vault_id)
        return master_key

    def _wipe_key(self) -> None:
        """Zero and drop the master key. Caller must hold the mutex."""
        if self._master_key is not None:
            self._master_key.wipe()
            self._master_key = None

    def _ensure_unlocked(self) -> MasterKey:
        if self._master_key is None:
            if self._destroyed:
                raise VaultLockedError("Vault has been destroyed")
            raise VaultLockedError()
        return self._master_key

    # ------------------------------------------------------------------
    # Key validation
    # ------------------------------------------------------------------

    def _validate_key(self, key: str) -> None:
        """Validate a record key name.

        Raises:
            InvalidArgumentError: If key is not a string, empty or too long.
        """
        if not isinstance(key, str):
            raise InvalidArgumentError(
                f"Vault key must be a string, got {type(key).__name__}"
            )
        if not key:
            raise InvalidArgumentError("Vault key cannot be empty")
        if len(key) > self._max_key_length:
            raise InvalidArgumentError(
                f"Vault key cannot exceed {self._max_key_length} characters"
            )

    @staticmethod
    def _created_at(existing: Any):
        """Return the creation time of a readable existing record."""
        if existing is None:
            return None
        try:
            return EncryptedRecord.from_dict(existing).created_at
        except ValidationError:
            return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set(self, key: str, value: bytes) -> None:
        """Encrypt and persist a payload under ``key``.

        Overwrites any existing value. The whole records blob is rewritten
        atomically.

        Raises:
            VaultLockedError: If the vault is locked.
            InvalidArgumentError: If key or value are invalid.
        """
        async with self._mutex:
            master_key = self._ensure_unlocked()
            self._validate_key(key)
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise InvalidArgumentError(
                    f"Vault value must be bytes, got {type(value).__name__}"
                )

            records = await self._storage.load_records()
            now = utcnow()
            with master_key.exposed() as material:
                nonce, ciphertext, tag = codec.encrypt(bytes(value), material)
            record = EncryptedRecord(
                nonce=nonce,
                ciphertext=ciphertext,
                tag=tag,
                created_at=self._created_at(records.get(key)) or now,
                updated_at=now,
            )
            records[key] = record.to_dict()
            await self._storage.save_records(records)

        logger.debug("Vault set: vault=%s key=%s", self._vault_id, key)

    async def get(self, key: str) -> Optional[bytes]:
        """Decrypt and return the payload stored under ``key``.

        Returns:
            Plaintext bytes, or None if the key is not stored.

        Raises:
            VaultLockedError: If the vault is locked.
            CorruptedError: If the stored record is malformed.
            AuthenticationFailedError: If the record fails authentication.
        """
        async with self._mutex:
            master_key = self._ensure_unlocked()
            self._validate_key(key)

            records = await self._storage.load_records()
            if key not in records:
                return None

            try:
                record = EncryptedRecord.from_dict(records[key])
            except ValidationError as err:
                raise CorruptedError(
                    f'Stored record for key "{key}" is malformed', key=key,
                ) from err

            with master_key.exposed() as material:
                try:
                    return codec.decrypt(
                        record.nonce, record.ciphertext, record.tag, material,
                    )
                except AuthenticationFailedError as err:
                    raise AuthenticationFailedError(
                        f'Failed to decrypt value for key "{key}"', key=key,
                    ) from err

    async def contains(self, key: str) -> bool:
        """Return True if ``key`` is stored.

        Raises:
            VaultLockedError: If the vault is locked.
        """
        async with self._mutex:
            self._ensure_unlocked()
            self._validate_key(key)
            records = await self._storage.load_records()
            return key in records

    async def delete(self, key: str) -> None:
        """Remove ``key`` if present. Deleting a missing key is a no-op.

        Raises:
            VaultLockedError: If the vault is locked.
        """
        async with self._mutex:
            self._ensure_unlocked()
            self._validate_key(key)
            records = await self._storage.load_records()
            if key not in records:
                return
            del records[key]
            await self._storage.save_records(records)

        logger.debug("Vault delete: vault=%s key=%s", self._vault_id, key)

    async def keys(self) -> list[str]:
        """List stored key names, in no particular order.

        Raises:
            VaultLockedError: If the vault is locked.
        """
        async with self._mutex:
            self._ensure_unlocked()
            records = await self._storage.load_records()
            return list(records.keys())

    async def lock(self) -> None:
        """Wipe the master key from memory. Idempotent."""
        async with self._mutex:
            self._wipe_key()
        logger.debug("Locked vault=%s", self._vault_id)

    async def unlock(self) -> None:
        """Unwrap the master key again on a locked handle.

        Raises:
            VaultLockedError: If the vault has been destroyed.
            KeyUnavailableError: If biometric is required but unavailable.
            CorruptedError: If the vault storage is missing or invalid.
        """
        async with self._mutex:
            if self._destroyed:
                raise VaultLockedError("Vault has been destroyed")
            if self._master_key is not None:
                return
            if (
                self._require_biometric
                and not await self._protection.is_biometric_available()
            ):
                raise KeyUnavailableError(
                    "Biometric authentication is not available"
                )
            metadata = await self._storage.load_metadata()
            if metadata is None:
                raise CorruptedError(
                    f"Vault {self._vault_id!r} storage is missing"
                )
            self._master_key = await self._load_vault(metadata)

    async def destroy(self) -> None:
        """Wipe the master key and delete all persisted vault data.

        Storage deletion is best-effort: failures are logged and suppressed
        because the data is unreadable once the key is gone. The handle is
        unusable afterwards.
        """
        async with self._mutex:
            if self._destroyed:
                return
            # wipe directly, lock() would re-acquire the mutex
            self._wipe_key()
            self._destroyed = True
            try:
                await self._storage.destroy()
            except Exception as err:
                logger.error(
                    "Failed to remove storage for vault=%s: %s",
                    self._vault_id, err,
                )

        logger.info("Vault destroyed: vault=%s", self._vault_id)
