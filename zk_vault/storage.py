"""
Vault Storage — persistence of the metadata and records blobs.

Each vault owns two independent blobs: metadata and records. Both read as
absent until first written, and every save replaces the previous content
atomically (temporary file in the same directory, fsync, ``os.replace``,
then fsync of the directory on POSIX).

Blobs are JSON-compatible mappings; ``FileVaultStorage`` encodes them with
orjson and runs all blocking file I/O in a worker thread.
"""
import os
import re
import shutil
import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import orjson

from .exceptions import CorruptedError, InvalidArgumentError, StorageError

logger = logging.getLogger("zk_vault")

_VAULT_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]+")

METADATA_FILE = "vault.meta.json"
RECORDS_FILE = "vault.db.json"


def validate_vault_id(vault_id: str) -> str:
    """Validate a vault identifier for use as a storage name.

    Raises:
        InvalidArgumentError: If the id is empty, contains path separators
            or other unsupported characters, or is '.' / '..'.
    """
    if not isinstance(vault_id, str) or not vault_id:
        raise InvalidArgumentError("Vault id cannot be empty")
    if vault_id in (".", "..") or not _VAULT_ID_PATTERN.fullmatch(vault_id):
        raise InvalidArgumentError(
            f"Vault id {vault_id!r} may only contain letters, digits, '.', '_' and '-'"
        )
    return vault_id


class VaultStorage(ABC):
    """Abstract persistence capability for a single vault."""

    def __init__(self, vault_id: str):
        self.vault_id = validate_vault_id(vault_id)

    @abstractmethod
    async def load_metadata(self) -> Optional[dict[str, Any]]:
        """Return the metadata mapping, or None if not yet written."""

    @abstractmethod
    async def save_metadata(self, metadata: dict[str, Any]) -> None:
        """Atomically replace the metadata blob."""

    @abstractmethod
    async def load_records(self) -> dict[str, dict[str, Any]]:
        """Return the records mapping (empty if not yet written)."""

    @abstractmethod
    async def save_records(self, records: dict[str, dict[str, Any]]) -> None:
        """Atomically replace the records blob."""

    @abstractmethod
    async def exists(self) -> bool:
        """Return True if the vault has been initialized."""

    @abstractmethod
    async def destroy(self) -> None:
        """Irrecoverably remove all storage for this vault."""


class FileVaultStorage(VaultStorage):
    """JSON file storage under ``<base_path>/<vault_id>/``."""

    def __init__(self, vault_id: str, base_path: Path):
        super().__init__(vault_id)
        self.directory = Path(base_path) / self.vault_id

    @property
    def metadata_file(self) -> Path:
        return self.directory / METADATA_FILE

    @property
    def records_file(self) -> Path:
        return self.directory / RECORDS_FILE

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _read_blob(self, path: Path) -> Optional[Any]:
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as err:
            raise StorageError(
                f"Failed to read {path.name}: {err}", "read", err,
            ) from err
        try:
            return orjson.loads(content)
        except orjson.JSONDecodeError as err:
            raise CorruptedError(
                f"Vault blob {path.name} is not valid JSON"
            ) from err

    def _atomic_write(self, path: Path, data: Any) -> None:
        payload = orjson.dumps(data)
        try:
            self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.directory, prefix=f".{path.name}.", suffix=".tmp",
            )
        except OSError as err:
            raise StorageError(
                f"Failed to prepare write of {path.name}: {err}", "write", err,
            ) from err
        try:
            with os.fdopen(fd, "wb") as fp:
                fp.write(payload)
                fp.flush()
                os.fsync(fp.fileno())
            os.replace(tmp_path, path)
            self._sync_directory()
        except OSError as err:
            # previous content stays untouched
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise StorageError(
                f"Failed to write {path.name}: {err}", "write", err,
            ) from err

    def _sync_directory(self) -> None:
        """Flush the directory entry so a rename survives a crash (POSIX)."""
        flags = getattr(os, "O_DIRECTORY", None)
        if flags is None:
            return
        fd = os.open(self.directory, os.O_RDONLY | flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    def _remove_tree(self) -> None:
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            return
        except OSError as err:
            raise StorageError(
                f"Failed to destroy vault storage {self.vault_id}: {err}",
                "destroy",
                err,
            ) from err

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load_metadata(self) -> Optional[dict[str, Any]]:
        data = await asyncio.to_thread(self._read_blob, self.metadata_file)
        if data is not None and not isinstance(data, dict):
            raise CorruptedError("Vault metadata is not a mapping")
        return data

    async def save_metadata(self, metadata: dict[str, Any]) -> None:
        await asyncio.to_thread(self._atomic_write, self.metadata_file, metadata)

    async def load_records(self) -> dict[str, dict[str, Any]]:
        data = await asyncio.to_thread(self._read_blob, self.records_file)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise CorruptedError("Vault records blob is not a mapping")
        return data

    async def save_records(self, records: dict[str, dict[str, Any]]) -> None:
        await asyncio.to_thread(self._atomic_write, self.records_file, records)

    async def exists(self) -> bool:
        return await asyncio.to_thread(self.metadata_file.exists)

    async def destroy(self) -> None:
        await asyncio.to_thread(self._remove_tree)
        logger.debug("Removed storage for vault=%s", self.vault_id)
