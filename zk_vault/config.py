"""
Vault Configuration — storage location, KEK loading and validated settings.

Reads settings from environment variables:
    VAULT_STORAGE_PATH = <directory holding one sub-directory per vault>
    VAULT_KEK = <base64-encoded 32-byte key-encryption key> (optional)
    VAULT_MAX_KEY_LENGTH = <integer> (optional)

Security Note:
    Never log key material. Only log paths and whether a KEK is present.
"""
import os
import base64
import binascii
import secrets
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .codec import KEY_LENGTH

logger = logging.getLogger("zk_vault")

DEFAULT_STORAGE_DIR = ".zk_vault"
DEFAULT_MAX_KEY_LENGTH = 255


def load_kek() -> Optional[bytes]:
    """Load the key-encryption key from the VAULT_KEK environment variable.

    Returns:
        Raw 32-byte KEK, or None if VAULT_KEK is not set.

    Raises:
        ValueError: If the value is not base64 or does not decode to 32 bytes.
    """
    raw = os.environ.get("VAULT_KEK")
    if not raw:
        return None
    try:
        kek = base64.b64decode(raw, validate=True)
    except binascii.Error as err:
        raise ValueError("VAULT_KEK is not valid base64") from err
    if len(kek) != KEY_LENGTH:
        raise ValueError(
            f"VAULT_KEK must decode to exactly {KEY_LENGTH} bytes, "
            f"got {len(kek)}"
        )
    logger.debug("Loaded key-encryption key from environment")
    return kek


def get_storage_path() -> Path:
    """Return the base storage directory for vaults.

    Uses VAULT_STORAGE_PATH when set, otherwise ``~/.zk_vault``.
    """
    raw = os.environ.get("VAULT_STORAGE_PATH")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / DEFAULT_STORAGE_DIR


def generate_kek() -> str:
    """Generate a random 32-byte KEK and return it as base64 string.

    This is a utility for operators to provision VAULT_KEK.

    Returns:
        Base64-encoded 32-byte key string.
    """
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    storage_path: Path = Field(default_factory=get_storage_path)
    kek: Optional[bytes] = Field(default=None, repr=False)
    max_key_length: int = Field(default=DEFAULT_MAX_KEY_LENGTH, ge=1, le=4096)

    @field_validator("kek")
    @classmethod
    def validate_kek(cls, v: Optional[bytes]) -> Optional[bytes]:
        """Validate the KEK length when one is provided."""
        if v is not None and len(v) != KEY_LENGTH:
            raise ValueError(
                f"kek must be exactly {KEY_LENGTH} bytes, got {len(v)}"
            )
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        max_key_length = int(
            os.environ.get("VAULT_MAX_KEY_LENGTH", DEFAULT_MAX_KEY_LENGTH)
        )
        return cls(
            storage_path=get_storage_path(),
            kek=load_kek(),
            max_key_length=max_key_length,
        )
