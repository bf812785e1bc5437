"""ZK Vault — Encrypted key-value storage under a wrapped master key.

Security Note (Threat Model):
    The master key is held in process memory while a vault is unlocked.
    A memory dump of the application process taken in that window could
    expose it. Locking or destroying the vault wipes the owned key buffer;
    transient copies handed to the cipher cannot be zeroed by Python.
    This is an accepted limitation — mitigation requires a hardware-backed
    KeyProtection implementation.
"""

from .version import __version__
from .vault import Vault
from .config import VaultConfig, load_kek, generate_kek
from .models import VaultMetadata, EncryptedRecord
from .protection import (
    KeyProtection,
    MockKeyProtection,
    KeyWrapProtection,
    default_key_protection,
)
from .storage import VaultStorage, FileVaultStorage
from .exceptions import (
    VaultError,
    VaultLockedError,
    KeyUnavailableError,
    InvalidArgumentError,
    CorruptedError,
    AuthenticationFailedError,
    StorageError,
)
from .migration import (
    migrate_vault,
    backup_vault_data,
    restore_vault_data,
    is_vault_accessible,
    validate_key_protection,
    recommend_strategy,
    MigrationStrategy,
)

__all__ = [
    "__version__",
    "Vault",
    "VaultConfig",
    "load_kek",
    "generate_kek",
    "VaultMetadata",
    "EncryptedRecord",
    "KeyProtection",
    "MockKeyProtection",
    "KeyWrapProtection",
    "default_key_protection",
    "VaultStorage",
    "FileVaultStorage",
    "VaultError",
    "VaultLockedError",
    "KeyUnavailableError",
    "InvalidArgumentError",
    "CorruptedError",
    "AuthenticationFailedError",
    "StorageError",
    "migrate_vault",
    "backup_vault_data",
    "restore_vault_data",
    "is_vault_accessible",
    "validate_key_protection",
    "recommend_strategy",
    "MigrationStrategy",
]
