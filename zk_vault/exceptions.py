"""
Vault Exceptions — error taxonomy shared by the engine and its ports.

Callers should treat ``AuthenticationFailedError`` exactly like
``CorruptedError``: the stored data cannot be trusted and no partial
plaintext is ever returned.
"""
from typing import Optional


class VaultError(Exception):
    """Base exception for vault operations."""


class VaultLockedError(VaultError):
    """Operation requires an unlocked master key."""

    def __init__(self, message: str = "Vault is locked - call open() to unlock"):
        super().__init__(message)


class KeyUnavailableError(VaultError):
    """Key protection cannot satisfy the requested policy."""


class InvalidArgumentError(VaultError, ValueError):
    """Malformed input: wrong key, nonce, tag or wrapped blob."""


class CorruptedError(VaultError):
    """Persisted vault state is malformed or cannot be decrypted."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class AuthenticationFailedError(CorruptedError):
    """Authentication tag did not verify."""


class StorageError(VaultError):
    """Error raised by the persistence layer."""

    def __init__(
        self,
        message: str,
        operation: str,
        original_error: Optional[Exception] = None,
    ):
        self.operation = operation
        self.original_error = original_error
        super().__init__(message)
