"""
Vault Key Protection — wrap/unwrap capability for the master key.

The engine never persists the raw master key; it asks a ``KeyProtection``
to turn it into an opaque blob (``wrap``) and back (``unwrap``).

Implementations:
- ``MockKeyProtection`` — reversible XOR with a fixed secret. Testing only,
  provides no protection at all.
- ``KeyWrapProtection`` — RFC 3394 AES key wrap under an operator supplied
  key-encryption key (KEK).

Security Note:
    Never log key material. Only log vault ids and capability flags.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from cryptography.hazmat.primitives.keywrap import (
    InvalidUnwrap,
    aes_key_unwrap,
    aes_key_wrap,
)

from .codec import KEY_LENGTH
from .exceptions import InvalidArgumentError, KeyUnavailableError

logger = logging.getLogger("zk_vault")


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        size = len(key) if isinstance(key, (bytes, bytearray)) else type(key).__name__
        raise InvalidArgumentError(
            f"Key must be exactly {KEY_LENGTH} bytes, got {size}"
        )


class KeyProtection(ABC):
    """Abstract key-protection capability consumed by the vault engine.

    ``unwrap`` must either return the exact key given to ``wrap`` or fail;
    it must never return a wrong key silently.
    """

    @abstractmethod
    async def wrap(self, key: bytes, require_biometric: bool = False) -> bytes:
        """Protect a raw 32-byte key into an opaque blob.

        Raises:
            InvalidArgumentError: If the key is not exactly 32 bytes.
        """

    @abstractmethod
    async def unwrap(self, wrapped: bytes, require_biometric: bool = False) -> bytes:
        """Recover the raw key from a blob produced by ``wrap``.

        Raises:
            InvalidArgumentError: If the blob is malformed.
        """

    @abstractmethod
    async def is_hardware_backed(self) -> bool:
        """Return True if key protection is hardware backed."""

    @abstractmethod
    async def is_biometric_available(self) -> bool:
        """Return True if biometric gating is available."""


class MockKeyProtection(KeyProtection):
    """XOR-based key protection for tests and development.

    Blob format: [0xAA 0xBB flag 0xCC][key XOR secret], where ``flag`` is
    0x01 when biometric was requested at wrap time.
    """

    _HEADER_SIZE = 4
    _SECRET = bytes([
        0x5A, 0x6B, 0x7C, 0x8D, 0x9E, 0xAF, 0xB0, 0xC1,
        0xD2, 0xE3, 0xF4, 0x05, 0x16, 0x27, 0x38, 0x49,
        0x5A, 0x6B, 0x7C, 0x8D, 0x9E, 0xAF, 0xB0, 0xC1,
        0xD2, 0xE3, 0xF4, 0x05, 0x16, 0x27, 0x38, 0x49,
    ])

    def __init__(self, biometric_available: bool = True):
        self._biometric_available = biometric_available

    async def wrap(self, key: bytes, require_biometric: bool = False) -> bytes:
        _check_key(key)
        header = bytes([0xAA, 0xBB, 0x01 if require_biometric else 0x00, 0xCC])
        return header + bytes(k ^ s for k, s in zip(key, self._SECRET))

    async def unwrap(self, wrapped: bytes, require_biometric: bool = False) -> bytes:
        if len(wrapped) != KEY_LENGTH + self._HEADER_SIZE:
            raise InvalidArgumentError("Invalid wrapped key format")
        if wrapped[0] != 0xAA or wrapped[1] != 0xBB or wrapped[3] != 0xCC:
            raise InvalidArgumentError("Invalid wrapped key header")
        if wrapped[2] not in (0x00, 0x01):
            raise InvalidArgumentError("Invalid wrapped key policy flag")
        # a real implementation prompts here when the blob carries the flag
        body = wrapped[self._HEADER_SIZE:]
        return bytes(w ^ s for w, s in zip(body, self._SECRET))

    async def is_hardware_backed(self) -> bool:
        return False

    async def is_biometric_available(self) -> bool:
        return self._biometric_available


class KeyWrapProtection(KeyProtection):
    """Software key protection using RFC 3394 AES key wrap.

    The KEK must be kept outside the vault directory (see ``VAULT_KEK``).
    Biometric gating is not supported.
    """

    WRAPPED_SIZE = KEY_LENGTH + 8

    def __init__(self, kek: bytes):
        if len(kek) != KEY_LENGTH:
            raise InvalidArgumentError(
                f"KEK must be exactly {KEY_LENGTH} bytes, got {len(kek)}"
            )
        self._kek = bytes(kek)

    def _check_policy(self, require_biometric: bool) -> None:
        if require_biometric:
            raise KeyUnavailableError(
                "Biometric authentication is not available for KEK protection"
            )

    async def wrap(self, key: bytes, require_biometric: bool = False) -> bytes:
        _check_key(key)
        self._check_policy(require_biometric)
        return aes_key_wrap(self._kek, bytes(key))

    async def unwrap(self, wrapped: bytes, require_biometric: bool = False) -> bytes:
        self._check_policy(require_biometric)
        if len(wrapped) != self.WRAPPED_SIZE:
            raise InvalidArgumentError(
                f"Wrapped key must be {self.WRAPPED_SIZE} bytes, got {len(wrapped)}"
            )
        try:
            return aes_key_unwrap(self._kek, bytes(wrapped))
        except InvalidUnwrap as err:
            raise InvalidArgumentError(
                "Wrapped key failed integrity check"
            ) from err

    async def is_hardware_backed(self) -> bool:
        return False

    async def is_biometric_available(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "<KeyWrapProtection [redacted]>"


def default_key_protection(kek: Optional[bytes] = None) -> KeyProtection:
    """Pick the key protection used when the caller does not inject one.

    Args:
        kek: Optional key-encryption key from configuration.

    Returns:
        ``KeyWrapProtection`` when a KEK is configured, otherwise
        ``MockKeyProtection``.
    """
    if kek is not None:
        return KeyWrapProtection(kek)
    logger.warning(
        "No VAULT_KEK configured; falling back to MockKeyProtection, "
        "which provides no real key protection"
    )
    return MockKeyProtection()
