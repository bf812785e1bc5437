"""
In-memory master key holder.

The key lives in a single owned ``bytearray`` that is overwritten with
zeros by ``wipe()``. Copies are refused so the only plaintext key buffer is
the one owned by the vault handle.

Security Note:
    ``exposed()`` hands out an immutable ``bytes`` copy for the duration of
    one codec call. Python cannot zero that copy; it is released as soon as
    the ``with`` block exits and the caller drops it.
"""
import os
from collections.abc import Iterator
from contextlib import contextmanager

from .codec import KEY_LENGTH
from .exceptions import InvalidArgumentError, VaultLockedError


class MasterKey:
    """Owned, non-copyable 32-byte symmetric key buffer."""

    __slots__ = ("_buffer",)

    def __init__(self, material: bytes):
        if len(material) != KEY_LENGTH:
            raise InvalidArgumentError(
                f"Master key must be exactly {KEY_LENGTH} bytes, "
                f"got {len(material)}"
            )
        self._buffer: bytearray | None = bytearray(material)

    @classmethod
    def generate(cls) -> "MasterKey":
        """Create a new random master key."""
        return cls(os.urandom(KEY_LENGTH))

    @property
    def wiped(self) -> bool:
        return self._buffer is None

    def wipe(self) -> None:
        """Overwrite the key with zeros and drop the buffer. Idempotent."""
        if self._buffer is None:
            return
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer = None

    @contextmanager
    def exposed(self) -> Iterator[bytes]:
        """Yield the raw key bytes for immediate use.

        Raises:
            VaultLockedError: If the key has been wiped.
        """
        if self._buffer is None:
            raise VaultLockedError()
        material = bytes(self._buffer)
        try:
            yield material
        finally:
            del material

    def __len__(self) -> int:
        return 0 if self._buffer is None else len(self._buffer)

    def __repr__(self) -> str:
        state = "wiped" if self._buffer is None else "redacted"
        return f"<MasterKey [{state}]>"

    def __copy__(self):
        raise TypeError("MasterKey cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("MasterKey cannot be copied")

    def __reduce__(self):
        raise TypeError("MasterKey cannot be pickled")
