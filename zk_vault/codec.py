"""
Vault Record Codec — AES-256-GCM encryption of single record payloads.

Each call to ``encrypt`` draws a fresh random 96-bit nonce and returns the
nonce, the ciphertext (same length as the plaintext) and the 16-byte GCM tag
as separate values. No associated data is bound.

Security Note:
    Never log plaintext, ciphertext or key values.
    Nonces are random 96-bit; collision probability is negligible under
    normal usage but grows with the number of writes under one master key.
"""
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import AuthenticationFailedError, InvalidArgumentError

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag
KEY_LENGTH = 32  # AES-256


def _check_length(name: str, value: bytes, expected: int) -> None:
    if not isinstance(value, (bytes, bytearray)):
        raise InvalidArgumentError(
            f"{name} must be bytes, got {type(value).__name__}"
        )
    if len(value) != expected:
        raise InvalidArgumentError(
            f"{name} must be exactly {expected} bytes, got {len(value)}"
        )


def encrypt(plaintext: bytes, master_key: bytes) -> tuple[bytes, bytes, bytes]:
    """Encrypt a record payload under the master key.

    Args:
        plaintext: Payload to encrypt (may be empty).
        master_key: Raw 32-byte master key.

    Returns:
        Tuple of (nonce, ciphertext, tag).

    Raises:
        InvalidArgumentError: If the key is not 32 bytes.
    """
    _check_length("master key", master_key, KEY_LENGTH)
    cipher = AESGCM(bytes(master_key))
    nonce = os.urandom(NONCE_SIZE)
    sealed = cipher.encrypt(nonce, bytes(plaintext), None)
    return nonce, sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]


def decrypt(nonce: bytes, ciphertext: bytes, tag: bytes, master_key: bytes) -> bytes:
    """Verify and decrypt a record payload.

    The tag is verified before any plaintext is released; on mismatch
    nothing is returned.

    Args:
        nonce: 12-byte nonce used at encryption time.
        ciphertext: Encrypted payload.
        tag: 16-byte authentication tag.
        master_key: Raw 32-byte master key.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        InvalidArgumentError: If key, nonce or tag have the wrong length.
        AuthenticationFailedError: If the tag does not verify.
    """
    _check_length("master key", master_key, KEY_LENGTH)
    _check_length("nonce", nonce, NONCE_SIZE)
    _check_length("tag", tag, TAG_SIZE)
    cipher = AESGCM(bytes(master_key))
    try:
        return cipher.decrypt(bytes(nonce), bytes(ciphertext) + bytes(tag), None)
    except InvalidTag as err:
        raise AuthenticationFailedError(
            "Decryption failed - data may be corrupted"
        ) from err
