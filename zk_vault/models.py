"""
Vault Data Models — metadata and encrypted record structures.

Both models dump to JSON-compatible dicts (``to_dict``) with binary fields
encoded as base64 text, and are rebuilt from those dicts (``from_dict``).
"""
import base64
import binascii
from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    PlainSerializer,
    field_validator,
)

from .codec import NONCE_SIZE, TAG_SIZE

SCHEMA_VERSION = 1
RECORD_VERSION = 1


def _decode_blob(value: Any) -> Any:
    """Accept raw bytes as-is, decode base64 text from persisted blobs."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as err:
            raise ValueError(f"invalid base64 data: {err}") from err
    return value


def _encode_blob(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


Blob = Annotated[
    bytes,
    BeforeValidator(_decode_blob),
    PlainSerializer(_encode_blob, return_type=str, when_used="json"),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VaultMetadata(BaseModel):
    """Per-vault metadata, persisted as the metadata blob."""

    schema_version: int = Field(default=SCHEMA_VERSION, ge=1)
    vault_id: str = Field(min_length=1)
    wrapped_master_key: Blob
    requires_biometric: bool = False
    is_hardware_backed: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @field_validator("wrapped_master_key")
    @classmethod
    def validate_wrapped_key(cls, v: bytes) -> bytes:
        """A metadata blob without a wrapped key is not an initialized vault."""
        if not v:
            raise ValueError("wrapped_master_key cannot be empty")
        return v

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VaultMetadata":
        return cls.model_validate(data)


class EncryptedRecord(BaseModel):
    """A single encrypted value stored under a caller key."""

    nonce: Blob
    ciphertext: Blob
    tag: Blob
    version: int = RECORD_VERSION
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("nonce")
    @classmethod
    def validate_nonce(cls, v: bytes) -> bytes:
        if len(v) != NONCE_SIZE:
            raise ValueError(f"nonce must be {NONCE_SIZE} bytes, got {len(v)}")
        return v

    @field_validator("tag")
    @classmethod
    def validate_tag(cls, v: bytes) -> bytes:
        if len(v) != TAG_SIZE:
            raise ValueError(f"tag must be {TAG_SIZE} bytes, got {len(v)}")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        if v != RECORD_VERSION:
            raise ValueError(f"unsupported record version {v}")
        return v

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncryptedRecord":
        return cls.model_validate(data)
