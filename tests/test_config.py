"""
Tests for vault configuration loading.
"""
import base64
from pathlib import Path

import pytest
from pydantic import ValidationError

from zk_vault.config import (
    DEFAULT_MAX_KEY_LENGTH,
    VaultConfig,
    generate_kek,
    get_storage_path,
    load_kek,
)


class TestLoadKek:
    """Tests for VAULT_KEK loading."""

    def test_unset(self):
        """Test that no KEK is loaded when the variable is missing."""
        assert load_kek() is None

    def test_valid(self, monkeypatch):
        """Test loading a base64 32-byte KEK."""
        monkeypatch.setenv("VAULT_KEK", base64.b64encode(b"\x11" * 32).decode())
        assert load_kek() == b"\x11" * 32

    def test_wrong_length(self, monkeypatch):
        """Test rejection of a KEK with the wrong size."""
        monkeypatch.setenv("VAULT_KEK", base64.b64encode(b"\x11" * 16).decode())
        with pytest.raises(ValueError, match="32 bytes"):
            load_kek()

    def test_not_base64(self, monkeypatch):
        """Test rejection of a value that is not base64."""
        monkeypatch.setenv("VAULT_KEK", "***not-base64***")
        with pytest.raises(ValueError):
            load_kek()

    def test_generate_kek(self):
        """Test that generated KEKs decode to 32 random bytes."""
        first = generate_kek()
        assert len(base64.b64decode(first)) == 32
        assert first != generate_kek()


class TestVaultConfig:
    """Tests for VaultConfig."""

    def test_defaults(self):
        """Test default values."""
        config = VaultConfig()
        assert config.storage_path == Path.home() / ".zk_vault"
        assert config.kek is None
        assert config.max_key_length == DEFAULT_MAX_KEY_LENGTH

    def test_from_env(self, monkeypatch, tmp_path):
        """Test loading all settings from the environment."""
        monkeypatch.setenv("VAULT_STORAGE_PATH", str(tmp_path))
        monkeypatch.setenv("VAULT_KEK", generate_kek())
        monkeypatch.setenv("VAULT_MAX_KEY_LENGTH", "64")
        config = VaultConfig.from_env()
        assert config.storage_path == tmp_path
        assert len(config.kek) == 32
        assert config.max_key_length == 64

    def test_storage_path_expands_user(self, monkeypatch):
        """Test that '~' in VAULT_STORAGE_PATH is expanded."""
        monkeypatch.setenv("VAULT_STORAGE_PATH", "~/vaults")
        assert get_storage_path() == Path.home() / "vaults"

    def test_invalid_kek(self):
        """Test KEK length validation on the model."""
        with pytest.raises(ValidationError):
            VaultConfig(kek=b"short")

    @pytest.mark.parametrize("value", [0, 5000])
    def test_invalid_max_key_length(self, value):
        """Test key length bounds."""
        with pytest.raises(ValidationError):
            VaultConfig(max_key_length=value)

    def test_repr_hides_kek(self):
        """Test that the KEK is left out of repr."""
        config = VaultConfig(kek=b"\xaa" * 32)
        assert "kek" not in repr(config)
