"""Shared fixtures for vault tests."""
import pytest

from zk_vault.config import VaultConfig
from zk_vault.protection import MockKeyProtection
from zk_vault.storage import FileVaultStorage


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host vault settings out of the tests."""
    for name in ("VAULT_KEK", "VAULT_STORAGE_PATH", "VAULT_MAX_KEY_LENGTH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path):
    """Vault configuration rooted in a temporary directory."""
    return VaultConfig(storage_path=tmp_path / "vaults")


@pytest.fixture
def protection():
    """Reference key protection."""
    return MockKeyProtection()


@pytest.fixture
def storage_factory(config):
    """Build file storage for a vault id under the test directory."""
    def factory(vault_id: str) -> FileVaultStorage:
        return FileVaultStorage(vault_id, config.storage_path)
    return factory
