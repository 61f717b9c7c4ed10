"""
Unit tests for environment-driven configuration.
"""

import pytest

from pwvault.core.config import DEFAULT_VAULT_PATH, VaultConfig, load_config
from pwvault.security.kdf import DEFAULT_MEMLIMIT, DEFAULT_OPSLIMIT


def test_defaults():
    config = load_config({})
    assert config == VaultConfig()
    assert config.vault_path == DEFAULT_VAULT_PATH == "vault.json"
    assert config.opslimit == DEFAULT_OPSLIMIT == 3
    assert config.memlimit == DEFAULT_MEMLIMIT == 64 * 1024 * 1024


def test_overrides():
    config = load_config(
        {"PWVAULT_PATH": "/tmp/v.json", "PWVAULT_OPSLIMIT": "1", "PWVAULT_MEMLIMIT": "8192"}
    )
    assert config == VaultConfig(vault_path="/tmp/v.json", opslimit=1, memlimit=8192)


def test_blank_values_fall_back_to_defaults():
    config = load_config({"PWVAULT_PATH": "", "PWVAULT_OPSLIMIT": " ", "PWVAULT_MEMLIMIT": ""})
    assert config == VaultConfig()


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("PWVAULT_OPSLIMIT", "2")
    monkeypatch.delenv("PWVAULT_MEMLIMIT", raising=False)
    assert load_config().opslimit == 2


@pytest.mark.parametrize(
    "name, value, message",
    [
        ("PWVAULT_OPSLIMIT", "three", "must be an integer"),
        ("PWVAULT_OPSLIMIT", "0", "must be between"),
        ("PWVAULT_MEMLIMIT", "1024", "must be between"),
        ("PWVAULT_MEMLIMIT", "1.5", "must be an integer"),
    ],
)
def test_invalid_values(name, value, message):
    with pytest.raises(ValueError, match=message):
        load_config({name: value})
