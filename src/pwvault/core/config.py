"""Runtime configuration: default vault path and KDF costs for new vaults.

Defaults can be overridden through environment variables:

- ``PWVAULT_PATH``: vault file used when the front end is given none
- ``PWVAULT_OPSLIMIT``: Argon2id passes for newly created vaults
- ``PWVAULT_MEMLIMIT``: Argon2id memory in bytes for newly created vaults

Existing vaults always keep the costs stored in their header.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Mapping, Optional

from ..security.kdf import (
    DEFAULT_MEMLIMIT,
    DEFAULT_OPSLIMIT,
    MEMLIMIT_MAX,
    MEMLIMIT_MIN,
    OPSLIMIT_MAX,
    OPSLIMIT_MIN,
)

DEFAULT_VAULT_PATH = "vault.json"

ENV_PATH = "PWVAULT_PATH"
ENV_OPSLIMIT = "PWVAULT_OPSLIMIT"
ENV_MEMLIMIT = "PWVAULT_MEMLIMIT"


@dataclass(frozen=True)
class VaultConfig:
    vault_path: str = DEFAULT_VAULT_PATH
    opslimit: int = DEFAULT_OPSLIMIT
    memlimit: int = DEFAULT_MEMLIMIT


def _int_from_env(env: Mapping[str, str], name: str, default: int, low: int, high: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> VaultConfig:
    """Build a VaultConfig from ``env`` (defaults to ``os.environ``)."""
    if env is None:
        env = os.environ
    return VaultConfig(
        vault_path=env.get(ENV_PATH) or DEFAULT_VAULT_PATH,
        opslimit=_int_from_env(env, ENV_OPSLIMIT, DEFAULT_OPSLIMIT, OPSLIMIT_MIN, OPSLIMIT_MAX),
        memlimit=_int_from_env(env, ENV_MEMLIMIT, DEFAULT_MEMLIMIT, MEMLIMIT_MIN, MEMLIMIT_MAX),
    )
