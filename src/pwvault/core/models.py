"""
Data models for the vault: entries, header, and the orchestrator state
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..security.kdf import KdfParams
from ..security.memory import SecretBuffer


class VaultState(Enum):
    # Unkeyed -> Keyed -> Keyed(dirty); save() returns dirty to Keyed
    UNKEYED = "unkeyed"
    KEYED = "keyed"
    DIRTY = "dirty"


class Entry:
    __slots__ = ("site", "username", "secret")

    def __init__(self, site: str, username: str, secret: Union[str, SecretBuffer]):
        """
            One credential record. The secret is always held in a SecretBuffer
        """
        self.site = site
        self.username = username
        if isinstance(secret, SecretBuffer):
            self.secret = secret
        else:
            self.secret = SecretBuffer.from_text(secret)

    def reveal(self) -> str:
        """
            Secret as text, for display by the front end
        """
        return self.secret.text()

    def wipe(self) -> None:
        self.secret.wipe()

    def __eq__(self, other):
        if not isinstance(other, Entry):
            return NotImplemented
        return (
            self.site == other.site
            and self.username == other.username
            and self.secret == other.secret
        )

    __hash__ = None

    def __repr__(self):
        return f"Entry(site={self.site!r}, username={self.username!r}, secret=<hidden>)"


@dataclass(frozen=True)
class VaultHeader:
    """Everything stored next to the ciphertext; nothing here is secret."""

    version: int
    kdf: KdfParams
    nonce: bytes
    ciphertext: bytes = b""


__all__ = ["Entry", "KdfParams", "VaultHeader", "VaultState"]
