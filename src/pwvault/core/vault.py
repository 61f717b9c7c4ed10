"""
Vault orchestrator: the only API the front end talks to

State machine:

    UNKEYED --init_new()/load()--> KEYED --add_entry()/remove_by_site()--> DIRTY
                                     ^                                      |
                                     +---------------- save() -------------+

Public operations never raise. They return a success flag (or a
count) and leave a message in ``last_error`` and the exception class in
``last_error_kind``. Any failure inside init_new()/load() leaves the vault
UNKEYED with no key material and no entries.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .body import decode_entries, encode_entries
from .config import VaultConfig, load_config
from .exceptions import BodyFormatError, NotKeyedError, VaultError
from .header import dump_header, header_aad, make_header, parse_header
from .models import Entry, KdfParams, VaultState
from .storage import read_vault_file, write_atomic
from ..security.crypto import decrypt, encrypt, generate_nonce
from ..security.kdf import derive_key, kdf_params_to_dict
from ..security.memory import SecretBuffer

logger = logging.getLogger(__name__)

Passphrase = Union[str, bytes, SecretBuffer]


def _site_matches(site: str, prefix: str) -> bool:
    # First character case-insensitive, remainder exact.
    if not prefix:
        return True
    if len(site) < len(prefix):
        return False
    return site[0].lower() == prefix[0].lower() and site[1:len(prefix)] == prefix[1:]


class Vault:
    """One encrypted credential store bound to one file path."""

    def __init__(
        self,
        path: Union[str, Path],
        opslimit: Optional[int] = None,
        memlimit: Optional[int] = None,
    ):
        self.path = Path(path)
        self._entries: List[Entry] = []
        self._key: Optional[SecretBuffer] = None
        self._nonce: Optional[SecretBuffer] = None
        self._kdf: Optional[KdfParams] = None
        self._state = VaultState.UNKEYED
        self.last_error: str = ""
        self.last_error_kind: Optional[type] = None

        if opslimit is None or memlimit is None:
            try:
                config = load_config()
            except ValueError as e:
                # Bad environment: keep built-in costs, report it until the first operation.
                logger.warning("ignoring invalid configuration: %s", e)
                self.last_error = f"Invalid configuration, using default costs: {e}"
                self.last_error_kind = ValueError
                config = VaultConfig()
            opslimit = config.opslimit if opslimit is None else opslimit
            memlimit = config.memlimit if memlimit is None else memlimit
        # Costs for vaults created by init_new(); load() uses the stored ones.
        self._new_opslimit = opslimit
        self._new_memlimit = memlimit

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def has_key(self) -> bool:
        return self._key is not None

    @property
    def is_dirty(self) -> bool:
        return self._state is VaultState.DIRTY

    @property
    def kdf_params(self) -> Optional[KdfParams]:
        return self._kdf

    @property
    def nonce(self) -> Optional[bytes]:
        """Nonce of the last save/load (not secret)."""
        if self._nonce is None:
            return None
        with self._nonce.view() as mv:
            return mv.tobytes()

    @property
    def entries(self) -> Tuple[Entry, ...]:
        return tuple(self._entries)

    def find(self, prefix: str) -> List[Entry]:
        """Entries whose site starts with ``prefix`` (first character case-insensitive)."""
        return [e for e in self._entries if _site_matches(e.site, prefix)]

    # ------------------------------------------------------------------
    # Error bookkeeping
    # ------------------------------------------------------------------

    def _clear_error(self) -> None:
        self.last_error = ""
        self.last_error_kind = None

    def _fail(self, operation: str, exc: VaultError) -> bool:
        self.last_error = str(exc)
        self.last_error_kind = type(exc)
        logger.warning("%s failed for %s: %s: %s", operation, self.path, type(exc).__name__, exc)
        return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _wipe_state(self) -> None:
        if self._key is not None:
            self._key.wipe()
        if self._nonce is not None:
            self._nonce.wipe()
        for entry in self._entries:
            entry.wipe()
        self._key = None
        self._nonce = None
        self._kdf = None
        self._entries = []
        self._state = VaultState.UNKEYED

    def init_new(self, passphrase: Passphrase) -> bool:
        """Create an empty vault at ``path`` protected by ``passphrase``."""
        self._wipe_state()
        self._clear_error()
        try:
            kdf = KdfParams.generate(self._new_opslimit, self._new_memlimit)
            key = derive_key(passphrase, kdf)
        except VaultError as e:
            return self._fail("init", e)

        logger.debug("new vault kdf parameters: %s", kdf_params_to_dict(kdf))
        self._kdf = kdf
        self._key = key
        self._nonce = SecretBuffer.from_bytes(generate_nonce())
        self._state = VaultState.KEYED
        if not self.save():
            self._wipe_state()
            return False
        logger.info("created vault at %s", self.path)
        return True

    def load(self, passphrase: Passphrase) -> bool:
        """Read, verify and decrypt the vault at ``path``."""
        self._wipe_state()
        self._clear_error()
        key = None
        plaintext = None
        loaded = False
        try:
            raw = read_vault_file(self.path)
            # Validation phase: nothing below runs on a malformed header.
            header = parse_header(raw)
            logger.debug("header ok, deriving key with %s", kdf_params_to_dict(header.kdf))
            key = derive_key(passphrase, header.kdf)
            plaintext = decrypt(key, header.nonce, header.ciphertext, header_aad(header))
            entries = decode_entries(plaintext)
            loaded = True
        except VaultError as e:
            return self._fail("load", e)
        finally:
            if plaintext is not None:
                plaintext.wipe()
            if not loaded and key is not None:
                key.wipe()

        self._key = key
        self._kdf = header.kdf
        self._nonce = SecretBuffer.from_bytes(header.nonce)
        self._entries = entries
        self._state = VaultState.KEYED
        logger.info("loaded %d entries from %s", len(entries), self.path)
        return True

    def save(self) -> bool:
        """Encrypt all entries under a fresh nonce and atomically replace the file."""
        self._clear_error()
        if self._key is None or self._kdf is None:
            return self._fail(
                "save", NotKeyedError("Key is not derived; call init_new() or load() first.")
            )

        plaintext = None
        try:
            plaintext = encode_entries(self._entries)
            nonce = generate_nonce()
            header = make_header(self._kdf, nonce)
            ciphertext = encrypt(self._key, nonce, plaintext, header_aad(header))
            header = make_header(self._kdf, nonce, ciphertext)
            write_atomic(self.path, dump_header(header).encode("utf-8"))
        except VaultError as e:
            return self._fail("save", e)
        finally:
            if plaintext is not None:
                plaintext.wipe()

        if self._nonce is not None:
            self._nonce.wipe()
        self._nonce = SecretBuffer.from_bytes(nonce)
        self._state = VaultState.KEYED
        logger.info("saved %d entries to %s", len(self._entries), self.path)
        return True

    def close(self) -> None:
        """Wipe key, nonce and every secret, returning to the unkeyed state."""
        self._wipe_state()

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        if getattr(self, "_state", None) is not None:
            self._wipe_state()

    # ------------------------------------------------------------------
    # Mutations (memory only; save() persists)
    # ------------------------------------------------------------------

    def add_entry(self, entry: Entry) -> bool:
        self._clear_error()
        if self._key is None:
            return self._fail("add", NotKeyedError("Vault is locked; call init_new() or load() first."))
        self._entries.append(entry)
        self._state = VaultState.DIRTY
        return True

    def add(self, site: str, username: str, secret: Union[str, SecretBuffer]) -> bool:
        self._clear_error()
        try:
            entry = Entry(site, username, secret)
        except UnicodeEncodeError:
            return self._fail("add", BodyFormatError("secret is not encodable as UTF-8"))
        return self.add_entry(entry)

    def remove_by_site(self, site: str) -> int:
        """Drop every entry whose site equals ``site`` exactly; returns how many."""
        self._clear_error()
        if self._key is None:
            self._fail("delete", NotKeyedError("Vault is locked; call init_new() or load() first."))
            return 0
        kept = []
        removed = 0
        for entry in self._entries:
            if entry.site == site:
                entry.wipe()
                removed += 1
            else:
                kept.append(entry)
        self._entries = kept
        if removed:
            self._state = VaultState.DIRTY
        return removed

    def __repr__(self):
        return f"Vault(path={str(self.path)!r}, state={self._state.value})"
