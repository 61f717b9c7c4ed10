"""Secure-erase helpers and the owning SecretBuffer container.

Every secret-bearing byte sequence in pwvault (passphrase, derived key,
decrypted plaintext, entry secrets) lives in a :class:`SecretBuffer`. A
buffer is allocated once at its final size and never grows, so no stale
copies are left behind by reallocation. Its bytes are zeroed on
:meth:`SecretBuffer.wipe`, on context-manager exit, and on garbage collection.

Python's memory model gives no hard guarantee about erasure. Libraries such as
argon2-cffi and PyNaCl only accept immutable ``bytes``; for those temporary
copies :func:`scrub_bytes` zeroes the object's storage in place on CPython.
It must only be handed objects the caller created and exclusively owns.
"""
from __future__ import annotations

import ctypes
import hmac
import platform
from contextlib import contextmanager
from typing import Iterator, Union

_CPYTHON = platform.python_implementation() == "CPython"
# ob_sval starts one byte before the end of the fixed bytes header.
_BYTES_DATA_OFFSET = bytes.__basicsize__ - 1


def secure_zero(buf: Union[bytearray, memoryview]) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    n = len(buf)
    if n == 0:
        return
    if isinstance(buf, memoryview) and buf.readonly:
        raise TypeError("cannot zero a read-only buffer")
    ctypes.memset(ctypes.addressof(ctypes.c_char.from_buffer(buf)), 0, n)


def scrub_bytes(data: bytes) -> None:
    """Zero the storage of an immutable ``bytes`` object we exclusively own.

    Objects shorter than two bytes are skipped: CPython shares the empty and
    single-byte objects process wide.
    """
    if not _CPYTHON or type(data) is not bytes or len(data) < 2:
        return
    ctypes.memset(id(data) + _BYTES_DATA_OFFSET, 0, len(data))


class SecretBuffer:
    """Fixed-capacity byte buffer that zeroes itself on release."""

    __slots__ = ("_data", "_wiped", "__weakref__")

    def __init__(self, size: int):
        if size < 0:
            raise ValueError("size must be non-negative")
        self._data = bytearray(size)
        self._wiped = False

    @classmethod
    def from_bytes(cls, data) -> "SecretBuffer":
        """Copy ``data`` into a new buffer. The caller still owns ``data``."""
        buf = cls(len(data))
        buf._data[:] = data
        return buf

    @classmethod
    def from_text(cls, text: str) -> "SecretBuffer":
        raw = text.encode("utf-8")
        try:
            return cls.from_bytes(raw)
        finally:
            scrub_bytes(raw)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _require_live(self) -> None:
        if self._wiped:
            raise ValueError("SecretBuffer has been wiped")

    def view(self) -> memoryview:
        """Writable view over the buffer; exporting it also pins its size."""
        self._require_live()
        return memoryview(self._data)

    @contextmanager
    def expose(self) -> Iterator[bytes]:
        """Yield a temporary ``bytes`` copy that is scrubbed on exit.

        Use only to hand the secret to a library that insists on ``bytes``.
        """
        self._require_live()
        raw = bytes(self._data)
        try:
            yield raw
        finally:
            scrub_bytes(raw)

    def text(self) -> str:
        """Decode as UTF-8 for display. The returned str cannot be wiped."""
        self._require_live()
        return self._data.decode("utf-8")

    def copy(self) -> "SecretBuffer":
        self._require_live()
        return SecretBuffer.from_bytes(self._data)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def wipe(self) -> None:
        """Zero the bytes. Safe to call more than once."""
        data = getattr(self, "_data", None)
        if data is not None:
            secure_zero(data)
        self._wiped = True

    @property
    def wiped(self) -> bool:
        return self._wiped

    def __enter__(self) -> "SecretBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self):
        self.wipe()

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SecretBuffer):
            return NotImplemented
        if len(self) != len(other):
            return False
        return hmac.compare_digest(self._data, other._data)

    __hash__ = None

    def __copy__(self) -> "SecretBuffer":
        return self.copy()

    def __deepcopy__(self, memo) -> "SecretBuffer":
        return self.copy()

    def __reduce__(self):
        raise TypeError("SecretBuffer cannot be pickled")

    def __repr__(self) -> str:
        return f"<SecretBuffer len={len(self._data)} wiped={self._wiped}>"
