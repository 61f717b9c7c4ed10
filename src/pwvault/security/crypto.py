"""AEAD engine: XChaCha20-Poly1305 over the serialized entry collection.

Primitives come from libsodium through PyNaCl's low-level bindings:

- key: 32 bytes
- nonce: 24 bytes, random per encryption
- output: ciphertext || 16-byte Poly1305 tag

Decryption failures are reported as a single :class:`AuthenticationError`;
a wrong key and a modified ciphertext look the same.
"""
from __future__ import annotations

import threading
from typing import Optional

import nacl.utils
from nacl import bindings
from nacl.exceptions import CryptoError

from pwvault.core.exceptions import AuthenticationError, VaultError
from .memory import SecretBuffer, scrub_bytes


KEY_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_KEYBYTES
NONCE_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_NPUBBYTES
TAG_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_ABYTES

_initialized = False
_init_lock = threading.Lock()


def init() -> None:
    """Initialize libsodium once per process. Idempotent."""
    global _initialized
    if _initialized:
        return
    with _init_lock:
        if _initialized:
            return
        try:
            bindings.sodium_init()
        except RuntimeError as e:
            raise VaultError(f"could not initialize libsodium: {e}") from e
        _initialized = True


def is_initialized() -> bool:
    return _initialized


def random_bytes(n: int) -> bytes:
    """Return ``n`` bytes from the libsodium CSPRNG."""
    init()
    return nacl.utils.random(n)


def generate_nonce() -> bytes:
    return random_bytes(NONCE_SIZE)


def _check_sizes(key: SecretBuffer, nonce: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValueError(f"key must be {KEY_SIZE} bytes, got {len(key)}")
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")


def encrypt(
    key: SecretBuffer,
    nonce: bytes,
    plaintext: SecretBuffer,
    aad: Optional[bytes] = None,
) -> bytes:
    """Encrypt ``plaintext`` and return ``ciphertext || tag``.

    The plaintext buffer is not consumed; its owner still has to wipe it.
    """
    init()
    _check_sizes(key, nonce)
    try:
        with key.expose() as k, plaintext.expose() as pt:
            return bindings.crypto_aead_xchacha20poly1305_ietf_encrypt(
                pt, aad, bytes(nonce), k
            )
    except CryptoError as e:
        raise VaultError("encryption failed") from e


def decrypt(
    key: SecretBuffer,
    nonce: bytes,
    ciphertext: bytes,
    aad: Optional[bytes] = None,
) -> SecretBuffer:
    """Verify and decrypt ``ciphertext``; the plaintext comes back owned."""
    init()
    _check_sizes(key, nonce)
    if len(ciphertext) < TAG_SIZE:
        raise AuthenticationError("ciphertext is shorter than the authentication tag")

    pt = None
    try:
        with key.expose() as k:
            pt = bindings.crypto_aead_xchacha20poly1305_ietf_decrypt(
                bytes(ciphertext), aad, bytes(nonce), k
            )
        return SecretBuffer.from_bytes(pt)
    except CryptoError as e:
        raise AuthenticationError("authentication failed") from e
    finally:
        if pt is not None:
            scrub_bytes(pt)
