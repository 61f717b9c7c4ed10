"""Security primitives for pwvault.

This package provides:
- SecretBuffer and secure-erase helpers for every secret-bearing buffer
- Argon2id key derivation from the master passphrase
- XChaCha20-Poly1305 authenticated encryption of the vault body

It knows nothing about files or headers; ``pwvault.core`` wires it together.
"""

from .memory import SecretBuffer, secure_zero, scrub_bytes
from .kdf import KdfParams, generate_salt, derive_key, kdf_params_to_dict
from .crypto import init, random_bytes, generate_nonce, encrypt, decrypt

__all__ = [
    "SecretBuffer",
    "secure_zero",
    "scrub_bytes",
    "KdfParams",
    "generate_salt",
    "derive_key",
    "kdf_params_to_dict",
    "init",
    "random_bytes",
    "generate_nonce",
    "encrypt",
    "decrypt",
]
