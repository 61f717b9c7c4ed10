from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, Type, hash_secret_raw

from pwvault.core.exceptions import KeyDerivationError
from . import crypto
from .memory import SecretBuffer, scrub_bytes

SALT_SIZE = 16
KEY_SIZE = crypto.KEY_SIZE

# libsodium crypto_pwhash_argon2id bounds
OPSLIMIT_MIN = 1
OPSLIMIT_MAX = 0xFFFFFFFF
MEMLIMIT_MIN = 8192
MEMLIMIT_MAX = 0xFFFFFFFF * 1024

# Costs for newly created vaults
DEFAULT_OPSLIMIT = 3
DEFAULT_MEMLIMIT = 64 * 1024 * 1024


@dataclass(frozen=True)
class KdfParams:
    """Non-secret Argon2id parameters stored in the vault header."""

    opslimit: int
    memlimit: int
    salt: bytes

    @classmethod
    def generate(cls, opslimit: Optional[int] = None, memlimit: Optional[int] = None) -> "KdfParams":
        # Fresh salt; only ever called when a vault is created.
        return cls(
            opslimit=DEFAULT_OPSLIMIT if opslimit is None else opslimit,
            memlimit=DEFAULT_MEMLIMIT if memlimit is None else memlimit,
            salt=generate_salt(),
        )


def generate_salt(length: int = SALT_SIZE) -> bytes:
    """Return a cryptographically secure random salt."""
    return crypto.random_bytes(length)


def derive_key(passphrase: Union[str, bytes, SecretBuffer], params: KdfParams) -> SecretBuffer:
    """
    Derive the vault key from a passphrase using Argon2id.

    Costs map onto argon2 the way libsodium's crypto_pwhash does it
    (time_cost=opslimit, memory_cost=memlimit KiB-floored, parallelism=1),
    so keys are interchangeable with libsodium-written vaults.
    Raises KeyDerivationError on bad parameters or a failing KDF call.
    """
    crypto.init()

    if len(params.salt) != SALT_SIZE:
        raise KeyDerivationError(
            f"salt must be exactly {SALT_SIZE} bytes, got {len(params.salt)}"
        )
    if not OPSLIMIT_MIN <= params.opslimit <= OPSLIMIT_MAX:
        raise KeyDerivationError(f"opslimit out of range: {params.opslimit}")
    if not MEMLIMIT_MIN <= params.memlimit <= MEMLIMIT_MAX:
        raise KeyDerivationError(f"memlimit out of range: {params.memlimit}")

    # A caller-supplied SecretBuffer stays owned by the caller.
    owned = not isinstance(passphrase, SecretBuffer)
    if not owned:
        if passphrase.wiped:
            raise KeyDerivationError("passphrase buffer has been wiped")
        secret = passphrase
    elif isinstance(passphrase, str):
        try:
            secret = SecretBuffer.from_text(passphrase)
        except UnicodeEncodeError:
            raise KeyDerivationError("passphrase is not encodable as UTF-8") from None
    else:
        secret = SecretBuffer.from_bytes(passphrase)

    raw = None
    try:
        with secret.expose() as pw:
            raw = hash_secret_raw(
                secret=pw,
                salt=bytes(params.salt),
                time_cost=params.opslimit,
                memory_cost=params.memlimit // 1024,
                parallelism=1,
                hash_len=KEY_SIZE,
                type=Type.ID,
                version=ARGON2_VERSION,
            )
        return SecretBuffer.from_bytes(raw)
    except HashingError as e:
        raise KeyDerivationError(f"argon2id derivation failed: {e}") from e
    finally:
        if owned:
            secret.wipe()
        if raw is not None:
            scrub_bytes(raw)


def kdf_params_to_dict(params: KdfParams) -> Dict:
    return {
        "algo": "argon2id",
        "salt": params.salt.hex(),
        "opslimit": params.opslimit,
        "memlimit": params.memlimit,
    }
