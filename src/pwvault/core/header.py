"""
Vault file header codec

File layout (one JSON document, 2-space indent, sorted keys):

    {
      "ciphertext_b64": <base64: AEAD output = plaintext length + 16-byte tag>,
      "kdf": {"memlimit": <int>, "opslimit": <int>, "salt_b64": <base64, 16 bytes>},
      "nonce_b64": <base64, 24 bytes>,
      "version": 1
    }

parse_header() is the validation phase of a load: it is pure, strict, and
the VaultHeader it returns is the only input key derivation accepts. Nothing
malformed gets as far as the passphrase.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict, Union

from .exceptions import AuthenticationError, FormatError, HeaderError
from .models import KdfParams, VaultHeader
from ..security import crypto
from ..security.kdf import (
    MEMLIMIT_MAX,
    MEMLIMIT_MIN,
    OPSLIMIT_MAX,
    OPSLIMIT_MIN,
    SALT_SIZE,
)

VERSION = 1
SUPPORTED_VERSIONS = (VERSION,)


def make_header(kdf: KdfParams, nonce: bytes, ciphertext: bytes = b"") -> VaultHeader:
    return VaultHeader(version=VERSION, kdf=kdf, nonce=bytes(nonce), ciphertext=bytes(ciphertext))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _kdf_doc(kdf: KdfParams) -> Dict[str, Any]:
    return {
        "opslimit": kdf.opslimit,
        "memlimit": kdf.memlimit,
        "salt_b64": _b64(kdf.salt),
    }


def header_aad(header: VaultHeader) -> bytes:
    """
    Associated data binding version and KDF parameters to the ciphertext.

    Canonical JSON (sorted keys, no whitespace) so the same header always
    produces the same bytes. The nonce is already an AEAD input.
    """
    doc = {"version": header.version, "kdf": _kdf_doc(header.kdf)}
    return json.dumps(doc, separators=(",", ":"), sort_keys=True).encode("utf-8")


def dump_header(header: VaultHeader) -> str:
    doc = {
        "version": header.version,
        "kdf": _kdf_doc(header.kdf),
        "nonce_b64": _b64(header.nonce),
        "ciphertext_b64": _b64(header.ciphertext),
    }
    return json.dumps(doc, indent=2, sort_keys=True) + "\n"


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def _require(container: Dict[str, Any], key: str, kind, where: str):
    if key not in container:
        raise HeaderError(f"missing field: {where}{key}")
    value = container[key]
    # bool is an int subclass; a flag is never a valid cost or version
    if not isinstance(value, kind) or isinstance(value, bool):
        raise HeaderError(f"field {where}{key} has the wrong type")
    return value


def _decode_fixed(value: str, expected: int, name: str) -> bytes:
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HeaderError(f"{name} is not valid base64") from None
    if len(raw) != expected:
        raise HeaderError(f"{name} must decode to {expected} bytes, got {len(raw)}")
    return raw


def _decode_ciphertext(value: str) -> bytes:
    # Anything that does not round-trip exactly cannot be what save() wrote.
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise AuthenticationError("ciphertext is not authentic") from None
    if _b64(raw) != value or len(raw) < crypto.TAG_SIZE:
        raise AuthenticationError("ciphertext is not authentic")
    return raw


def parse_header(raw: Union[str, bytes]) -> VaultHeader:
    """
    Strictly parse a vault document.

    Raises FormatError if it is not a JSON object, HeaderError for an
    unsupported version, a missing/mistyped field, an out-of-range cost or
    a wrong-length salt/nonce, and AuthenticationError if the ciphertext
    field cannot possibly be authentic.
    """
    try:
        doc = json.loads(raw)
    except (ValueError, RecursionError):
        raise FormatError("vault is not valid JSON") from None
    if not isinstance(doc, dict):
        raise FormatError("vault document must be a JSON object")

    version = _require(doc, "version", int, "")
    if version not in SUPPORTED_VERSIONS:
        raise HeaderError(f"unsupported vault version: {version}")

    kdf_doc = _require(doc, "kdf", dict, "")
    opslimit = _require(kdf_doc, "opslimit", int, "kdf.")
    memlimit = _require(kdf_doc, "memlimit", int, "kdf.")
    if not OPSLIMIT_MIN <= opslimit <= OPSLIMIT_MAX:
        raise HeaderError(f"kdf.opslimit out of range: {opslimit}")
    if not MEMLIMIT_MIN <= memlimit <= MEMLIMIT_MAX:
        raise HeaderError(f"kdf.memlimit out of range: {memlimit}")
    salt = _decode_fixed(_require(kdf_doc, "salt_b64", str, "kdf."), SALT_SIZE, "kdf.salt_b64")

    nonce = _decode_fixed(_require(doc, "nonce_b64", str, ""), crypto.NONCE_SIZE, "nonce_b64")
    ciphertext = _decode_ciphertext(_require(doc, "ciphertext_b64", str, ""))

    return VaultHeader(
        version=version,
        kdf=KdfParams(opslimit=opslimit, memlimit=memlimit, salt=salt),
        nonce=nonce,
        ciphertext=ciphertext,
    )
