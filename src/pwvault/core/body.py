"""
Entry-collection codec for the decrypted vault body.

The plaintext is a JSON array of {"site", "username", "password"} objects.
The stdlib json module would route every password through an immutable str
(and decode the whole plaintext into one), so this codec works directly on
the bytes instead:

- encode_entries() measures the exact output size first, then fills a
  SecretBuffer of that size, so the buffer is never grown or copied.
- decode_entries() scans the plaintext in place and unescapes each password
  straight into its own, exactly sized SecretBuffer.

Only the secret field gets this treatment; site and username are plain str.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from .exceptions import BodyFormatError
from .models import Entry
from ..security.memory import SecretBuffer

_OPEN = b'{"site":"'
_MID_USER = b'","username":"'
_MID_PASS = b'","password":"'
_CLOSE = b'"}'
_FIXED_PER_ENTRY = len(_OPEN) + len(_MID_USER) + len(_MID_PASS) + len(_CLOSE)

_SHORT_ESCAPES = {
    0x22: b'\\"',
    0x5C: b"\\\\",
    0x08: b"\\b",
    0x0C: b"\\f",
    0x0A: b"\\n",
    0x0D: b"\\r",
    0x09: b"\\t",
}
_UNESCAPES = {
    0x22: 0x22,
    0x5C: 0x5C,
    0x2F: 0x2F,
    0x62: 0x08,
    0x66: 0x0C,
    0x6E: 0x0A,
    0x72: 0x0D,
    0x74: 0x09,
}
_HEX = b"0123456789abcdef"
_WS = b" \t\n\r"
_FIELDS = ("site", "username", "password")


def _valid_utf8(data) -> bool:
    """Check well-formed UTF-8 in place, without decoding to str."""
    i, n = 0, len(data)
    while i < n:
        b = data[i]
        if b < 0x80:
            i += 1
            continue
        # second-byte range excludes overlongs, surrogates and > U+10FFFF
        if 0xC2 <= b <= 0xDF:
            need, lo, hi = 1, 0x80, 0xBF
        elif b == 0xE0:
            need, lo, hi = 2, 0xA0, 0xBF
        elif b == 0xED:
            need, lo, hi = 2, 0x80, 0x9F
        elif 0xE1 <= b <= 0xEF:
            need, lo, hi = 2, 0x80, 0xBF
        elif b == 0xF0:
            need, lo, hi = 3, 0x90, 0xBF
        elif 0xF1 <= b <= 0xF3:
            need, lo, hi = 3, 0x80, 0xBF
        elif b == 0xF4:
            need, lo, hi = 3, 0x80, 0x8F
        else:
            return False
        if i + need >= n or not lo <= data[i + 1] <= hi:
            return False
        for j in range(i + 2, i + need + 1):
            if not 0x80 <= data[j] <= 0xBF:
                return False
        i += need + 1
    return True


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------

def _escaped_len(data) -> int:
    n = 0
    for b in data:
        if b in _SHORT_ESCAPES:
            n += 2
        elif b < 0x20:
            n += 6
        else:
            n += 1
    return n


def _write(out: memoryview, pos: int, chunk: bytes) -> int:
    out[pos:pos + len(chunk)] = chunk
    return pos + len(chunk)


def _write_escaped(out: memoryview, pos: int, data) -> int:
    for b in data:
        esc = _SHORT_ESCAPES.get(b)
        if esc is not None:
            pos = _write(out, pos, esc)
        elif b < 0x20:
            pos = _write(out, pos, b"\\u00" + bytes((_HEX[b >> 4], _HEX[b & 0xF])))
        else:
            out[pos] = b
            pos += 1
    return pos


def encode_entries(entries: Sequence[Entry]) -> SecretBuffer:
    """
    Serialize entries into a freshly allocated, exactly sized SecretBuffer.

    Raises BodyFormatError if an entry cannot be written as JSON text: a
    site or username that is not encodable, or a secret that was wiped or
    is not valid UTF-8.
    """
    plain: List[Tuple[bytes, bytes, SecretBuffer]] = []
    for e in entries:
        try:
            plain.append((e.site.encode("utf-8"), e.username.encode("utf-8"), e.secret))
        except UnicodeEncodeError:
            raise BodyFormatError(f"entry {len(plain)}: site or username is not encodable as UTF-8") from None

    size = 2 + max(len(plain) - 1, 0)
    for i, (site, user, secret) in enumerate(plain):
        if secret.wiped:
            raise BodyFormatError(f"entry {i}: secret has been wiped")
        with secret.view() as sv:
            if not _valid_utf8(sv):
                raise BodyFormatError(f"entry {i}: secret is not valid UTF-8")
            size += _FIXED_PER_ENTRY + _escaped_len(site) + _escaped_len(user) + _escaped_len(sv)

    buf = SecretBuffer(size)
    try:
        with buf.view() as out:
            pos = _write(out, 0, b"[")
            for i, (site, user, secret) in enumerate(plain):
                if i:
                    pos = _write(out, pos, b",")
                pos = _write(out, pos, _OPEN)
                pos = _write_escaped(out, pos, site)
                pos = _write(out, pos, _MID_USER)
                pos = _write_escaped(out, pos, user)
                pos = _write(out, pos, _MID_PASS)
                with secret.view() as sv:
                    pos = _write_escaped(out, pos, sv)
                pos = _write(out, pos, _CLOSE)
            pos = _write(out, pos, b"]")
        if pos != size:
            raise RuntimeError(f"body size mismatch: wrote {pos} of {size} bytes")
    except BaseException:
        buf.wipe()
        raise
    return buf


# ----------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------

def _utf8_len(cp: int) -> int:
    if cp < 0x80:
        return 1
    if cp < 0x800:
        return 2
    if cp < 0x10000:
        return 3
    return 4


def _put_utf8(out, pos: int, cp: int) -> int:
    if cp < 0x80:
        out[pos] = cp
        return pos + 1
    if cp < 0x800:
        out[pos] = 0xC0 | (cp >> 6)
        out[pos + 1] = 0x80 | (cp & 0x3F)
        return pos + 2
    if cp < 0x10000:
        out[pos] = 0xE0 | (cp >> 12)
        out[pos + 1] = 0x80 | ((cp >> 6) & 0x3F)
        out[pos + 2] = 0x80 | (cp & 0x3F)
        return pos + 3
    out[pos] = 0xF0 | (cp >> 18)
    out[pos + 1] = 0x80 | ((cp >> 12) & 0x3F)
    out[pos + 2] = 0x80 | ((cp >> 6) & 0x3F)
    out[pos + 3] = 0x80 | (cp & 0x3F)
    return pos + 4


class _Scanner:
    """Cursor over the plaintext; never copies the data it walks."""

    def __init__(self, data: memoryview):
        self.data = data
        self.pos = 0

    def fail(self, msg: str):
        raise BodyFormatError(f"{msg} at offset {self.pos}")

    def skip_ws(self) -> None:
        data = self.data
        while self.pos < len(data) and data[self.pos] in _WS:
            self.pos += 1

    def peek(self) -> int:
        self.skip_ws()
        if self.pos >= len(self.data):
            self.fail("unexpected end of body")
        return self.data[self.pos]

    def expect(self, ch: bytes) -> None:
        if self.peek() != ch[0]:
            self.fail(f"expected {ch.decode()!r}")
        self.pos += 1

    def _hex4(self, at: int) -> int:
        if at + 4 > len(self.data):
            self.fail("truncated \\u escape")
        value = 0
        for b in self.data[at:at + 4]:
            digit = _HEX.find(bytes((b,)).lower())
            if digit < 0:
                self.fail("invalid \\u escape")
            value = (value << 4) | digit
        return value

    def _code_point(self, at: int) -> Tuple[int, int]:
        # at points just past "\u"; returns (code point, next index)
        cp = self._hex4(at)
        at += 4
        if 0xDC00 <= cp <= 0xDFFF:
            self.fail("unpaired low surrogate")
        if 0xD800 <= cp <= 0xDBFF:
            if self.data[at:at + 2] != b"\\u":
                self.fail("unpaired high surrogate")
            low = self._hex4(at + 2)
            if not 0xDC00 <= low <= 0xDFFF:
                self.fail("invalid surrogate pair")
            cp = 0x10000 + ((cp - 0xD800) << 10) + (low - 0xDC00)
            at += 6
        return cp, at

    def scan_string(self) -> Tuple[int, int, int]:
        """Validate the string at the cursor; return (start, end, decoded length)."""
        self.expect(b'"')
        data = self.data
        start = i = self.pos
        size = 0
        while True:
            if i >= len(data):
                self.pos = i
                self.fail("unterminated string")
            b = data[i]
            if b == 0x22:
                break
            if b < 0x20:
                self.pos = i
                self.fail("control character in string")
            if b != 0x5C:
                size += 1
                i += 1
                continue
            if i + 1 >= len(data):
                self.pos = i
                self.fail("unterminated escape")
            kind = data[i + 1]
            if kind == 0x75:
                self.pos = i
                cp, i = self._code_point(i + 2)
                size += _utf8_len(cp)
            elif kind in _UNESCAPES:
                size += 1
                i += 2
            else:
                self.pos = i
                self.fail("invalid escape")
        self.pos = i + 1
        return start, i, size

    def unescape_into(self, start: int, end: int, out) -> None:
        data = self.data
        i, pos = start, 0
        while i < end:
            b = data[i]
            if b != 0x5C:
                out[pos] = b
                pos += 1
                i += 1
            elif data[i + 1] == 0x75:
                cp, i = self._code_point(i + 2)
                pos = _put_utf8(out, pos, cp)
            else:
                out[pos] = _UNESCAPES[data[i + 1]]
                pos += 1
                i += 2

    def read_text(self) -> str:
        start, end, size = self.scan_string()
        out = bytearray(size)
        self.unescape_into(start, end, out)
        try:
            return out.decode("utf-8")
        except UnicodeDecodeError:
            self.fail("string is not valid UTF-8")

    def read_secret(self) -> SecretBuffer:
        start, end, size = self.scan_string()
        secret = SecretBuffer(size)
        try:
            with secret.view() as out:
                self.unescape_into(start, end, out)
                if not _valid_utf8(out):
                    self.pos = start
                    self.fail("string is not valid UTF-8")
        except BaseException:
            secret.wipe()
            raise
        return secret

    def read_entry(self) -> Entry:
        self.expect(b"{")
        fields = {}
        try:
            while True:
                if self.peek() != 0x22:
                    self.fail("expected a field name")
                name = self.read_text()
                if name not in _FIELDS:
                    self.fail(f"unknown field {name!r}")
                if name in fields:
                    self.fail(f"duplicate field {name!r}")
                self.expect(b":")
                if self.peek() != 0x22:
                    self.fail(f"field {name!r} must be a string")
                fields[name] = self.read_secret() if name == "password" else self.read_text()
                if self.peek() == 0x2C:
                    self.pos += 1
                    continue
                self.expect(b"}")
                break
            missing = [f for f in _FIELDS if f not in fields]
            if missing:
                self.fail(f"entry is missing {', '.join(missing)}")
        except BaseException:
            secret = fields.get("password")
            if secret is not None:
                secret.wipe()
            raise
        return Entry(fields["site"], fields["username"], fields["password"])


def decode_entries(plaintext: SecretBuffer) -> List[Entry]:
    """
    Parse the decrypted body into entries.

    Raises BodyFormatError on anything but a well-formed array of entry
    objects; secrets parsed before the failure are wiped.
    """
    entries: List[Entry] = []
    try:
        with plaintext.view() as data:
            scanner = _Scanner(data)
            scanner.expect(b"[")
            if scanner.peek() == 0x5D:
                scanner.pos += 1
            else:
                while True:
                    entries.append(scanner.read_entry())
                    if scanner.peek() == 0x2C:
                        scanner.pos += 1
                        continue
                    scanner.expect(b"]")
                    break
            scanner.skip_ws()
            if scanner.pos != len(data):
                scanner.fail("trailing data after entry list")
    except BaseException:
        for entry in entries:
            entry.wipe()
        raise
    return entries
