import os

import pytest
from unittest.mock import patch

from pwvault.core.exceptions import AuthenticationError
from pwvault.security import crypto
from pwvault.security.crypto import (
    KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    decrypt,
    encrypt,
    generate_nonce,
)
from pwvault.security.memory import SecretBuffer


@pytest.fixture
def key():
    return SecretBuffer.from_bytes(os.urandom(KEY_SIZE))


@pytest.fixture
def plaintext():
    return SecretBuffer.from_bytes(b'[{"site":"a","username":"b","password":"c"}]')


def test_sizes():
    assert KEY_SIZE == 32
    assert NONCE_SIZE == 24
    assert TAG_SIZE == 16


def test_init_is_idempotent():
    crypto.init()
    with patch("pwvault.security.crypto.bindings.sodium_init") as sodium_init:
        crypto.init()
        crypto.init()
        sodium_init.assert_not_called()
    assert crypto.is_initialized()


def test_init_runs_once_when_fresh():
    with patch.object(crypto, "_initialized", False), \
            patch("pwvault.security.crypto.bindings.sodium_init") as sodium_init:
        crypto.init()
        crypto.init()
        sodium_init.assert_called_once()


def test_generate_nonce_fresh():
    a, b = generate_nonce(), generate_nonce()
    assert len(a) == NONCE_SIZE
    assert a != b


def test_encrypt_decrypt_roundtrip(key, plaintext):
    nonce = generate_nonce()
    ct = encrypt(key, nonce, plaintext)
    assert len(ct) == len(plaintext) + TAG_SIZE
    out = decrypt(key, nonce, ct)
    assert isinstance(out, SecretBuffer)
    assert out == plaintext


def test_encrypt_does_not_consume_plaintext(key, plaintext):
    encrypt(key, generate_nonce(), plaintext)
    assert not plaintext.wiped


def test_roundtrip_with_associated_data(key, plaintext):
    nonce = generate_nonce()
    ct = encrypt(key, nonce, plaintext, b'{"version":1}')
    assert decrypt(key, nonce, ct, b'{"version":1}') == plaintext


def test_associated_data_mismatch_fails(key, plaintext):
    nonce = generate_nonce()
    ct = encrypt(key, nonce, plaintext, b'{"version":1}')
    with pytest.raises(AuthenticationError):
        decrypt(key, nonce, ct, b'{"version":2}')
    with pytest.raises(AuthenticationError):
        decrypt(key, nonce, ct)


def test_wrong_key_fails(key, plaintext):
    nonce = generate_nonce()
    ct = encrypt(key, nonce, plaintext)
    other = SecretBuffer.from_bytes(os.urandom(KEY_SIZE))
    with pytest.raises(AuthenticationError):
        decrypt(other, nonce, ct)


def test_wrong_nonce_fails(key, plaintext):
    ct = encrypt(key, generate_nonce(), plaintext)
    with pytest.raises(AuthenticationError):
        decrypt(key, generate_nonce(), ct)


def test_every_flipped_byte_is_detected(key, plaintext):
    nonce = generate_nonce()
    ct = encrypt(key, nonce, plaintext)
    for i in range(len(ct)):
        tampered = bytearray(ct)
        tampered[i] ^= 0x01
        with pytest.raises(AuthenticationError):
            decrypt(key, nonce, bytes(tampered))


def test_truncated_ciphertext_fails(key):
    with pytest.raises(AuthenticationError, match="shorter than the authentication tag"):
        decrypt(key, generate_nonce(), b"\x00" * (TAG_SIZE - 1))


def test_empty_plaintext_roundtrip(key):
    nonce = generate_nonce()
    ct = encrypt(key, nonce, SecretBuffer(0))
    assert len(ct) == TAG_SIZE
    assert len(decrypt(key, nonce, ct)) == 0


@pytest.mark.parametrize("key_len", [0, 16, 31, 33])
def test_wrong_key_length_rejected(key_len, plaintext):
    bad = SecretBuffer.from_bytes(b"k" * key_len)
    with pytest.raises(ValueError, match="key must be 32 bytes"):
        encrypt(bad, generate_nonce(), plaintext)
    with pytest.raises(ValueError, match="key must be 32 bytes"):
        decrypt(bad, generate_nonce(), b"\x00" * 32)


@pytest.mark.parametrize("nonce_len", [0, 12, 23, 25])
def test_wrong_nonce_length_rejected(nonce_len, key, plaintext):
    with pytest.raises(ValueError, match="nonce must be 24 bytes"):
        encrypt(key, b"n" * nonce_len, plaintext)
    with pytest.raises(ValueError, match="nonce must be 24 bytes"):
        decrypt(key, b"n" * nonce_len, b"\x00" * 32)
