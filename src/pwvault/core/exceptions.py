"""
Exceptions for the pwvault core
Everything derives from VaultError so the orchestrator has a single error catcher
"""


class VaultError(Exception):
    # general container for errors
    pass


class VaultIOError(VaultError):
    # raised when the vault file is missing, unreadable or unwritable
    pass


class FormatError(VaultError):
    # raised when the vault file is not a parseable document at all
    pass


class HeaderError(VaultError):
    # raised on unsupported version, missing field or wrong-length salt/nonce
    pass


class KeyDerivationError(VaultError):
    # raised when the KDF call itself fails (environmental, never retried)
    pass


class AuthenticationError(VaultError):
    # raised on AEAD tag mismatch: wrong passphrase or tampered file
    pass


class BodyFormatError(VaultError):
    # raised when decrypted plaintext is not a valid entry sequence
    pass


class NotKeyedError(VaultError):
    # raised when an operation needs a derived key and there is none
    pass
