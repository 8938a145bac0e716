"""Refresh token encryption.

Refresh tokens are the long-lived secret in a cookie session, so they are
sealed with AES-256-GCM before they leave the server. The cookie value is
``base64url(nonce).base64url(ciphertext)``.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_BYTES = 12
KEY_HEX_LENGTH = 64


class Cipher(Protocol):
    """Encrypt/decrypt pair injected into every provider config."""

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, token: str) -> str: ...


def _b64e(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


def _b64d(text: str) -> bytes:
    return base64.urlsafe_b64decode(text.encode("ascii"))


class TokenCipher:
    """AES-GCM cipher keyed by a 32-byte secret."""

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError("TokenCipher requires a 32-byte key")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, key_hex: str) -> TokenCipher:
        """Build a cipher from a 64 character hex string.

        Raises:
            ValueError: If the key is not 64 hex characters
        """
        key_hex = (key_hex or "").strip()
        if len(key_hex) != KEY_HEX_LENGTH:
            raise ValueError(f"encryption key must be {KEY_HEX_LENGTH} hex characters")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise ValueError("encryption key must be hex encoded") from e
        return cls(key)

    @classmethod
    def generate(cls) -> TokenCipher:
        """Build a cipher with a random key (process lifetime only)."""
        return cls(os.urandom(32))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_BYTES)
        ct = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return f"{_b64e(nonce)}.{_b64e(ct)}"

    def decrypt(self, token: str) -> str:
        """Open a sealed value.

        Raises:
            ValueError: If the value is malformed or fails authentication
        """
        nonce_text, sep, ct_text = token.partition(".")
        if not sep or not nonce_text or not ct_text:
            raise ValueError("encrypted value has invalid format")
        try:
            nonce = _b64d(nonce_text)
            ct = _b64d(ct_text)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise ValueError("encrypted value is not valid base64") from e
        if len(nonce) != NONCE_BYTES:
            raise ValueError("encrypted value has invalid nonce")
        try:
            return self._aead.decrypt(nonce, ct, None).decode("utf-8")
        except InvalidTag as e:
            raise ValueError("encrypted value failed authentication") from e
