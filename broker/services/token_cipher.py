"""Authenticated encryption for upstream tokens held in the session store."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from broker.core.config import decode_key_material
from broker.core.errors import CryptoError

_NONCE_BYTES = 12
_SEPARATOR = "."


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def load_encryption_key(encoded: str) -> AESGCM:
    """Decode the operator-supplied base64 key and build the AES-GCM primitive.

    Called once while wiring dependencies; the resulting object is shared by
    every request.
    """
    try:
        raw = decode_key_material(encoded)
    except (binascii.Error, ValueError) as exc:
        raise CryptoError("Token encryption key is not valid base64.") from exc
    if len(raw) != 32:
        raise CryptoError("Token encryption key must be 32 bytes.")
    return AESGCM(raw)


class TokenCipherService:
    """Encrypt and decrypt token strings with AES-256-GCM.

    Ciphertext is packed as ``base64url(nonce) + "." + base64url(ciphertext)``
    where the ciphertext includes the GCM tag.
    """

    def __init__(self, *, key: AESGCM) -> None:
        self._aead = key

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string under a fresh random nonce."""
        nonce = os.urandom(_NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return f"{_b64url_encode(nonce)}{_SEPARATOR}{_b64url_encode(ciphertext)}"

    def decrypt(self, packed: str) -> str:
        """Decrypt a packed ciphertext, raising ``CryptoError`` on any corruption."""
        nonce_part, sep, ciphertext_part = packed.partition(_SEPARATOR)
        if not sep or not nonce_part or not ciphertext_part:
            raise CryptoError("Ciphertext is not in nonce.ciphertext form.")
        try:
            nonce = _b64url_decode(nonce_part)
            ciphertext = _b64url_decode(ciphertext_part)
        except (binascii.Error, ValueError) as exc:
            raise CryptoError("Ciphertext is not valid base64url.") from exc
        if len(nonce) != _NONCE_BYTES:
            raise CryptoError("Ciphertext nonce has an unexpected length.")
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            raise CryptoError("Ciphertext failed authentication.") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:  # pragma: no cover - needs a forged tag
            raise CryptoError("Decrypted token is not UTF-8.") from exc


__all__ = ["TokenCipherService", "load_encryption_key"]
