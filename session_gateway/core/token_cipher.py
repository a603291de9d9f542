"""Symmetric encryption utilities for protecting stored OAuth tokens."""

from __future__ import annotations

import base64
import hashlib
from typing import Iterable

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


class TokenDecryptionError(ValueError):
    """Raised when a stored token cannot be decrypted with any known key."""


def _derive_key(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class TokenCipherService:
    """Encrypt and decrypt access and refresh tokens at rest.

    The first secret encrypts; retired secrets listed in ``previous_secrets``
    are still accepted for decryption so keys can be rotated without forcing
    every user to log in again. ``rotate`` re-encrypts a value under the
    current key.
    """

    def __init__(self, *, secret: str, previous_secrets: Iterable[str] = ()) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        keys = [_derive_key(secret)]
        keys.extend(_derive_key(old) for old in previous_secrets if old)
        self._fernet = MultiFernet(keys)

    def encrypt(self, plaintext: str) -> str:
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise TokenDecryptionError(
                "Failed to decrypt token; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt ``ciphertext`` under the current secret."""
        try:
            return self._fernet.rotate(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise TokenDecryptionError("Cannot rotate an undecryptable token.") from exc


__all__ = ["TokenCipherService", "TokenDecryptionError"]
