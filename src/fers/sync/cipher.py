"""
Cipher suite -- AES-256-GCM over whole-file payloads.

Every blob on the wire is ``nonce(12) || ciphertext || tag(16)``.
The nonce is fresh from ``os.urandom`` on every call, so encrypting the
same bytes twice never yields the same blob.

Key derivation is a single SHA-256 pass over the passphrase: no salt,
no iteration count. One shared secret, no rotation, no per-file keys.
That keeps every device able to derive the same key from the same
passphrase, and it also means a weak passphrase is only as strong as
one hash. Pick a long one.
"""

from __future__ import annotations

import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError

logger = logging.getLogger("fers.sync.cipher")

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


def derive_key(passphrase: str) -> bytes:
    """Derive the 256-bit secret key from a passphrase.

    Args:
        passphrase: Operator-supplied passphrase.

    Returns:
        32 bytes of key material (SHA-256 digest).

    Raises:
        CryptoError: If the passphrase is empty or not a string.
    """
    if not isinstance(passphrase, str) or not passphrase:
        raise CryptoError("Passphrase must be a non-empty string")
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


class CipherSuite:
    """Authenticated encryption under a passphrase-derived key.

    The key lives only on this instance. It is never written to disk
    and never shows up in ``repr()`` or log output.
    """

    def __init__(self, passphrase: str):
        key = derive_key(passphrase)
        try:
            self._aead = AESGCM(key)
        except ValueError as exc:
            raise CryptoError(f"Cipher setup failed: {exc}") from exc

    def __repr__(self) -> str:
        return "CipherSuite(algorithm='AES-256-GCM')"

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt a payload.

        Args:
            plaintext: Bytes to protect. May be empty.

        Returns:
            ``nonce || ciphertext || tag``.
        """
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, bytes(plaintext), None)

    def decrypt(self, blob: bytes) -> bytes:
        """Decrypt and authenticate a blob.

        Args:
            blob: Bytes produced by :meth:`encrypt`.

        Returns:
            The original plaintext.

        Raises:
            CryptoError: If the blob is truncated, tampered with, or was
                sealed under a different key.
        """
        if len(blob) < NONCE_SIZE:
            raise CryptoError("Ciphertext too short")
        nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            logger.debug("GCM tag mismatch on %d-byte blob", len(blob))
            raise CryptoError(
                "Authentication failed: wrong passphrase or corrupted data"
            ) from exc
