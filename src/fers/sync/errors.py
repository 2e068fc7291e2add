"""
Sync error taxonomy.

Every failure the engine can surface maps onto one of these. Callers
that only care whether *something* went wrong catch FersError.
"""

from __future__ import annotations


class FersError(Exception):
    """Base class for all fers errors."""


class SyncIOError(FersError, OSError):
    """Local read, write, or mkdir failure."""


class CryptoError(FersError):
    """Key setup failure, or decryption/authentication failure.

    Treat as "wrong passphrase or corrupted/tampered data". Never as
    "file not present".
    """


class StoreError(FersError):
    """Remote list, upload, download, or delete failure."""


class ObjectNotFoundError(StoreError):
    """The requested key does not exist in the object store."""

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class SecurityError(FersError):
    """A path or key would escape the working root."""


class OperationCancelled(FersError):
    """The cancel token fired or its deadline passed."""


class ConfigError(FersError):
    """Configuration file missing or invalid."""
