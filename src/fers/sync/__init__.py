"""
Encrypted sync -- the engine and everything it leans on.

Files are sealed with AES-256-GCM before they leave the machine and
opened only after they come back. The store never sees plaintext.
"""

from .backends import CloudObjectStore, LocalObjectStore, ObjectStore, create_store
from .cancel import CancelToken
from .cipher import CipherSuite
from .engine import SyncEngine
from .guard import PathGuard

__all__ = [
    "CancelToken",
    "CipherSuite",
    "CloudObjectStore",
    "LocalObjectStore",
    "ObjectStore",
    "PathGuard",
    "SyncEngine",
    "create_store",
]
