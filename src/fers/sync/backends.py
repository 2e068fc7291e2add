"""
Object store backends -- where the encrypted blobs live.

Each backend is a flat key/value namespace: list by prefix, upload,
download, delete. The engine only ever talks to the ObjectStore
interface; which backend sits behind it is decided once, from config,
by :func:`create_store`.

Local: A directory on disk. Keys map 1:1 onto relative paths. For
       testing, USB drives, NAS mounts.
OSS:   S3-compatible object storage (Aliyun OSS, AWS S3, MinIO) via
       boto3. Keys are prefixed with a remote work directory.
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import ObjectNotFoundError, SecurityError, StoreError
from .guard import PathGuard
from .models import StorageBackendType, StorageConfig

logger = logging.getLogger("fers.sync.backends")

_TMP_SUFFIX = ".fers-tmp"
_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class ObjectStore(ABC):
    """Abstract key/value object store."""

    @abstractmethod
    def list(self, prefix: str = "") -> list[str]:
        """List keys starting with ``prefix``.

        Args:
            prefix: Key prefix. Empty lists everything.

        Returns:
            Matching keys, in no particular order.
        """

    @abstractmethod
    def upload(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, overwriting any existing value."""

    @abstractmethod
    def download(self, key: str) -> bytes:
        """Fetch the value stored under ``key``.

        Raises:
            ObjectNotFoundError: If the key does not exist.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Deleting an absent key is not an error."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


class LocalObjectStore(ObjectStore):
    """Filesystem-rooted object store.

    Every operation holds the store lock, so concurrent callers never
    see a half-walked tree or a half-written object.

    Args:
        base: Directory holding the objects. Created if missing.
    """

    def __init__(self, base: Path):
        self.base = Path(base).expanduser()
        try:
            self.base.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Cannot create store directory {self.base}: {exc}") from exc
        self._guard = PathGuard(self.base)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "localhost"

    def _key_path(self, key: str) -> Path:
        try:
            return self._guard.path_for_key(key)
        except SecurityError as exc:
            raise StoreError(str(exc)) from exc

    def list(self, prefix: str = "") -> list[str]:
        with self._lock:
            keys = []
            root = self._guard.root
            try:
                for dirpath, dirs, files in os.walk(root, onerror=_raise):
                    dirs.sort()
                    rel_dir = Path(dirpath).relative_to(root)
                    for fname in sorted(files):
                        if fname.startswith(".") and fname.endswith(_TMP_SUFFIX):
                            continue
                        key = "/".join((rel_dir / fname).parts)
                        if key.startswith(prefix):
                            keys.append(key)
            except OSError as exc:
                raise StoreError(f"Failed to list {root}: {exc}") from exc
            return keys

    def upload(self, key: str, data: bytes) -> None:
        path = self._key_path(key)
        with self._lock:
            tmp_path = path.with_name(f".{path.name}{_TMP_SUFFIX}")
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_bytes(data)
                tmp_path.replace(path)
            except OSError as exc:
                tmp_path.unlink(missing_ok=True)
                raise StoreError(f"Failed to upload {key}: {exc}") from exc
        logger.debug("Stored %s (%d bytes)", key, len(data))

    def download(self, key: str) -> bytes:
        path = self._key_path(key)
        with self._lock:
            try:
                return path.read_bytes()
            except (FileNotFoundError, IsADirectoryError) as exc:
                raise ObjectNotFoundError(key) from exc
            except OSError as exc:
                raise StoreError(f"Failed to download {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._key_path(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return
            except OSError as exc:
                raise StoreError(f"Failed to delete {key}: {exc}") from exc
            self._prune_empty_dirs(path.parent)
        logger.debug("Deleted %s", key)

    def _prune_empty_dirs(self, directory: Path) -> None:
        """Remove directories left empty by a delete, stopping at base."""
        root = self._guard.root
        while directory != root and root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                break
            directory = directory.parent


class CloudObjectStore(ObjectStore):
    """S3-compatible cloud object store.

    Keys are transparently prefixed with ``work_dir`` on the way in and
    stripped on the way out, so callers only ever see root-relative keys.

    Args:
        bucket: Bucket name.
        work_dir: Remote directory that scopes every key.
        client: A boto3 S3 client (or anything with the same methods).
    """

    def __init__(self, bucket: str, work_dir: str = "", client: Any = None):
        if client is None:
            raise StoreError("CloudObjectStore requires an S3 client")
        self.bucket = bucket
        self.work_dir = _clean_work_dir(work_dir)
        self._client = client

    @classmethod
    def from_config(cls, config) -> "CloudObjectStore":
        """Build a store with a boto3 client from a CloudStoreConfig."""
        try:
            import boto3
        except ImportError as exc:
            raise StoreError(
                "Cloud store requires boto3: pip install boto3"
            ) from exc

        client = boto3.client(
            "s3",
            endpoint_url=_endpoint_url(config.endpoint),
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.access_key_secret,
        )
        return cls(config.bucket_name, config.work_dir, client)

    @property
    def name(self) -> str:
        return "oss"

    def _full_key(self, key: str) -> str:
        clean = key.lstrip("/")
        if not self.work_dir:
            return clean
        if not clean:
            return self.work_dir
        return f"{self.work_dir}/{clean}".replace("//", "/")

    def _strip(self, full_key: str) -> Optional[str]:
        if not self.work_dir:
            return full_key
        if full_key.startswith(self.work_dir + "/"):
            return full_key[len(self.work_dir) + 1:]
        return None

    def list(self, prefix: str = "") -> list[str]:
        if self.work_dir:
            full_prefix = f"{self.work_dir}/{prefix.lstrip('/')}"
        else:
            full_prefix = prefix
        request = {"Bucket": self.bucket, "Prefix": full_prefix, "MaxKeys": 1000}

        keys: list[str] = []
        while True:
            try:
                result = self._client.list_objects_v2(**request)
            except (ClientError, BotoCoreError) as exc:
                raise StoreError(f"Failed to list objects: {exc}") from exc

            for obj in result.get("Contents", []):
                key = self._strip(obj.get("Key", ""))
                # Skip folder placeholders and the work dir marker itself
                if key and not key.endswith("/"):
                    keys.append(key)

            token = result.get("NextContinuationToken")
            if not result.get("IsTruncated") or not token:
                break
            request["ContinuationToken"] = token
        return keys

    def upload(self, key: str, data: bytes) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=self._full_key(key), Body=data
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Failed to upload object {key}: {exc}") from exc
        logger.debug("Put %s (%d bytes)", key, len(data))

    def download(self, key: str) -> bytes:
        try:
            result = self._client.get_object(
                Bucket=self.bucket, Key=self._full_key(key)
            )
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from exc
            raise StoreError(f"Failed to download object {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Failed to download object {key}: {exc}") from exc

        body = result["Body"]
        try:
            return body.read()
        except (OSError, BotoCoreError) as exc:
            raise StoreError(f"Failed to read object data {key}: {exc}") from exc
        finally:
            body.close()

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self._full_key(key))
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return
            raise StoreError(f"Failed to delete object {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Failed to delete object {key}: {exc}") from exc


def _raise(exc: OSError) -> None:
    raise exc


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _clean_work_dir(work_dir: str) -> str:
    cleaned = (work_dir or "").replace("\\", "/")
    while "//" in cleaned:
        cleaned = cleaned.replace("//", "/")
    return cleaned.strip("/")


def _endpoint_url(endpoint: Optional[str]) -> Optional[str]:
    if not endpoint:
        return None
    if "://" in endpoint:
        return endpoint
    return f"https://{endpoint}"


def create_store(config: StorageConfig) -> ObjectStore:
    """Factory function to create the configured object store.

    Args:
        config: Storage configuration.

    Returns:
        Instantiated ObjectStore.

    Raises:
        ValueError: If the backend type is unsupported or its settings
            are missing.
    """
    if config.remote_type == StorageBackendType.LOCALHOST:
        if config.localhost is None:
            raise ValueError("storage.localhost.work_dir is not configured")
        store: ObjectStore = LocalObjectStore(config.localhost.work_dir)
    elif config.remote_type == StorageBackendType.OSS:
        if config.oss is None:
            raise ValueError("storage.oss is not configured")
        store = CloudObjectStore.from_config(config.oss)
    else:
        raise ValueError(f"Unsupported storage: {config.remote_type}")

    logger.info("Using %s object store", store.name)
    return store
