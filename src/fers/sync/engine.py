"""
Sync Engine -- encrypt, ship, fetch, decrypt, reconcile.

This is the command center. It owns the working root, the cipher, and
the object store, and it is the only thing that talks to the latter two.

    fers upload PATH  ->  read -> encrypt -> upload   (fail-fast)
    fers sync-up      ->  diff keys -> upload each    (fail-soft per key)
    fers sync-down    ->  diff keys -> download each  (fail-soft per key)

Single-item transfers stop at the first error and raise it. Batch
reconciliation records a failing key, logs it, and moves on, so one bad
file cannot sink a whole sync pass. Cancellation always stops a batch,
but only between files: a transfer already underway is allowed to
finish.

Keys are compared at full relative-path granularity. A remote
``docs/a.txt`` is downloaded even if a local ``docs/`` already exists.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .backends import ObjectStore
from .cancel import CancelToken, check
from .cipher import CipherSuite
from .errors import CryptoError, SecurityError, StoreError, SyncIOError
from .guard import PathGuard, PathLike, normalize_key
from .models import SyncPlan, SyncReport

logger = logging.getLogger("fers.sync.engine")


class SyncEngine:
    """Orchestrates encrypted transfer between a local tree and a store.

    The engine runs on the caller's thread and takes no locks of its
    own. Callers must not run two operations against the same engine
    at once.

    Args:
        working_dir: Local root. Nothing outside it is ever touched.
        cipher: Cipher suite holding the secret key.
        store: Object store holding the encrypted blobs.
    """

    def __init__(self, working_dir: PathLike, cipher: CipherSuite, store: ObjectStore):
        self.guard = PathGuard(working_dir)
        self.cipher = cipher
        self.store = store

    @property
    def working_dir(self) -> Path:
        """Canonical working root."""
        return self.guard.root

    # ------------------------------------------------------------------
    # Single-item transfers (fail-fast)
    # ------------------------------------------------------------------

    def encrypt_and_upload_file(self, local_path: PathLike, key: str) -> None:
        """Encrypt one local file and upload it under ``key``.

        Args:
            local_path: File to read. Must be inside the working root.
            key: Object key to store the blob under.

        Raises:
            SecurityError: If the path escapes the root or the key is bad.
            SyncIOError: If the file cannot be read.
            CryptoError: If encryption fails.
            StoreError: If the upload fails.
        """
        path = self.guard.resolve(local_path)
        key = normalize_key(key)

        try:
            data = path.read_bytes()
        except OSError as exc:
            raise SyncIOError(f"Failed to read file {path}: {exc}") from exc

        try:
            blob = self.cipher.encrypt(data)
        except (ValueError, OverflowError) as exc:
            raise CryptoError(f"Failed to encrypt file {path}: {exc}") from exc

        self.store.upload(key, blob)
        logger.info("File uploaded: %s", key)

    def encrypt_and_upload_directory(
        self, root: PathLike, token: Optional[CancelToken] = None
    ) -> list[str]:
        """Encrypt and upload every regular file under ``root``.

        Keys are paths relative to the working root, not to ``root``, so
        uploading ``docs/`` yields keys like ``docs/a.txt``. The first
        failure or a cancelled token aborts the walk; files already sent
        stay sent.

        Args:
            root: Directory to walk. Must be inside the working root.
            token: Polled before each entry.

        Returns:
            Keys uploaded, in walk order.

        Raises:
            OperationCancelled: If the token fires.
            SecurityError, SyncIOError, CryptoError, StoreError: On the
                first failing file.
        """
        check(token)
        start = self.guard.resolve(root)
        if not start.is_dir():
            raise SyncIOError(f"Not a directory: {start}")

        uploaded = []
        for path in self._walk(start, token):
            key = self.guard.relative_key(path)
            self.encrypt_and_upload_file(path, key)
            uploaded.append(key)

        logger.info("Directory uploaded: %s (%d files)", start, len(uploaded))
        return uploaded

    def download_and_decrypt_file(
        self, key: str, local_path: Optional[PathLike] = None
    ) -> Path:
        """Download one blob, decrypt it, and write it locally.

        Args:
            key: Object key to fetch.
            local_path: Destination. Defaults to the key's location under
                the working root.

        Returns:
            The path written.

        Raises:
            SecurityError: If the destination escapes the root.
            StoreError: If the download fails (ObjectNotFoundError if absent).
            CryptoError: If the blob fails authentication.
            SyncIOError: If the file or its parents cannot be written.
        """
        if local_path is None:
            path = self.guard.path_for_key(key)
        else:
            path = self.guard.resolve(local_path)

        blob = self.store.download(key)
        data = self.cipher.decrypt(blob)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SyncIOError(f"Failed to create directory {path.parent}: {exc}") from exc
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise SyncIOError(f"Failed to write file {path}: {exc}") from exc

        logger.info("File downloaded and decrypted: %s", path)
        return path

    # ------------------------------------------------------------------
    # Reconciliation (fail-soft per key)
    # ------------------------------------------------------------------

    def scan_local(self) -> set[str]:
        """Object keys of every regular file under the working root.

        A working root that does not exist yet scans as empty.
        """
        if not self.working_dir.exists():
            return set()
        return {self.guard.relative_key(p) for p in self._walk(self.working_dir)}

    def scan_remote(self) -> set[str]:
        """Object keys currently in the store.

        Raises:
            StoreError: If listing fails.
        """
        return set(self.store.list(""))

    def plan(self) -> SyncPlan:
        """Compute what each direction of sync would transfer."""
        local = self.scan_local()
        remote = self.scan_remote()
        return SyncPlan(
            to_upload=sorted(local - remote),
            to_download=sorted(remote - local),
        )

    def sync_download(self, token: Optional[CancelToken] = None) -> SyncReport:
        """Download every remote key that has no local counterpart.

        Files already present locally under the exact key path are left
        alone, whatever their content.

        Args:
            token: Checked before each key.

        Returns:
            Report of transferred, skipped, and failed keys.

        Raises:
            StoreError: If the remote listing fails.
            OperationCancelled: If the token fires.
        """
        check(token)
        report = SyncReport(operation="sync-download")
        remote = self.scan_remote()
        local = self.scan_local()

        for key in sorted(remote):
            check(token)
            if key in local:
                report.skipped.append(key)
                continue
            self._transfer_soft(report, key, self.download_and_decrypt_file, key)

        self._log_report(report)
        return report

    def sync_upload(self, token: Optional[CancelToken] = None) -> SyncReport:
        """Upload every local file that has no remote counterpart.

        Remote-only keys are never touched.

        Args:
            token: Checked before each local entry.

        Returns:
            Report of transferred, skipped, and failed keys.

        Raises:
            StoreError: If the remote listing fails.
            OperationCancelled: If the token fires.
        """
        check(token)
        report = SyncReport(operation="sync-upload")
        remote = self.scan_remote()

        for path in self._walk(self.working_dir, token):
            key = self.guard.relative_key(path)
            if key in remote:
                report.skipped.append(key)
                continue
            self._transfer_soft(report, key, self.encrypt_and_upload_file, path, key)

        self._log_report(report)
        return report

    # ------------------------------------------------------------------
    # Caller-facing helpers
    # ------------------------------------------------------------------

    def list_remote_files(self, prefix: str = "") -> list[str]:
        """Sorted listing of remote keys under ``prefix``."""
        return sorted(self.store.list(prefix))

    def download_specific_files(
        self, keys: Iterable[str], token: Optional[CancelToken] = None
    ) -> SyncReport:
        """Download a chosen set of keys, overwriting local copies.

        Unlike :meth:`sync_download`, keys are fetched whether or not a
        local file already exists.
        """
        report = SyncReport(operation="download")
        for key in keys:
            check(token)
            self._transfer_soft(report, key, self.download_and_decrypt_file, key)
        self._log_report(report)
        return report

    def delete_local_file(self, relative_path: PathLike) -> Path:
        """Delete one local file inside the working root.

        Args:
            relative_path: Path relative to the working root (absolute
                paths are accepted if they resolve inside it).

        Returns:
            The path removed.

        Raises:
            SecurityError: If the path escapes the root. Nothing is deleted.
            SyncIOError: If the path is a directory, is missing, or cannot
                be removed.
        """
        path = self.guard.resolve(relative_path)
        if path == self.working_dir or path.is_dir():
            raise SyncIOError(f"Refusing to delete directory: {path}")
        try:
            path.unlink()
        except OSError as exc:
            raise SyncIOError(f"Failed to delete file {path}: {exc}") from exc
        logger.info("Local file deleted: %s", path)
        return path

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _walk(
        self, start: Path, token: Optional[CancelToken] = None
    ) -> Iterator[Path]:
        """Depth-first walk yielding regular files, sorted per directory.

        Symlinks are not followed: a link that points outside the root is
        skipped rather than read.
        """
        try:
            entries = sorted(os.scandir(start), key=lambda e: e.name)
        except OSError as exc:
            raise SyncIOError(f"Walk error at {start}: {exc}") from exc

        for entry in entries:
            check(token)
            if entry.is_symlink():
                logger.debug("Skipping symlink: %s", entry.path)
                continue
            if entry.is_dir():
                yield from self._walk(Path(entry.path), token)
            elif entry.is_file():
                yield Path(entry.path)

    def _transfer_soft(self, report: SyncReport, key: str, func, *args) -> None:
        try:
            func(*args)
        except (SecurityError, SyncIOError, CryptoError, StoreError) as exc:
            logger.error("Failed to transfer %s: %s", key, exc)
            report.failed[key] = str(exc)
        else:
            report.transferred.append(key)

    def _log_report(self, report: SyncReport) -> None:
        logger.info(
            "%s finished: %d transferred, %d skipped, %d failed",
            report.operation,
            len(report.transferred),
            len(report.skipped),
            len(report.failed),
        )
