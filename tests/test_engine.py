"""
Tests for the sync engine -- transfers, reconciliation, cancellation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from fers.sync.backends import LocalObjectStore, ObjectStore
from fers.sync.cancel import CancelToken
from fers.sync.cipher import CipherSuite
from fers.sync.engine import SyncEngine
from fers.sync.errors import (
    CryptoError,
    ObjectNotFoundError,
    OperationCancelled,
    SecurityError,
    StoreError,
    SyncIOError,
)


class RecordingStore(LocalObjectStore):
    """Filesystem store that records calls and can fail on demand."""

    def __init__(self, base: Path, fail_upload: set[str] = frozenset()):
        super().__init__(base)
        self.uploads: list[str] = []
        self.downloads: list[str] = []
        self.fail_upload = set(fail_upload)

    def upload(self, key: str, data: bytes) -> None:
        if key in self.fail_upload:
            raise StoreError(f"simulated failure for {key}")
        self.uploads.append(key)
        super().upload(key, data)

    def download(self, key: str) -> bytes:
        self.downloads.append(key)
        return super().download(key)


class CancelAfterUploads(RecordingStore):
    """Cancels a token once a number of uploads have completed."""

    def __init__(self, base: Path, token: CancelToken, after: int):
        super().__init__(base)
        self.token = token
        self.after = after

    def upload(self, key: str, data: bytes) -> None:
        super().upload(key, data)
        if len(self.uploads) >= self.after:
            self.token.cancel()


class BrokenListStore(ObjectStore):
    """Store whose listing always fails."""

    name = "broken"

    def list(self, prefix: str = "") -> list[str]:
        raise StoreError("listing unavailable")

    def upload(self, key: str, data: bytes) -> None:
        raise AssertionError("upload must not be called")

    def download(self, key: str) -> bytes:
        raise AssertionError("download must not be called")

    def delete(self, key: str) -> None:
        pass


@pytest.fixture
def recording_store(store_dir: Path) -> RecordingStore:
    return RecordingStore(store_dir)


@pytest.fixture
def rec_engine(working_dir: Path, cipher: CipherSuite, recording_store) -> SyncEngine:
    return SyncEngine(working_dir, cipher, recording_store)


class TestSingleFile:
    """Tests for encrypt_and_upload_file / download_and_decrypt_file."""

    def test_upload_stores_ciphertext(self, engine, working_dir, store, cipher):
        (working_dir / "a.txt").write_text("secret text")
        engine.encrypt_and_upload_file(working_dir / "a.txt", "a.txt")

        blob = store.download("a.txt")
        assert b"secret text" not in blob
        assert cipher.decrypt(blob) == b"secret text"

    def test_upload_normalizes_key(self, engine, working_dir, store):
        (working_dir / "a.txt").write_text("x")
        engine.encrypt_and_upload_file(working_dir / "a.txt", "dir\\a.txt")
        assert store.list() == ["dir/a.txt"]

    def test_upload_missing_file_is_io_error(self, engine, store):
        with pytest.raises(SyncIOError):
            engine.encrypt_and_upload_file("nope.txt", "nope.txt")
        assert store.list() == []

    def test_upload_outside_root_rejected(self, engine, tmp_path, store):
        outside = tmp_path / "outside.txt"
        outside.write_text("x")
        with pytest.raises(SecurityError):
            engine.encrypt_and_upload_file(outside, "outside.txt")
        assert store.list() == []

    def test_upload_bad_key_rejected(self, engine, working_dir, store):
        (working_dir / "a.txt").write_text("x")
        with pytest.raises(SecurityError):
            engine.encrypt_and_upload_file(working_dir / "a.txt", "../a.txt")
        assert store.list() == []

    def test_download_creates_parents(self, engine, working_dir, store, cipher):
        store.upload("deep/er/c.txt", cipher.encrypt(b"nested"))
        path = engine.download_and_decrypt_file("deep/er/c.txt")
        assert path == working_dir.resolve() / "deep" / "er" / "c.txt"
        assert path.read_bytes() == b"nested"

    def test_download_to_explicit_path(self, engine, working_dir, store, cipher):
        store.upload("a.txt", cipher.encrypt(b"x"))
        engine.download_and_decrypt_file("a.txt", working_dir / "renamed.txt")
        assert (working_dir / "renamed.txt").read_bytes() == b"x"

    def test_download_missing_key(self, engine):
        with pytest.raises(ObjectNotFoundError):
            engine.download_and_decrypt_file("missing.txt")

    def test_download_wrong_key_is_crypto_error(self, working_dir, store):
        """Authentication failure surfaces as CryptoError, never not-found."""
        store.upload("a.txt", CipherSuite("other passphrase").encrypt(b"x"))
        engine = SyncEngine(working_dir, CipherSuite("mine"), store)
        with pytest.raises(CryptoError):
            engine.download_and_decrypt_file("a.txt")
        assert not (working_dir / "a.txt").exists()

    def test_download_escaping_key_rejected(self, engine, store, cipher, tmp_path):
        with pytest.raises(SecurityError):
            engine.download_and_decrypt_file("../evil.txt")
        assert not (tmp_path / "evil.txt").exists()


class TestUploadDirectory:
    """Tests for encrypt_and_upload_directory."""

    def test_uploads_tree_with_root_relative_keys(self, engine, working_dir, store, cipher, write_tree):
        write_tree(working_dir, {"a.txt": "x", "dir/b.txt": "y"})

        keys = engine.encrypt_and_upload_directory(working_dir)

        assert keys == ["a.txt", "dir/b.txt"]
        assert sorted(store.list()) == ["a.txt", "dir/b.txt"]
        assert cipher.decrypt(store.download("a.txt")) == b"x"
        assert cipher.decrypt(store.download("dir/b.txt")) == b"y"

    def test_subdirectory_keys_relative_to_working_root(self, engine, working_dir, store, write_tree):
        write_tree(working_dir, {"top.txt": "t", "docs/sub/c.txt": "c"})
        engine.encrypt_and_upload_directory(working_dir / "docs")
        assert store.list() == ["docs/sub/c.txt"]

    def test_empty_directories_not_uploaded(self, engine, working_dir, store):
        (working_dir / "empty" / "deeper").mkdir(parents=True)
        assert engine.encrypt_and_upload_directory(working_dir) == []
        assert store.list() == []

    def test_cancel_before_start_uploads_nothing(self, rec_engine, working_dir, recording_store, write_tree):
        write_tree(working_dir, {"a.txt": "x", "dir/b.txt": "y"})
        token = CancelToken()
        token.cancel()

        with pytest.raises(OperationCancelled):
            rec_engine.encrypt_and_upload_directory(working_dir, token)
        assert recording_store.uploads == []

    def test_cancel_mid_walk_finishes_current_file(self, working_dir, store_dir, cipher, write_tree):
        write_tree(working_dir, {"a.txt": "1", "b.txt": "2", "c.txt": "3"})
        token = CancelToken()
        store = CancelAfterUploads(store_dir, token, after=1)
        engine = SyncEngine(working_dir, cipher, store)

        with pytest.raises(OperationCancelled):
            engine.encrypt_and_upload_directory(working_dir, token)

        assert store.uploads == ["a.txt"]
        assert cipher.decrypt(store.download("a.txt")) == b"1"

    def test_fail_fast_on_first_error(self, working_dir, store_dir, cipher, write_tree):
        write_tree(working_dir, {"a.txt": "1", "b.txt": "2", "c.txt": "3"})
        store = RecordingStore(store_dir, fail_upload={"b.txt"})
        engine = SyncEngine(working_dir, cipher, store)

        with pytest.raises(StoreError):
            engine.encrypt_and_upload_directory(working_dir)
        assert store.uploads == ["a.txt"]

    def test_expired_deadline_is_cancellation(self, rec_engine, working_dir, write_tree):
        write_tree(working_dir, {"a.txt": "x"})
        with pytest.raises(OperationCancelled, match="Deadline"):
            rec_engine.encrypt_and_upload_directory(working_dir, CancelToken.with_timeout(-1))

    def test_not_a_directory(self, engine, working_dir):
        (working_dir / "a.txt").write_text("x")
        with pytest.raises(SyncIOError):
            engine.encrypt_and_upload_directory(working_dir / "a.txt")

    def test_outside_root_rejected(self, engine, tmp_path):
        with pytest.raises(SecurityError):
            engine.encrypt_and_upload_directory(tmp_path)


class TestSyncDownload:
    """Tests for sync_download reconciliation."""

    def test_downloads_remote_only_keys(self, engine, working_dir, store, cipher):
        store.upload("a.txt", cipher.encrypt(b"x"))
        store.upload("dir/b.txt", cipher.encrypt(b"y"))

        report = engine.sync_download()

        assert report.ok
        assert sorted(report.transferred) == ["a.txt", "dir/b.txt"]
        assert (working_dir / "a.txt").read_text() == "x"
        assert (working_dir / "dir" / "b.txt").read_text() == "y"

    def test_existing_local_file_untouched(self, rec_engine, working_dir, recording_store, cipher):
        recording_store.upload("a.txt", cipher.encrypt(b"remote version"))
        (working_dir / "a.txt").write_text("local version")

        report = rec_engine.sync_download()

        assert report.skipped == ["a.txt"]
        assert recording_store.downloads == []
        assert (working_dir / "a.txt").read_text() == "local version"

    def test_full_path_matching_not_top_level(self, engine, working_dir, store, cipher, write_tree):
        """A local 'docs/' does not hide a remote 'docs/new.txt'."""
        write_tree(working_dir, {"docs/old.txt": "old"})
        store.upload("docs/new.txt", cipher.encrypt(b"new"))

        report = engine.sync_download()

        assert report.transferred == ["docs/new.txt"]
        assert (working_dir / "docs" / "new.txt").read_text() == "new"

    def test_fail_soft_on_corrupt_blob(self, engine, working_dir, store, cipher):
        store.upload("a.txt", cipher.encrypt(b"good"))
        store.upload("b.txt", b"\x00" * 40)
        store.upload("c.txt", cipher.encrypt(b"also good"))

        report = engine.sync_download()

        assert sorted(report.transferred) == ["a.txt", "c.txt"]
        assert list(report.failed) == ["b.txt"]
        assert "Authentication failed" in report.failed["b.txt"]
        assert not report.ok

    def test_missing_working_dir_is_created(self, tmp_path, store, cipher):
        """A fresh machine with no target directory yet still syncs down."""
        fresh = tmp_path / "fresh"
        store.upload("a.txt", cipher.encrypt(b"x"))
        store.upload("dir/b.txt", cipher.encrypt(b"y"))

        report = SyncEngine(fresh, cipher, store).sync_download()

        assert report.ok
        assert sorted(report.transferred) == ["a.txt", "dir/b.txt"]
        assert (fresh / "dir" / "b.txt").read_text() == "y"

    def test_plan_with_missing_working_dir(self, tmp_path, store, cipher):
        store.upload("a.txt", cipher.encrypt(b"x"))
        plan = SyncEngine(tmp_path / "fresh", cipher, store).plan()
        assert plan.to_upload == []
        assert plan.to_download == ["a.txt"]

    def test_upload_directory_missing_root_still_fails(self, tmp_path, store, cipher):
        fresh = tmp_path / "fresh"
        with pytest.raises(SyncIOError):
            SyncEngine(fresh, cipher, store).encrypt_and_upload_directory(fresh)
        assert not (working_dir / "b.txt").exists()

    def test_unsafe_remote_key_recorded_not_written(self, working_dir, cipher, tmp_path):
        class EvilStore(LocalObjectStore):
            def list(self, prefix=""):
                return ["../escape.txt", "fine.txt"]

            def download(self, key):
                return cipher.encrypt(b"payload")

        engine = SyncEngine(working_dir, cipher, EvilStore(tmp_path / "s"))
        report = engine.sync_download()

        assert report.transferred == ["fine.txt"]
        assert "../escape.txt" in report.failed
        assert not (tmp_path / "escape.txt").exists()

    def test_cancelled_token_stops_immediately(self, rec_engine, recording_store, cipher):
        recording_store.upload("a.txt", cipher.encrypt(b"x"))
        token = CancelToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            rec_engine.sync_download(token)
        assert recording_store.downloads == []

    def test_list_failure_propagates(self, working_dir, cipher):
        engine = SyncEngine(working_dir, cipher, BrokenListStore())
        with pytest.raises(StoreError):
            engine.sync_download()


class TestSyncUpload:
    """Tests for sync_upload reconciliation."""

    def test_uploads_local_only_files(self, engine, working_dir, store, cipher, write_tree):
        write_tree(working_dir, {"a.txt": "x", "dir/b.txt": "y"})
        store.upload("remote-only.txt", cipher.encrypt(b"r"))

        report = engine.sync_upload()

        assert report.ok
        assert report.transferred == ["a.txt", "dir/b.txt"]
        assert sorted(store.list()) == ["a.txt", "dir/b.txt", "remote-only.txt"]
        assert cipher.decrypt(store.download("remote-only.txt")) == b"r"
        assert not (working_dir / "remote-only.txt").exists()

    def test_existing_remote_keys_skipped(self, rec_engine, working_dir, recording_store, cipher):
        (working_dir / "a.txt").write_text("local")
        recording_store.upload("a.txt", cipher.encrypt(b"remote"))
        recording_store.uploads.clear()

        report = rec_engine.sync_upload()

        assert report.skipped == ["a.txt"]
        assert recording_store.uploads == []

    def test_fail_soft_continues(self, working_dir, store_dir, cipher, write_tree):
        write_tree(working_dir, {"a.txt": "1", "b.txt": "2", "c.txt": "3"})
        store = RecordingStore(store_dir, fail_upload={"b.txt"})
        engine = SyncEngine(working_dir, cipher, store)

        report = engine.sync_upload()

        assert store.uploads == ["a.txt", "c.txt"]
        assert list(report.failed) == ["b.txt"]

    def test_cancelled_token_uploads_nothing(self, rec_engine, working_dir, recording_store, write_tree):
        write_tree(working_dir, {"a.txt": "x"})
        token = CancelToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            rec_engine.sync_upload(token)
        assert recording_store.uploads == []

    def test_roundtrip_between_two_machines(self, tmp_path, store, passphrase, write_tree):
        """Upload from one tree, sync down into another."""
        first = tmp_path / "laptop"
        second = tmp_path / "desktop"
        first.mkdir()
        second.mkdir()
        write_tree(first, {"notes/todo.md": "- ship it", "photo.bin": "\x00\x01"})

        SyncEngine(first, CipherSuite(passphrase), store).sync_upload()
        SyncEngine(second, CipherSuite(passphrase), store).sync_download()

        assert (second / "notes" / "todo.md").read_text() == "- ship it"
        assert (second / "photo.bin").read_text() == "\x00\x01"


class TestPlanAndHelpers:
    """Tests for plan, listing, selective download, and local delete."""

    def test_plan(self, engine, working_dir, store, cipher, write_tree):
        write_tree(working_dir, {"local.txt": "l", "both.txt": "b"})
        store.upload("both.txt", cipher.encrypt(b"b"))
        store.upload("dir/remote.txt", cipher.encrypt(b"r"))

        plan = engine.plan()

        assert plan.to_upload == ["local.txt"]
        assert plan.to_download == ["dir/remote.txt"]
        assert not plan.in_sync

    def test_list_remote_files_sorted(self, engine, store):
        for key in ("b.txt", "a/z.txt", "a/a.txt"):
            store.upload(key, b"x")
        assert engine.list_remote_files() == ["a/a.txt", "a/z.txt", "b.txt"]
        assert engine.list_remote_files("a/") == ["a/a.txt", "a/z.txt"]

    def test_download_specific_overwrites(self, engine, working_dir, store, cipher):
        (working_dir / "a.txt").write_text("stale")
        store.upload("a.txt", cipher.encrypt(b"fresh"))

        report = engine.download_specific_files(["a.txt", "missing.txt"])

        assert report.transferred == ["a.txt"]
        assert "missing.txt" in report.failed
        assert (working_dir / "a.txt").read_text() == "fresh"

    def test_delete_local_file(self, engine, working_dir):
        (working_dir / "dir").mkdir()
        (working_dir / "dir" / "a.txt").write_text("x")
        engine.delete_local_file("dir/a.txt")
        assert not (working_dir / "dir" / "a.txt").exists()

    def test_delete_outside_root_refused(self, engine, tmp_path):
        victim = tmp_path / "outside.txt"
        victim.write_text("keep me")
        with pytest.raises(SecurityError):
            engine.delete_local_file("../outside.txt")
        with pytest.raises(SecurityError):
            engine.delete_local_file(victim)
        assert victim.read_text() == "keep me"

    def test_delete_directory_refused(self, engine, working_dir):
        (working_dir / "dir").mkdir()
        with pytest.raises(SyncIOError):
            engine.delete_local_file("dir")
        assert (working_dir / "dir").is_dir()

    def test_delete_missing_file(self, engine):
        with pytest.raises(SyncIOError):
            engine.delete_local_file("ghost.txt")
