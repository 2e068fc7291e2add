"""Shared test fixtures for fers."""

from __future__ import annotations

from pathlib import Path

import pytest

from fers.sync.backends import LocalObjectStore
from fers.sync.cipher import CipherSuite
from fers.sync.engine import SyncEngine

PASSPHRASE = "correct horse battery staple"


@pytest.fixture
def working_dir(tmp_path: Path) -> Path:
    """Provide an empty local working directory."""
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    """Directory backing the filesystem object store."""
    return tmp_path / "remote"


@pytest.fixture
def passphrase() -> str:
    return PASSPHRASE


@pytest.fixture
def cipher(passphrase: str) -> CipherSuite:
    return CipherSuite(passphrase)


@pytest.fixture
def store(store_dir: Path) -> LocalObjectStore:
    return LocalObjectStore(store_dir)


@pytest.fixture
def engine(working_dir: Path, cipher: CipherSuite, store: LocalObjectStore) -> SyncEngine:
    """Engine wired to a temp working dir and a filesystem store."""
    return SyncEngine(working_dir, cipher, store)


@pytest.fixture
def write_tree():
    """Return a helper that creates files (relative path -> text) under a root."""

    def _write(root: Path, files: dict[str, str]) -> None:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

    return _write
