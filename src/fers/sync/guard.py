"""
Path safety guard -- nothing leaves the working root.

Every local read, write, or delete goes through a PathGuard first.
Paths are cleaned and fully resolved (symlinks included), then compared
to the canonical root with a relative-path computation. A result that
climbs out with ``..`` or sits on another drive is refused before any
filesystem call is made.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Union

from .errors import SecurityError

logger = logging.getLogger("fers.sync.guard")

PathLike = Union[str, "os.PathLike[str]"]


def normalize_key(key: str) -> str:
    """Normalize an object key to its canonical forward-slash form.

    Args:
        key: Candidate key, either separator style.

    Returns:
        The key with ``/`` separators and no ``.`` or empty segments.

    Raises:
        SecurityError: If the key is empty, absolute, drive-qualified,
            or contains a ``..`` segment.
    """
    raw = key.replace("\\", "/")
    if not raw or raw.startswith("/") or PureWindowsPath(key).drive:
        raise SecurityError(f"Invalid object key: {key!r}")

    parts = [p for p in PurePosixPath(raw).parts if p not in ("", ".")]
    if not parts or ".." in parts:
        raise SecurityError(f"Invalid object key: {key!r}")
    return "/".join(parts)


class PathGuard:
    """Confines local paths to a single working root.

    Args:
        root: The working directory. Resolved once at construction.
    """

    def __init__(self, root: PathLike):
        self.root = Path(root).expanduser().resolve()

    def resolve(self, candidate: PathLike) -> Path:
        """Resolve a candidate path and verify it stays under the root.

        Relative candidates are taken relative to the root, not the
        process working directory.

        Args:
            candidate: Path to check.

        Returns:
            The canonical absolute path.

        Raises:
            SecurityError: If the resolved path escapes the root.
        """
        path = Path(candidate).expanduser()
        if not path.is_absolute():
            path = self.root / path
        resolved = path.resolve()

        try:
            rel = os.path.relpath(resolved, self.root)
        except ValueError as exc:
            # Different drive on Windows
            raise SecurityError(
                f"Path {candidate} is outside working directory {self.root}"
            ) from exc

        if rel == os.pardir or rel.startswith(os.pardir + os.sep) or os.path.isabs(rel):
            logger.warning("Refused path outside working directory: %s", candidate)
            raise SecurityError(
                f"Path {candidate} is outside working directory {self.root}"
            )
        return resolved

    def contains(self, candidate: PathLike) -> bool:
        """Non-raising variant of :meth:`resolve`."""
        try:
            self.resolve(candidate)
        except SecurityError:
            return False
        return True

    def relative_key(self, candidate: PathLike) -> str:
        """Object key for a local path: root-relative, ``/``-joined.

        Raises:
            SecurityError: If the path escapes the root or is the root.
        """
        resolved = self.resolve(candidate)
        rel = resolved.relative_to(self.root)
        if not rel.parts:
            raise SecurityError("The working directory itself has no object key")
        return "/".join(rel.parts)

    def path_for_key(self, key: str) -> Path:
        """Local path for an object key, checked against the root."""
        return self.resolve(Path(*normalize_key(key).split("/")))

    def parent_within(self, current: PathLike) -> Path:
        """Parent of ``current``, clamped to the root.

        Used for "go up" navigation: from the root itself, or from
        anywhere that would climb out, the answer is the root.
        """
        try:
            resolved = self.resolve(current)
        except SecurityError:
            return self.root
        if resolved == self.root:
            return self.root
        parent = resolved.parent
        return parent if self.contains(parent) else self.root
