"""Logging setup for the fers command line."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def level_from_config(log_level: int) -> int:
    """Map a slog-style level (-4 debug, 0 info, 4 warn, 8 error)."""
    if log_level <= -4:
        return logging.DEBUG
    if log_level < 4:
        return logging.INFO
    if log_level < 8:
        return logging.WARNING
    return logging.ERROR


def setup_logging(log_level: int = 0, log_file: Optional[Path] = None) -> None:
    """Configure console and (optionally) file logging for the fers logger.

    Args:
        log_level: slog-style level from the config file.
        log_file: Append log records here as well, if given.
    """
    root = logging.getLogger("fers")
    root.setLevel(level_from_config(log_level))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = RichHandler(console=Console(stderr=True), show_path=False)
    console.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console)

    if log_file is not None:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(handler)
