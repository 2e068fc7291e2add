"""Shared utilities for all CLI command modules.

Provides the Rich console instance, engine construction from config,
cancellation wiring, and report rendering.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Iterator

import click
from rich.console import Console
from rich.table import Table

from ..config import load_config
from ..logging_setup import setup_logging
from ..sync.backends import create_store
from ..sync.cancel import CancelToken
from ..sync.cipher import CipherSuite
from ..sync.engine import SyncEngine
from ..sync.errors import FersError, OperationCancelled
from ..sync.models import SyncReport

console = Console()
logger = logging.getLogger("fers.cli")

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def get_engine(ctx: click.Context) -> SyncEngine:
    """Build (once per invocation) the engine described by the config.

    Exits with status 1 if the config or store cannot be set up.
    """
    obj = ctx.ensure_object(dict)
    if "engine" in obj:
        return obj["engine"]

    try:
        config = load_config(obj.get("config_path"))
        setup_logging(config.log_level, config.log)
        store = create_store(config.storage)
        cipher = CipherSuite(config.crypto_key)
        engine = SyncEngine(config.target_dir, cipher, store)
    except (FersError, ValueError, OSError) as exc:
        console.print(f"[bold red]Startup failed:[/] {exc}")
        sys.exit(EXIT_FAILURE)

    logger.debug("Working directory: %s", engine.working_dir)
    obj["engine"] = engine
    return engine


@contextmanager
def cancellable() -> Iterator[CancelToken]:
    """Yield a CancelToken that SIGINT/SIGTERM will fire.

    The current file finishes before the operation stops.
    """
    token = CancelToken()
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handle_signal(signum, frame):
        logger.info("Received %s, finishing current file then stopping",
                    signal.Signals(signum).name)
        token.cancel()

    previous = {
        sig: signal.signal(sig, _handle_signal)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@contextmanager
def command_errors(operation: str) -> Iterator[None]:
    """Turn engine errors into a message and a non-zero exit."""
    try:
        yield
    except OperationCancelled as exc:
        console.print(f"[yellow]{operation} cancelled:[/] {exc}")
        sys.exit(EXIT_CANCELLED)
    except FersError as exc:
        console.print(f"[bold red]{operation} failed:[/] {exc}")
        sys.exit(EXIT_FAILURE)


def print_report(report: SyncReport) -> None:
    """Render a batch report and exit non-zero if any key failed."""
    console.print(
        f"\n  [bold]{report.operation}[/]: "
        f"[green]{len(report.transferred)} transferred[/], "
        f"[dim]{len(report.skipped)} skipped[/], "
        f"[red]{len(report.failed)} failed[/]"
    )
    for key in report.transferred:
        console.print(f"    [green]+[/] {key}")

    if report.failed:
        table = Table(title="Failures", show_lines=False)
        table.add_column("Key", style="cyan")
        table.add_column("Error", style="red")
        for key, error in sorted(report.failed.items()):
            table.add_row(key, error)
        console.print(table)
        sys.exit(EXIT_FAILURE)
    console.print()
