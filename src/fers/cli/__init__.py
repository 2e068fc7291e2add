"""
fers CLI — encrypted file sync from the command line.

The main Click group is defined here and all subcommands are
registered via register functions.

Entry point: fers.cli:main
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="fers")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.yaml (default: search standard locations).",
)
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path]):
    """fers — encrypt, upload, and sync a directory tree.

    Files are sealed with AES-256-GCM locally. The object store only
    ever holds ciphertext.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .files import register_file_commands
from .sync_cmd import register_sync_commands

register_file_commands(main)
register_sync_commands(main)
