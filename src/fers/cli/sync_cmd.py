"""Sync commands: sync-up, sync-down, plan."""

from __future__ import annotations

import click
from rich.panel import Panel

from ._common import cancellable, command_errors, console, get_engine, print_report


def register_sync_commands(main: click.Group) -> None:
    """Register the reconciliation commands."""

    @main.command("sync-up")
    @click.pass_context
    def sync_up(ctx):
        """Upload every local file missing from the store."""
        engine = get_engine(ctx)
        with command_errors("Sync upload"), cancellable() as token:
            report = engine.sync_upload(token)
        print_report(report)

    @main.command("sync-down")
    @click.pass_context
    def sync_down(ctx):
        """Download every remote file missing locally."""
        engine = get_engine(ctx)
        with command_errors("Sync download"), cancellable() as token:
            report = engine.sync_download(token)
        print_report(report)

    @main.command("plan")
    @click.pass_context
    def plan(ctx):
        """Show what sync-up and sync-down would transfer."""
        engine = get_engine(ctx)
        with command_errors("Plan"):
            sync_plan = engine.plan()

        if sync_plan.in_sync:
            console.print("  [green]Local and remote are in sync[/]")
            return

        upload = "\n".join(sync_plan.to_upload) or "[dim]nothing[/]"
        download = "\n".join(sync_plan.to_download) or "[dim]nothing[/]"
        console.print(Panel(upload, title="sync-up would upload", border_style="cyan"))
        console.print(Panel(download, title="sync-down would download", border_style="magenta"))
