"""File commands: upload, download, ls-remote, ls-local, rm-local."""

from __future__ import annotations

from pathlib import Path

import click

from ._common import cancellable, command_errors, console, get_engine, print_report


def register_file_commands(main: click.Group) -> None:
    """Register single-item transfer and local file commands."""

    @main.command("upload")
    @click.argument("path", type=click.Path(path_type=Path))
    @click.pass_context
    def upload(ctx, path):
        """Encrypt and upload a file, or every file under a directory.

        PATH is relative to the working directory. The first failure
        aborts the upload.
        """
        engine = get_engine(ctx)
        with command_errors("Upload"), cancellable() as token:
            target = engine.guard.resolve(path)
            if target.is_dir():
                keys = engine.encrypt_and_upload_directory(target, token)
                console.print(f"  [green]Uploaded {len(keys)} file(s)[/]")
                for key in keys:
                    console.print(f"    [green]+[/] {key}")
            else:
                key = engine.guard.relative_key(target)
                engine.encrypt_and_upload_file(target, key)
                console.print(f"  [green]Uploaded[/] {key}")

    @main.command("download")
    @click.argument("keys", nargs=-1, required=True)
    @click.pass_context
    def download(ctx, keys):
        """Download and decrypt specific remote KEYS.

        Existing local copies are overwritten.
        """
        engine = get_engine(ctx)
        with command_errors("Download"), cancellable() as token:
            report = engine.download_specific_files(keys, token)
        print_report(report)

    @main.command("ls-remote")
    @click.argument("prefix", default="")
    @click.pass_context
    def ls_remote(ctx, prefix):
        """List remote object keys, optionally under PREFIX."""
        engine = get_engine(ctx)
        with command_errors("List"):
            keys = engine.list_remote_files(prefix)
        if not keys:
            console.print("  [dim]No remote files found[/]")
            return
        for key in keys:
            console.print(f"  {key}")

    @main.command("ls-local")
    @click.argument("path", default=".", type=click.Path(path_type=Path))
    @click.pass_context
    def ls_local(ctx, path):
        """List one level of a local directory inside the working directory."""
        engine = get_engine(ctx)
        with command_errors("List"):
            target = engine.guard.resolve(path)
            if not target.is_dir():
                console.print(f"  [yellow]Not a directory:[/] {path}")
                return
            for entry in sorted(target.iterdir()):
                if entry.name.startswith("."):
                    continue
                suffix = "/" if entry.is_dir() else ""
                console.print(f"  {entry.name}{suffix}")

    @main.command("rm-local")
    @click.argument("path", type=click.Path(path_type=Path))
    @click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
    @click.pass_context
    def rm_local(ctx, path, yes):
        """Delete a local file inside the working directory."""
        engine = get_engine(ctx)
        with command_errors("Delete"):
            target = engine.guard.resolve(path)
            rel = engine.guard.relative_key(target)
            if not yes and not click.confirm(
                f"Are you sure you want to delete the local file: {rel}?"
            ):
                console.print("  [dim]Aborted[/]")
                return
            engine.delete_local_file(target)
        console.print(f"  [green]Deleted[/] {rel}")
