"""Disk accounting — info, cleanup."""

from __future__ import annotations

import asyncio

import click

from modelvault.cli_helpers import _fail, _get_config
from modelvault.errors import VaultError
from modelvault.files import FileManager
from modelvault.storage import format_bytes, get_storage_info


def register(cli: click.Group) -> None:
    cli.add_command(storage)


@click.group()
def storage() -> None:
    """Disk usage of the models directory."""


@storage.command()
def info() -> None:
    """Show free space and the size of the models directory."""
    config = _get_config()
    files = FileManager(config)
    used = asyncio.run(files.directory_size(config.models_dir))
    disk = get_storage_info(config.home)

    click.echo(f"Models directory: {config.models_dir}")
    click.echo(f"  Used by models: {format_bytes(used)}")
    if disk.total_space:
        click.echo(f"  Free space:     {format_bytes(disk.free_space)}")
        click.echo(f"  Total space:    {format_bytes(disk.total_space)}")
        if not disk.has_enough_space:
            click.echo(click.style("  Low on disk space.", fg="yellow"))
    else:
        click.echo("  Free space:     unknown")


@storage.command()
def cleanup() -> None:
    """Delete empty or stale files from the download scratch directory."""
    config = _get_config()
    files = FileManager(config)
    try:
        deleted = asyncio.run(files.cleanup_stale())
    except VaultError as exc:
        _fail(str(exc))
    for name in deleted:
        click.echo(f"Removed {name}")
    if not deleted:
        click.echo("Nothing to clean up.")
    failures = files.soft_failures.count("cleanup_stale")
    if failures:
        click.echo(f"{failures} temp entries could not be removed.", err=True)
