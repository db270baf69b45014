"""Catalog operations — list, scan, refresh, import, rm, export, clear."""

from __future__ import annotations

import asyncio
import os
from typing import Optional

import click

from modelvault.catalog import AssetRecord
from modelvault.cli_helpers import _fail, _get_config, _open_registry
from modelvault.errors import VaultError
from modelvault.storage import format_bytes


def register(cli: click.Group) -> None:
    cli.add_command(models)


@click.group()
def models() -> None:
    """Inspect and edit the local model catalog."""


def _print_records(records: list[AssetRecord]) -> None:
    if not records:
        click.echo("No models stored.")
        return
    for record in records:
        flags = []
        if record.is_external:
            flags.append("external")
        if not record.downloaded:
            flags.append("incomplete")
        if record.supports_multimodal:
            flags.append("vision")
        suffix = f"  [{', '.join(flags)}]" if flags else ""
        click.echo(
            f"  {record.name:<40} {format_bytes(record.size_bytes):>10}  "
            f"{record.asset_kind.value}{suffix}"
        )


@models.command("list")
def list_cmd() -> None:
    """List catalog entries."""
    config = _get_config()

    async def _list() -> list[AssetRecord]:
        registry = await _open_registry(config)
        return await registry.get_stored_models()

    try:
        records = asyncio.run(_list())
    except VaultError as exc:
        _fail(str(exc))
    _print_records(records)


@models.command()
def scan() -> None:
    """Rebuild the catalog from the models directory."""
    config = _get_config()

    async def _scan() -> list[AssetRecord]:
        registry = await _open_registry(config)
        return await registry.refresh()

    try:
        records = asyncio.run(_scan())
    except VaultError as exc:
        _fail(str(exc))
    click.echo(f"Catalog rebuilt: {len(records)} model(s).")
    _print_records(records)


@models.command()
def refresh() -> None:
    """Register files that are on disk but not in the catalog."""
    config = _get_config()

    async def _refresh() -> list[AssetRecord]:
        registry = await _open_registry(config)
        return await registry.refresh_stored_models()

    try:
        added = asyncio.run(_refresh())
    except VaultError as exc:
        _fail(str(exc))
    if not added:
        click.echo("Catalog is up to date.")
        return
    click.echo(f"Registered {len(added)} new model(s):")
    _print_records(added)


@models.command("import")
@click.argument("source")
@click.option("--name", "-n", default=None, help="File name inside the models directory.")
def import_cmd(source: str, name: Optional[str]) -> None:
    """Copy an external file into the models directory and register it."""
    config = _get_config()
    file_name = name or os.path.basename(source.rstrip("/"))

    async def _import() -> AssetRecord:
        registry = await _open_registry(config)
        return await registry.link_external_model(source, file_name)

    try:
        record = asyncio.run(_import())
    except (VaultError, ValueError) as exc:
        _fail(str(exc))
    click.echo(
        click.style(
            f"Imported {record.name} ({format_bytes(record.size_bytes)})", fg="green"
        )
    )


@models.command("rm")
@click.argument("path")
def rm_cmd(path: str) -> None:
    """Delete a model file (and its projection companion)."""
    config = _get_config()
    target = path if os.path.isabs(path) else os.path.join(config.models_dir, path)

    async def _rm() -> tuple[list[str], int]:
        registry = await _open_registry(config)
        removed = await registry.delete_model(target)
        return removed, registry.soft_failures.count("delete_model")

    try:
        removed, failures = asyncio.run(_rm())
    except VaultError as exc:
        _fail(str(exc))
    if not removed:
        click.echo(f"{os.path.basename(target)} was not in the catalog.")
    for entry in removed:
        click.echo(f"Removed {os.path.basename(entry)}")
    if failures:
        click.echo(
            click.style(f"{failures} file(s) could not be deleted from disk.", fg="yellow"),
            err=True,
        )


@models.command("export")
@click.argument("path")
@click.option("--name", "-n", default=None, help="Exported file name.")
def export_cmd(path: str, name: Optional[str]) -> None:
    """Copy a model into the export area."""
    config = _get_config()
    target = path if os.path.isabs(path) else os.path.join(config.models_dir, path)
    export_name = name or os.path.basename(target)

    async def _export() -> str:
        registry = await _open_registry(config)
        return await registry.export_model(target, export_name)

    try:
        dest = asyncio.run(_export())
    except VaultError as exc:
        _fail(str(exc))
    click.echo(f"Exported to {dest}")


@models.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def clear(yes: bool) -> None:
    """Empty the catalog. Files on disk are kept."""
    if not yes:
        click.confirm("Remove every entry from the catalog?", abort=True)
    config = _get_config()

    async def _clear() -> None:
        registry = await _open_registry(config)
        await registry.clear_all_models()

    try:
        asyncio.run(_clear())
    except VaultError as exc:
        _fail(str(exc))
    click.echo("Catalog cleared.")
