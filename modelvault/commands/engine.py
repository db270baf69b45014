"""Engine selection — show, use, features."""

from __future__ import annotations

import asyncio

import click

from modelvault.cli_helpers import _fail, _get_config, _open_dispatcher
from modelvault.engines.capabilities import (
    CAPABILITY_TABLE,
    FEATURE_LABELS,
    FEATURES,
    EngineCapabilities,
    EngineId,
)


def register(cli: click.Group) -> None:
    cli.add_command(engine)


@click.group()
def engine() -> None:
    """Select the inference engine and inspect its features."""


@engine.command()
def show() -> None:
    """Print the active engine and its capabilities."""
    config = _get_config()

    async def _show() -> tuple[EngineId, EngineCapabilities]:
        dispatcher = await _open_dispatcher(config)
        return dispatcher.current(), dispatcher.capabilities()

    current, caps = asyncio.run(_show())
    click.echo(f"Engine: {current.value}")
    enabled = caps.enabled()
    if not enabled:
        click.echo("  No optional features.")
    for feature in FEATURES:
        if feature in enabled:
            click.echo(f"  + {FEATURE_LABELS[feature]}")


@engine.command()
@click.argument("engine_id", metavar="ENGINE")
def use(engine_id: str) -> None:
    """Switch to ENGINE (llama or mlx)."""
    config = _get_config()

    async def _use() -> tuple[EngineId, bool]:
        dispatcher = await _open_dispatcher(config)
        selected = await dispatcher.select(engine_id)
        return selected, dispatcher.needs_restart()

    try:
        selected, restart = asyncio.run(_use())
    except ValueError as exc:
        _fail(str(exc))
    click.echo(click.style(f"Inference engine set to {selected.value}", fg="green"))
    if restart:
        click.echo("Restart the application for the change to take full effect.")


@engine.command()
def features() -> None:
    """Print the feature matrix for every engine."""
    engines = list(CAPABILITY_TABLE)
    header = f"  {'feature':<24}" + "".join(f"{e.value:>8}" for e in engines)
    click.echo(header)
    for feature in FEATURES:
        row = f"  {FEATURE_LABELS[feature]:<24}"
        for e in engines:
            row += f"{'yes' if CAPABILITY_TABLE[e].supports(feature) else '-':>8}"
        click.echo(row)
