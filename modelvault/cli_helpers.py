"""Shared helpers for CLI commands.

Command modules build their collaborators through these helpers so the
whole CLI honours the same ``MODELVAULT_*`` environment.
"""

from __future__ import annotations

import logging
import sys
from typing import NoReturn

import click

from modelvault.config import VaultConfig
from modelvault.engines.dispatcher import EngineDispatcher
from modelvault.files import FileManager
from modelvault.registry import AssetRegistry
from modelvault.store import JsonFileStore

_logger = logging.getLogger(__name__)


def _get_config() -> VaultConfig:
    try:
        return VaultConfig.from_env()
    except ValueError as exc:
        _fail(str(exc))


def _fail(message: str) -> NoReturn:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


async def _open_registry(config: VaultConfig) -> AssetRegistry:
    """Build and initialise a registry. Must be called inside the running loop."""
    files = FileManager(config)
    registry = AssetRegistry(files, JsonFileStore(config.state_file))
    await registry.initialize()
    _logger.debug("Registry ready at %s", config.models_dir)
    return registry


async def _open_dispatcher(config: VaultConfig) -> EngineDispatcher:
    dispatcher = EngineDispatcher(JsonFileStore(config.state_file))
    await dispatcher.load()
    return dispatcher
