"""
modelvault command-line interface.

Usage::

    modelvault models list
    modelvault models import ~/Downloads/qwen2.5-0.5b.gguf
    modelvault models rm ~/.modelvault/models/qwen2.5-0.5b.gguf
    modelvault models export ~/.modelvault/models/qwen2.5-0.5b.gguf
    modelvault engine show
    modelvault engine use mlx
    modelvault engine features
    modelvault storage info
    modelvault storage cleanup
"""

from __future__ import annotations

import logging

import click

from modelvault import __version__


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="modelvault")
@click.option("--verbose", "-v", is_flag=True, help="Log registry activity to stderr.")
def main(verbose: bool) -> None:
    """modelvault — manage local model files and the inference engine."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


# ---------------------------------------------------------------------------
# Register command modules
# ---------------------------------------------------------------------------

from modelvault.commands import engine, models, storage  # noqa: E402

for _mod in [models, engine, storage]:
    _mod.register(main)
