"""Inference engine adapters, capability table, and dispatcher.

Usage::

    from modelvault.engines import EngineDispatcher, EngineId

    dispatcher = EngineDispatcher(store)
    await dispatcher.load()
    await dispatcher.select(EngineId.MLX)
"""

from .base import EngineAdapter, GenerationOptions, TokenCallback
from .capabilities import (
    CAPABILITY_TABLE,
    DEFAULT_ENGINE,
    FEATURES,
    EngineCapabilities,
    EngineId,
    capabilities_for,
)
from .dispatcher import EngineDispatcher, default_adapters

__all__ = [
    "CAPABILITY_TABLE",
    "DEFAULT_ENGINE",
    "FEATURES",
    "EngineAdapter",
    "EngineCapabilities",
    "EngineDispatcher",
    "EngineId",
    "GenerationOptions",
    "TokenCallback",
    "capabilities_for",
    "default_adapters",
]
