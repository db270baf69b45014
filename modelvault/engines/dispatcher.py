"""Engine dispatcher: holds the active engine and routes calls to it.

The selection is persisted under ``ENGINE_KEY`` and read once at boot.
Switching engines only changes routing; already-loaded adapters are not
torn down or re-initialised, and ``needs_restart()`` is always True so
the caller can tell the user a restart is required for a clean switch.

Usage::

    dispatcher = EngineDispatcher(store)
    await dispatcher.load()
    if dispatcher.supports("grammar"):
        ...
    await dispatcher.load_model("/models/qwen.gguf")
    text = await dispatcher.generate([{"role": "user", "content": "Hi"}])
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional, Union

from ..config import ENGINE_KEY
from ..errors import EngineInitError, NotFoundError, UnsupportedError
from ..files import normalize_path
from ..store import KeyValueStore
from .base import EngineAdapter, GenerationOptions, Message
from .capabilities import (
    CAPABILITY_TABLE,
    DEFAULT_ENGINE,
    EngineCapabilities,
    EngineId,
    capabilities_for,
)

logger = logging.getLogger(__name__)


def default_adapters() -> dict[EngineId, EngineAdapter]:
    """One adapter per recognised engine. Engine libraries load lazily."""
    from .llamacpp_adapter import LlamaCppAdapter
    from .mlx_adapter import MLXAdapter

    return {EngineId.LLAMA: LlamaCppAdapter(), EngineId.MLX: MLXAdapter()}


class EngineDispatcher:
    """Routes generation and embedding calls to the selected engine."""

    def __init__(
        self,
        store: KeyValueStore,
        adapters: Optional[Mapping[EngineId, EngineAdapter]] = None,
        default: EngineId = DEFAULT_ENGINE,
    ) -> None:
        self._store = store
        self._adapters = dict(adapters) if adapters is not None else default_adapters()
        missing = [e.value for e in EngineId if e not in self._adapters]
        if missing:
            raise ValueError(f"No adapter for engine(s): {', '.join(missing)}")
        self._default = default
        self._engine = default

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def load(self) -> EngineId:
        """Read the persisted selection, falling back to the default engine."""
        stored = await self._store.get_item(ENGINE_KEY)
        if stored:
            try:
                self._engine = EngineId.parse(stored)
            except ValueError:
                logger.warning(
                    "Ignoring unrecognised engine '%s', using %s",
                    stored,
                    self._default.value,
                )
                self._engine = self._default
        return self._engine

    async def select(self, engine_id: Union[EngineId, str]) -> EngineId:
        """Switch the active engine and persist the choice."""
        engine = EngineId.parse(engine_id)
        self._engine = engine
        await self._store.set_item(ENGINE_KEY, engine.value)
        logger.info("Inference engine set to %s (restart required)", engine.value)
        return engine

    def current(self) -> EngineId:
        return self._engine

    def needs_restart(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def adapter_for(self, engine_id: EngineId) -> EngineAdapter:
        return self._adapters[engine_id]

    def active_adapter(self) -> EngineAdapter:
        return self.adapter_for(self._engine)

    def capabilities(self) -> EngineCapabilities:
        return capabilities_for(self._engine)

    def supports(self, feature: str) -> bool:
        return self.capabilities().supports(feature)

    def require(self, feature: str) -> None:
        if not self.supports(feature):
            raise UnsupportedError(
                f"Engine '{self._engine.value}' does not support {feature}", {feature}
            )

    def feature_matrix(self) -> dict[EngineId, EngineCapabilities]:
        return dict(CAPABILITY_TABLE)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def load_model(
        self, asset_path: str, projection_path: Optional[str] = None
    ) -> EngineAdapter:
        """Initialise the active adapter with an asset (and optional projection)."""
        adapter = self.active_adapter()
        path = normalize_path(asset_path)
        if not adapter.supports_asset(path):
            raise EngineInitError(
                f"{adapter.display_name} cannot load {os.path.basename(path)}"
            )
        if not os.path.exists(path):
            raise NotFoundError(f"Model file not found: {path}")

        projection = normalize_path(projection_path) if projection_path else None
        if projection and not os.path.exists(projection):
            logger.info("projector_file_missing: %s", projection)
            projection = None

        await adapter.init(path, projection)
        return adapter

    async def unload_model(self) -> None:
        await self.active_adapter().release()

    async def generate(
        self, messages: list[Message], options: Optional[GenerationOptions] = None
    ) -> str:
        return await self.active_adapter().generate(messages, options)

    async def embed(self, text: str) -> list[float]:
        self.require("embeddings")
        return await self.active_adapter().embed(text)
