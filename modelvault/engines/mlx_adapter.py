"""MLX adapter: Apple Silicon inference via mlx-lm.

Loads MLX-format model directories (not GGUF).  Text generation only:
the capability row for this engine has every optional feature off, so
grammar, templates, alternative samplers, embeddings and multimodal
input are rejected up front.

Install with ``pip install 'modelvault-sdk[mlx]'``.
"""

from __future__ import annotations

import asyncio
import gc
import logging
import os
from typing import Any, Optional

from ..config import PRIMARY_SUFFIX
from ..errors import EngineInitError
from .base import EngineAdapter, GenerationOptions, Message, plain_transcript
from .capabilities import EngineId

logger = logging.getLogger(__name__)


class MLXAdapter(EngineAdapter):
    """Engine adapter backed by ``mlx_lm``."""

    def __init__(self) -> None:
        self._model: Any = None
        self._tokenizer: Any = None
        self._model_id: str = ""

    @property
    def engine_id(self) -> EngineId:
        return EngineId.MLX

    @property
    def display_name(self) -> str:
        return "mlx-lm"

    @property
    def model_id(self) -> str:
        return self._model_id

    def supports_asset(self, path: str) -> bool:
        return not path.lower().endswith(PRIMARY_SUFFIX)

    def ready(self) -> bool:
        return self._model is not None

    async def init(self, asset_path: str, auxiliary_path: Optional[str] = None) -> None:
        if not self.supports_asset(asset_path):
            raise EngineInitError("MLX engine does not support GGUF models")
        if not os.path.exists(asset_path):
            raise EngineInitError(f"Model not found: {asset_path}")
        if auxiliary_path:
            logger.warning(
                "MLX has no vision support; ignoring projection %s", auxiliary_path
            )

        if self._model is not None:
            await self.release()

        loop = asyncio.get_event_loop()
        try:
            import mlx_lm  # type: ignore[import-untyped]

            self._model, self._tokenizer = await loop.run_in_executor(
                None, mlx_lm.load, asset_path
            )
        except ImportError as exc:
            raise EngineInitError(
                "mlx-lm is not installed: pip install 'modelvault-sdk[mlx]'"
            ) from exc
        except (ValueError, RuntimeError, OSError) as exc:
            raise EngineInitError(f"mlx-lm failed to load {asset_path}: {exc}") from exc

        self._model_id = asset_path
        logger.info("Model loaded: %s", asset_path)

    async def release(self) -> None:
        if self._model is None:
            return
        self._model = None
        self._tokenizer = None
        self._model_id = ""
        gc.collect()

    async def _generate(self, messages: list[Message], options: GenerationOptions) -> str:
        import mlx_lm  # type: ignore[import-untyped]
        from mlx_lm.sample_utils import make_sampler  # type: ignore[import-untyped]

        kwargs: dict[str, Any] = {
            "sampler": make_sampler(temp=options.temperature, top_p=options.top_p)
        }
        if options.penalty_repeat != 1.0:
            from mlx_lm.sample_utils import (  # type: ignore[import-untyped]
                make_logits_processors,
            )

            kwargs["logits_processors"] = make_logits_processors(
                repetition_penalty=options.penalty_repeat
            )

        stream = mlx_lm.stream_generate(
            self._model,
            self._tokenizer,
            prompt=plain_transcript(messages),
            max_tokens=options.max_tokens,
            **kwargs,
        )
        text = await self._collect_tokens(
            iter(stream),
            lambda response: response.text,
            options,
            is_final=lambda response: bool(getattr(response, "finish_reason", None)),
        )
        return text.strip()
