"""llama.cpp adapter: GGUF inference via llama-cpp-python.

The full-featured engine: grammar-constrained output, Jinja chat
templates, mirostat/DRY/XTC sampling, embeddings, and vision through a
companion ``*-mmproj-f16.gguf`` projection file.

Install with ``pip install 'modelvault-sdk[llama]'``.
"""

from __future__ import annotations

import asyncio
import gc
import inspect
import logging
import os
from typing import Any, Optional

from ..config import PRIMARY_SUFFIX
from ..errors import EngineInitError, UnsupportedError
from .base import EngineAdapter, GenerationOptions, Message, plain_transcript
from .capabilities import EngineId

logger = logging.getLogger(__name__)

# Sampler kwargs that older llama-cpp-python releases may not accept
_OPTIONAL_SAMPLER_KWARGS = {
    "dry": (
        "dry_multiplier",
        "dry_base",
        "dry_allowed_length",
        "dry_penalty_last_n",
        "dry_sequence_breakers",
    ),
    "xtc": ("xtc_probability", "xtc_threshold"),
}


class LlamaCppAdapter(EngineAdapter):
    """Engine adapter backed by ``llama_cpp.Llama``."""

    def __init__(self, n_ctx: int = 4096, n_gpu_layers: int = -1) -> None:
        self._n_ctx = n_ctx
        self._n_gpu_layers = n_gpu_layers
        self._llm: Any = None
        self._embedder: Any = None
        self._asset_path: str = ""
        self._projection_path: Optional[str] = None

    @property
    def engine_id(self) -> EngineId:
        return EngineId.LLAMA

    @property
    def display_name(self) -> str:
        return "llama.cpp"

    @property
    def asset_path(self) -> str:
        return self._asset_path

    @property
    def projection_path(self) -> Optional[str]:
        return self._projection_path

    @property
    def multimodal(self) -> bool:
        return self._projection_path is not None

    def supports_asset(self, path: str) -> bool:
        return path.lower().endswith(PRIMARY_SUFFIX)

    def ready(self) -> bool:
        return self._llm is not None

    async def init(self, asset_path: str, auxiliary_path: Optional[str] = None) -> None:
        if not self.supports_asset(asset_path):
            raise EngineInitError(f"llama.cpp can only load GGUF files, got {asset_path}")
        if not os.path.isfile(asset_path):
            raise EngineInitError(f"Model file not found: {asset_path}")

        if auxiliary_path and not os.path.isfile(auxiliary_path):
            logger.warning("projector_file_missing: %s, loading text-only", auxiliary_path)
            auxiliary_path = None

        if self._llm is not None:
            await self.release()

        loop = asyncio.get_event_loop()
        try:
            self._llm = await loop.run_in_executor(
                None, self._load_sync, asset_path, auxiliary_path
            )
        except ImportError as exc:
            raise EngineInitError(
                "llama-cpp-python is not installed: pip install 'modelvault-sdk[llama]'"
            ) from exc
        except (ValueError, RuntimeError, OSError) as exc:
            raise EngineInitError(f"llama.cpp failed to load {asset_path}: {exc}") from exc

        self._asset_path = asset_path
        self._projection_path = auxiliary_path
        logger.info(
            "Model loaded: %s%s", asset_path, " (multimodal)" if auxiliary_path else ""
        )

    def _load_sync(self, asset_path: str, auxiliary_path: Optional[str]) -> Any:
        from llama_cpp import Llama  # type: ignore[import-untyped]

        kwargs: dict[str, Any] = {}
        if auxiliary_path:
            handler = self._chat_handler(auxiliary_path)
            if handler is not None:
                kwargs["chat_handler"] = handler

        return Llama(
            model_path=asset_path,
            n_ctx=self._n_ctx,
            n_gpu_layers=self._n_gpu_layers,
            verbose=False,
            **kwargs,
        )

    @staticmethod
    def _chat_handler(projection_path: str) -> Any:
        try:
            from llama_cpp.llama_chat_format import (  # type: ignore[import-untyped]
                Llava15ChatHandler,
            )
        except (ImportError, AttributeError) as exc:
            logger.warning("Vision chat handler unavailable, loading text-only: %s", exc)
            return None
        return Llava15ChatHandler(clip_model_path=projection_path, verbose=False)

    async def release(self) -> None:
        for attr in ("_llm", "_embedder"):
            engine = getattr(self, attr)
            if engine is None:
                continue
            close = getattr(engine, "close", None)
            if close is not None:
                close()
            setattr(self, attr, None)
        self._asset_path = ""
        self._projection_path = None
        gc.collect()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _grammar_arg(self, options: GenerationOptions) -> dict[str, Any]:
        if not options.grammar:
            return {}
        from llama_cpp import LlamaGrammar  # type: ignore[import-untyped]

        try:
            return {"grammar": LlamaGrammar.from_string(options.grammar, verbose=False)}
        except Exception as exc:
            raise ValueError(f"Failed to compile GBNF grammar: {exc}") from exc

    def _sampling_kwargs(self, options: GenerationOptions, method: Any) -> dict[str, Any]:
        kwargs: dict[str, Any] = dict(
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            top_k=options.top_k,
            top_p=options.top_p,
            min_p=options.min_p,
            typical_p=options.typical_p,
            repeat_penalty=options.penalty_repeat,
            frequency_penalty=options.penalty_freq,
            presence_penalty=options.penalty_present,
            mirostat_mode=options.mirostat,
            mirostat_tau=options.mirostat_tau,
            mirostat_eta=options.mirostat_eta,
        )
        if options.stop:
            kwargs["stop"] = list(options.stop)
        if options.seed >= 0:
            kwargs["seed"] = options.seed

        requested = {
            "dry": options.dry_multiplier > 0,
            "xtc": options.xtc_probability > 0,
        }
        accepted = _accepted_kwargs(method)
        for feature, names in _OPTIONAL_SAMPLER_KWARGS.items():
            if not requested[feature]:
                continue
            if accepted is not None and not set(names) <= accepted:
                raise UnsupportedError(
                    f"Installed llama-cpp-python does not expose the {feature} sampler",
                    {feature},
                )
            for name in names:
                kwargs[name] = getattr(options, name)

        kwargs.update(self._grammar_arg(options))
        return kwargs

    async def _generate(self, messages: list[Message], options: GenerationOptions) -> str:
        media = options.required_features(messages) & {"vision", "audio"}
        if media and not self.multimodal:
            raise UnsupportedError(
                f"{os.path.basename(self._asset_path)} was loaded without a projection "
                f"file; {', '.join(sorted(media))} input needs one",
                media,
            )
        use_chat = options.jinja or self.multimodal
        if use_chat:
            method = self._llm.create_chat_completion
            stream = method(
                messages=messages, stream=True, **self._sampling_kwargs(options, method)
            )
            text = await self._collect_tokens(
                iter(stream), _chat_delta, options, is_final=_finished
            )
        else:
            method = self._llm.create_completion
            prompt = plain_transcript(messages) + "\nassistant:"
            stream = method(prompt=prompt, stream=True, **self._sampling_kwargs(options, method))
            text = await self._collect_tokens(
                iter(stream), _completion_text, options, is_final=_finished
            )
        return text.strip()

    async def _embed(self, text: str) -> list[float]:
        loop = asyncio.get_event_loop()
        if self._embedder is None:
            from llama_cpp import Llama  # type: ignore[import-untyped]

            self._embedder = await loop.run_in_executor(
                None,
                lambda: Llama(
                    model_path=self._asset_path,
                    n_ctx=self._n_ctx,
                    n_gpu_layers=self._n_gpu_layers,
                    embedding=True,
                    verbose=False,
                ),
            )
        vector = await loop.run_in_executor(None, self._embedder.embed, text)
        return _pool(vector)


def _accepted_kwargs(method: Any) -> Optional[set[str]]:
    """Keyword names *method* accepts, or None if it takes ``**kwargs``."""
    try:
        params = inspect.signature(method).parameters.values()
    except (TypeError, ValueError):
        return None
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params):
        return None
    return {p.name for p in params}


def _chat_delta(chunk: dict[str, Any]) -> Optional[str]:
    return chunk["choices"][0].get("delta", {}).get("content")


def _completion_text(chunk: dict[str, Any]) -> Optional[str]:
    return chunk["choices"][0].get("text")


def _finished(chunk: dict[str, Any]) -> bool:
    return chunk["choices"][0].get("finish_reason") is not None


def _pool(vector: Any) -> list[float]:
    """Mean-pool per-token embeddings; pass pooled vectors through."""
    if vector and isinstance(vector[0], (list, tuple)):
        width = len(vector[0])
        return [sum(row[i] for row in vector) / len(vector) for i in range(width)]
    return [float(v) for v in vector]
