"""Uniform adapter contract over heterogeneous inference engines.

Every adapter declares a fixed capability set.  Requests that need a
feature outside that set fail with ``UnsupportedError`` before the engine
is touched; nothing is silently dropped.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from ..errors import EngineInitError, UnsupportedError
from .capabilities import EngineCapabilities, EngineId, capabilities_for

logger = logging.getLogger(__name__)

Message = dict[str, Any]

# Called with each generated token.  Return False to stop generation early.
TokenCallback = Callable[[str], Optional[bool]]


@dataclass
class GenerationOptions:
    """Sampling/decoding configuration for one ``generate`` call."""

    max_tokens: int = 512
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    min_p: float = 0.05
    typical_p: float = 1.0
    seed: int = -1
    stop: list[str] = field(default_factory=list)
    penalty_repeat: float = 1.0
    penalty_freq: float = 0.0
    penalty_present: float = 0.0
    mirostat: int = 0
    mirostat_tau: float = 5.0
    mirostat_eta: float = 0.1
    dry_multiplier: float = 0.0
    dry_base: float = 1.75
    dry_allowed_length: int = 2
    dry_penalty_last_n: int = -1
    dry_sequence_breakers: list[str] = field(default_factory=lambda: ["\n", ":", '"', "*"])
    xtc_probability: float = 0.0
    xtc_threshold: float = 0.1
    grammar: Optional[str] = None
    jinja: bool = False
    on_token: Optional[TokenCallback] = None

    def required_features(self, messages: Optional[list[Message]] = None) -> set[str]:
        """Capability flags this request cannot be served without."""
        needed: set[str] = set()
        if self.grammar:
            needed.add("grammar")
        if self.jinja:
            needed.add("jinja")
        if self.mirostat:
            needed.add("mirostat")
        if self.dry_multiplier > 0:
            needed.add("dry")
        if self.xtc_probability > 0:
            needed.add("xtc")
        for message in messages or []:
            needed |= _content_features(message.get("content"))
        return needed


def _content_features(content: Any) -> set[str]:
    if not isinstance(content, list):
        return set()
    needed: set[str] = set()
    for part in content:
        kind = part.get("type", "") if isinstance(part, dict) else ""
        if kind in ("image_url", "image"):
            needed.add("vision")
        elif kind in ("input_audio", "audio"):
            needed.add("audio")
    return needed


def message_text(message: Message) -> str:
    """Text portion of a chat message (multimodal parts are skipped)."""
    content = message.get("content", "")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


def plain_transcript(messages: list[Message]) -> str:
    """``role: content`` lines, used when no chat template is applied."""
    return "\n".join(f"{m.get('role', 'user')}: {message_text(m)}" for m in messages)


_EXHAUSTED = object()


class EngineAdapter(abc.ABC):
    """Base class for engine adapters.

    Subclasses implement ``init``, ``release``, ``ready`` and
    ``_generate``; adapters whose capability row has ``embeddings=True``
    also implement ``_embed``.  The public ``generate``/``embed`` methods
    do the capability negotiation.
    """

    @property
    @abc.abstractmethod
    def engine_id(self) -> EngineId:
        """Which engine this adapter fronts."""

    @property
    def display_name(self) -> str:
        return self.engine_id.value

    def capabilities(self) -> EngineCapabilities:
        return capabilities_for(self.engine_id)

    @abc.abstractmethod
    def supports_asset(self, path: str) -> bool:
        """Whether this engine can read the asset format at *path*."""

    @abc.abstractmethod
    def ready(self) -> bool:
        """Whether an asset is currently loaded."""

    @abc.abstractmethod
    async def init(self, asset_path: str, auxiliary_path: Optional[str] = None) -> None:
        """Load *asset_path*. Raises EngineInitError if it cannot be loaded.

        A missing *auxiliary_path* is not fatal: the adapter loads without it.
        """

    @abc.abstractmethod
    async def release(self) -> None:
        """Tear down the loaded engine. Safe to call when nothing is loaded."""

    @abc.abstractmethod
    async def _generate(self, messages: list[Message], options: GenerationOptions) -> str:
        """Engine-specific generation, called after capability checks."""

    async def _embed(self, text: str) -> list[float]:
        raise UnsupportedError(
            f"{self.display_name} does not provide embeddings", {"embeddings"}
        )

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def check_supported(
        self, options: GenerationOptions, messages: Optional[list[Message]] = None
    ) -> None:
        missing = options.required_features(messages) - self.capabilities().enabled()
        if missing:
            raise UnsupportedError(
                f"{self.display_name} does not support: {', '.join(sorted(missing))}",
                missing,
            )

    async def generate(
        self, messages: list[Message], options: Optional[GenerationOptions] = None
    ) -> str:
        """Generate a full reply for *messages*."""
        opts = options or GenerationOptions()
        self.check_supported(opts, messages)
        if not self.ready():
            raise EngineInitError(f"{self.display_name}: engine_not_ready")
        return await self._generate(messages, opts)

    async def embed(self, text: str) -> list[float]:
        if not self.capabilities().embeddings:
            raise UnsupportedError(
                f"{self.display_name} does not provide embeddings", {"embeddings"}
            )
        if not self.ready():
            raise EngineInitError(f"{self.display_name}: engine_not_ready")
        return await self._embed(text)

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    @staticmethod
    async def _collect_tokens(
        iterator: Iterator[Any],
        extract: Callable[[Any], Optional[str]],
        options: GenerationOptions,
        is_final: Callable[[Any], bool] = lambda item: False,
    ) -> str:
        """Drain a blocking token iterator from the event loop.

        Each ``next()`` runs in the default executor.  Stops at the end of
        the stream, a final item, a stop sequence, or when ``on_token``
        returns False.
        """
        loop = asyncio.get_event_loop()

        def _next() -> Any:
            try:
                return next(iterator)
            except StopIteration:
                return _EXHAUSTED

        text = ""
        try:
            while True:
                item = await loop.run_in_executor(None, _next)
                if item is _EXHAUSTED:
                    break
                token = extract(item)
                if token:
                    text += token
                    hit = _find_stop(text, options.stop)
                    if hit is not None:
                        text = text[:hit]
                        break
                    if options.on_token is not None and options.on_token(token) is False:
                        logger.debug("Generation stopped by token callback")
                        break
                if is_final(item):
                    break
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
        return text


def _find_stop(text: str, stops: list[str]) -> Optional[int]:
    positions = [text.find(s) for s in stops if s and s in text]
    return min(positions) if positions else None
