"""Engine identifiers and the static capability table."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union


class EngineId(str, Enum):
    """Recognised inference engines."""

    LLAMA = "llama"
    MLX = "mlx"

    @classmethod
    def parse(cls, value: Union["EngineId", str]) -> "EngineId":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            available = ", ".join(e.value for e in cls)
            raise ValueError(
                f"Unknown engine '{value}'. Available: {available}"
            ) from None


DEFAULT_ENGINE = EngineId.LLAMA


@dataclass(frozen=True)
class EngineCapabilities:
    """Fixed feature flags for one engine."""

    embeddings: bool = False
    vision: bool = False
    audio: bool = False
    rag: bool = False
    grammar: bool = False
    jinja: bool = False  # templated prompting
    dry: bool = False  # DRY repetition sampler
    mirostat: bool = False
    xtc: bool = False  # exclude-top-choices sampler

    def supports(self, feature: str) -> bool:
        if feature not in FEATURES:
            raise ValueError(
                f"Unknown feature '{feature}'. Known: {', '.join(FEATURES)}"
            )
        return bool(getattr(self, feature))

    def enabled(self) -> frozenset[str]:
        return frozenset(f for f in FEATURES if getattr(self, f))

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


FEATURES: tuple[str, ...] = tuple(f.name for f in fields(EngineCapabilities))

FEATURE_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "embeddings": "Embeddings",
        "vision": "Vision",
        "audio": "Audio / TTS",
        "rag": "RAG",
        "grammar": "JSON / Grammar",
        "jinja": "Jinja templates",
        "dry": "DRY sampling",
        "mirostat": "Mirostat sampling",
        "xtc": "XTC",
    }
)

_LLAMA_CAPS = EngineCapabilities(
    embeddings=True,
    vision=True,
    audio=True,
    rag=True,
    grammar=True,
    jinja=True,
    dry=True,
    mirostat=True,
    xtc=True,
)

_MLX_CAPS = EngineCapabilities()


def capabilities_for(engine_id: EngineId) -> EngineCapabilities:
    if engine_id is EngineId.LLAMA:
        return _LLAMA_CAPS
    if engine_id is EngineId.MLX:
        return _MLX_CAPS
    raise ValueError(f"No capability row for engine '{engine_id}'")


CAPABILITY_TABLE: Mapping[EngineId, EngineCapabilities] = MappingProxyType(
    {engine_id: capabilities_for(engine_id) for engine_id in EngineId}
)
