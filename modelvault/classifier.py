"""Filename heuristics for asset classification.

The registry treats this as a replaceable collaborator: anything with the
signature ``classify(name) -> Classification`` can be passed in instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from .catalog import AssetKind, projection_name_for

_PROJECTION_MARKERS = ("mmproj", "projector", "clip-model")

_VISION_MARKERS = (
    "llava",
    "bakllava",
    "vision",
    "-vl-",
    "-vl.",
    "_vl_",
    "vlm",
    "moondream",
    "minicpm-v",
    "pixtral",
    "idefics",
    "gemma-3",
    "gemma3",
)


@dataclass(frozen=True)
class Classification:
    kind: AssetKind
    capabilities: tuple[str, ...]
    is_vision: bool = False
    is_projection: bool = False
    compatible_projections: tuple[str, ...] = field(default_factory=tuple)
    default_projection: Optional[str] = None


Classifier = Callable[[str], Classification]


def classify(name: str) -> Classification:
    """Classify an asset by its file name."""
    lowered = name.lower()

    if any(marker in lowered for marker in _PROJECTION_MARKERS):
        return Classification(
            kind=AssetKind.PROJECTION,
            capabilities=("projection",),
            is_projection=True,
        )

    if any(marker in lowered for marker in _VISION_MARKERS):
        companion = projection_name_for(name)
        projections = (companion,) if companion else ()
        return Classification(
            kind=AssetKind.VISION,
            capabilities=("text", "vision"),
            is_vision=True,
            compatible_projections=projections,
            default_projection=companion,
        )

    return Classification(kind=AssetKind.PRIMARY, capabilities=("text",))
