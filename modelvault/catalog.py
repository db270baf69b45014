"""Catalog entries and their persisted form.

The catalog is an insertion-ordered list of ``AssetRecord`` persisted as a
single JSON blob under ``CATALOG_KEY``; it is always written whole.
"""

from __future__ import annotations

import json
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .config import PRIMARY_SUFFIX, PROJECTION_SUFFIX


class AssetKind(str, Enum):
    """What role a file plays for an inference engine."""

    PRIMARY = "primary"
    VISION = "vision"
    PROJECTION = "projection"


@dataclass
class AssetRecord:
    """One catalog entry. ``name`` and ``path`` are unique across the catalog."""

    id: str
    name: str
    path: str
    size_bytes: int
    modified_at: str
    is_external: bool = False
    downloaded: bool = True
    asset_kind: AssetKind = AssetKind.PRIMARY
    capabilities: list[str] = field(default_factory=list)
    supports_multimodal: bool = False
    compatible_projection_assets: list[str] = field(default_factory=list)
    default_projection_asset: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["asset_kind"] = self.asset_kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssetRecord":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            path=str(data["path"]),
            size_bytes=int(data.get("size_bytes", 0)),
            modified_at=str(data.get("modified_at", "")),
            is_external=bool(data.get("is_external", False)),
            downloaded=bool(data.get("downloaded", True)),
            asset_kind=AssetKind(data.get("asset_kind", AssetKind.PRIMARY.value)),
            capabilities=list(data.get("capabilities", [])),
            supports_multimodal=bool(data.get("supports_multimodal", False)),
            compatible_projection_assets=list(
                data.get("compatible_projection_assets", [])
            ),
            default_projection_asset=data.get("default_projection_asset"),
        )


def new_asset_id(name: str) -> str:
    return f"{name}-{uuid.uuid4().hex[:12]}"


def isoformat(timestamp: Optional[float] = None) -> str:
    """UTC ISO-8601 string for *timestamp* (defaults to now)."""
    ts = time.time() if timestamp is None else timestamp
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def encode_catalog(records: list[AssetRecord]) -> str:
    return json.dumps([r.to_dict() for r in records])


def decode_catalog(raw: Optional[str]) -> list[AssetRecord]:
    """Parse a persisted catalog blob. An absent blob is an empty catalog."""
    if not raw:
        return []
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("Persisted catalog is not a list")
    return [AssetRecord.from_dict(item) for item in data]


# ---------------------------------------------------------------------------
# Companion projection naming
# ---------------------------------------------------------------------------


def projection_name_for(name: str) -> Optional[str]:
    """``"x.gguf"`` -> ``"x-mmproj-f16.gguf"``; None if *name* has no companion."""
    if not name.endswith(PRIMARY_SUFFIX) or name.endswith(PROJECTION_SUFFIX):
        return None
    return name[: -len(PRIMARY_SUFFIX)] + PROJECTION_SUFFIX


def projection_path_for(path: str) -> Optional[str]:
    """Companion projection path next to *path*, or None."""
    directory, name = os.path.split(path)
    companion = projection_name_for(name)
    if companion is None:
        return None
    return os.path.join(directory, companion)
