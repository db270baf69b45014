"""Directory layout and tunables, resolved from the environment.

Usage::

    from modelvault.config import VaultConfig

    config = VaultConfig.from_env()          # honours MODELVAULT_HOME etc.
    config = VaultConfig.under("/tmp/vault") # everything below one root
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

# Persisted key names
CATALOG_KEY = "stored_models_list"
ENGINE_KEY = "inference_engine"

# Companion projection naming: "<base>.gguf" pairs with "<base>-mmproj-f16.gguf"
PRIMARY_SUFFIX = ".gguf"
PROJECTION_SUFFIX = "-mmproj-f16.gguf"

STALE_AFTER_SECONDS = 24 * 60 * 60
REFRESH_DEBOUNCE_SECONDS = 0.3

_DEFAULT_HOME = Path.home() / ".modelvault"


@dataclass(frozen=True)
class VaultConfig:
    """Filesystem layout for one managed asset tree."""

    home: Path
    models_dir: Path
    temp_dir: Path
    export_dir: Path
    state_file: Path
    stale_after_seconds: float = STALE_AFTER_SECONDS
    refresh_debounce_seconds: float = REFRESH_DEBOUNCE_SECONDS

    @classmethod
    def under(cls, home: os.PathLike | str, **overrides: object) -> "VaultConfig":
        """Build the default layout below *home*."""
        root = Path(home).expanduser()
        values: dict[str, object] = dict(
            home=root,
            models_dir=root / "models",
            temp_dir=root / "temp",
            export_dir=root / "cache" / "export",
            state_file=root / "state.json",
        )
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VaultConfig":
        """Read ``MODELVAULT_*`` variables, falling back to ``~/.modelvault``."""
        env = os.environ if environ is None else environ
        home = Path(env.get("MODELVAULT_HOME", "") or _DEFAULT_HOME)
        overrides: dict[str, object] = {}

        models_dir = env.get("MODELVAULT_MODELS_DIR", "")
        if models_dir:
            overrides["models_dir"] = Path(models_dir).expanduser()

        stale_hours = env.get("MODELVAULT_STALE_HOURS", "")
        if stale_hours:
            try:
                overrides["stale_after_seconds"] = float(stale_hours) * 3600
            except ValueError:
                raise ValueError(
                    f"MODELVAULT_STALE_HOURS must be a number, got '{stale_hours}'"
                ) from None

        return cls.under(home, **overrides)
