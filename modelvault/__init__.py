"""
modelvault — local model catalog and inference engine routing.

Keeps a persisted catalog of model files in sync with a managed
directory and routes generation calls to the selected engine
(llama.cpp or MLX).
"""

from __future__ import annotations

__version__ = "0.3.0"

from .catalog import AssetKind, AssetRecord
from .classifier import Classification, classify
from .config import VaultConfig
from .errors import (
    ConflictError,
    EngineInitError,
    InitFailureError,
    IOFailureError,
    NotFoundError,
    SoftFailure,
    SoftFailureLog,
    UnsupportedError,
    VaultError,
)
from .events import (
    IMPORT_PROGRESS,
    MODEL_EXPORTED,
    MODELS_CHANGED,
    EventBus,
    ImportProgressEvent,
    ModelExportedEvent,
)
from .files import FileManager
from .registry import AssetRegistry, RegistryState
from .store import JsonFileStore, KeyValueStore

__all__ = [
    "AssetKind",
    "AssetRecord",
    "AssetRegistry",
    "Classification",
    "ConflictError",
    "EngineInitError",
    "EventBus",
    "FileManager",
    "IMPORT_PROGRESS",
    "IOFailureError",
    "ImportProgressEvent",
    "InitFailureError",
    "JsonFileStore",
    "KeyValueStore",
    "MODELS_CHANGED",
    "MODEL_EXPORTED",
    "ModelExportedEvent",
    "NotFoundError",
    "RegistryState",
    "SoftFailure",
    "SoftFailureLog",
    "UnsupportedError",
    "VaultConfig",
    "VaultError",
    "classify",
]
