"""Error taxonomy for modelvault.

Hard errors derive from ``VaultError`` and propagate to the caller.
Best-effort operations (disk cleanup after a catalog change, temp sweeps,
export hand-off) report through ``SoftFailureLog`` instead: logged and
counted, never raised.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


class VaultError(Exception):
    """Base class for all modelvault errors."""


class NotFoundError(VaultError, FileNotFoundError):
    """A referenced file or asset does not exist."""


class ConflictError(VaultError, ValueError):
    """Duplicate name or path on register/link."""


class UnsupportedError(VaultError, NotImplementedError):
    """The requested feature is not in the engine's capability set."""

    def __init__(self, message: str, features: Optional[set[str]] = None) -> None:
        super().__init__(message)
        self.features = set(features or ())


class IOFailureError(VaultError, OSError):
    """A filesystem operation failed unexpectedly."""


class InitFailureError(VaultError):
    """Registry bootstrap failed. The registry stays uninitialized and can be retried."""


class EngineInitError(VaultError):
    """An engine adapter could not load an asset."""


# ---------------------------------------------------------------------------
# Soft failures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SoftFailure:
    """A swallowed failure from a best-effort operation."""

    operation: str
    target: str
    error: str
    occurred_at: float


@dataclass
class SoftFailureLog:
    """Collects best-effort failures so callers can inspect them later.

    ``record()`` never raises.  Entries beyond ``max_entries`` drop the
    oldest; per-operation counts are kept for the lifetime of the log.
    """

    max_entries: int = 256
    _entries: list[SoftFailure] = field(default_factory=list)
    _counts: Counter = field(default_factory=Counter)

    def record(self, operation: str, target: str, exc: BaseException) -> SoftFailure:
        failure = SoftFailure(
            operation=operation,
            target=target,
            error=f"{type(exc).__name__}: {exc}",
            occurred_at=time.time(),
        )
        logger.warning("%s failed for %s: %s", operation, target, failure.error)
        self._entries.append(failure)
        if len(self._entries) > self.max_entries:
            del self._entries[0]
        self._counts[operation] += 1
        return failure

    @property
    def entries(self) -> list[SoftFailure]:
        return list(self._entries)

    def count(self, operation: Optional[str] = None) -> int:
        if operation is None:
            return sum(self._counts.values())
        return self._counts[operation]

    def clear(self) -> None:
        self._entries.clear()
        self._counts.clear()
