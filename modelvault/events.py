"""Explicit publish/subscribe for catalog, export, and import notifications.

Subscribers are plain callables invoked synchronously, in subscription
order, after the state change they describe has been committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

MODELS_CHANGED = "models_changed"
MODEL_EXPORTED = "model_exported"
IMPORT_PROGRESS = "import_progress"

Subscriber = Callable[[Any], None]


@dataclass(frozen=True)
class ImportProgressEvent:
    """Progress of a file move into the managed directory."""

    model_name: str
    status: str  # "importing", "completed", "error"
    error: Optional[str] = None


@dataclass(frozen=True)
class ModelExportedEvent:
    model_name: str
    temp_file_path: str


class EventBus:
    """Ordered subscriber lists keyed by event name."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, event: str, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for *event*. Returns an unsubscribe function."""
        self._subscribers.setdefault(event, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(event, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def emit(self, event: str, payload: Any = None) -> None:
        # Copy so a subscriber can unsubscribe itself mid-dispatch
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for '%s' raised", event)

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))
