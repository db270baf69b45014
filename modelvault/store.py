"""Persisted key/value state.

Each key holds one string blob that is always replaced whole.  The JSON
file backend writes to a sibling temp file and ``os.replace``s it into
place, so a crash mid-write leaves the previous state intact.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class KeyValueStore(abc.ABC):
    """Async string store with whole-value replace semantics."""

    @abc.abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abc.abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Replace the value for *key*."""

    @abc.abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete *key*. No-op if absent."""


class JsonFileStore(KeyValueStore):
    """All keys live in one JSON object on disk.

    Thread-safe for the single-process model: file I/O runs in the default
    executor and writes are serialised by an asyncio lock.
    """

    def __init__(self, path: os.PathLike | str) -> None:
        self._path = Path(path)
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def get_item(self, key: str) -> Optional[str]:
        data = await self._run(self._read)
        value = data.get(key)
        return value if isinstance(value, str) else None

    async def set_item(self, key: str, value: str) -> None:
        async with self._write_lock:
            data = await self._run(self._read)
            data[key] = value
            await self._run(self._write, data)

    async def remove_item(self, key: str) -> None:
        async with self._write_lock:
            data = await self._run(self._read)
            if data.pop(key, None) is not None:
                await self._run(self._write, data)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    async def _run(fn, *args):  # type: ignore[no-untyped-def]
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, fn, *args)

    def _read(self) -> dict[str, object]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        if not raw.strip():
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"State file {self._path} does not hold a JSON object")
        return data

    def _write(self, data: dict[str, object]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        logger.debug("Wrote state file %s (%d keys)", self._path, len(data))
