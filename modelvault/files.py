"""Verified filesystem primitives for the managed asset tree.

The File Manager owns no persisted state.  It knows two directories: the
managed models directory (the catalog root) and a scratch directory that
in-flight downloads write into.  Blocking calls run in the default
executor so callers on the event loop stay responsive.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from .config import VaultConfig
from .errors import IOFailureError, NotFoundError, SoftFailureLog
from .events import IMPORT_PROGRESS, EventBus, ImportProgressEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileStat:
    """Subset of ``os.stat`` the registry cares about."""

    size: int
    modified_at: float
    is_dir: bool


def normalize_path(path: os.PathLike[str] | str) -> str:
    """Strip a ``file://`` scheme so URIs and plain paths compare equal."""
    text = os.fspath(path)
    if text.startswith("file://"):
        return text[len("file://") :]
    return text


async def _in_executor(fn: Callable[..., Any], *args: Any) -> Any:
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, fn, *args)


def _stat(path: Path) -> Optional[FileStat]:
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return FileStat(
        size=st.st_size,
        modified_at=st.st_mtime,
        is_dir=path.is_dir(),
    )


class FileManager:
    """Filesystem access for the registry and the download pipeline."""

    def __init__(
        self,
        config: VaultConfig,
        events: Optional[EventBus] = None,
        soft_failures: Optional[SoftFailureLog] = None,
    ) -> None:
        self._config = config
        self._events = events or EventBus()
        self._soft_failures = soft_failures or SoftFailureLog()

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def base_dir(self) -> Path:
        return self._config.models_dir

    @property
    def download_dir(self) -> Path:
        return self._config.temp_dir

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def soft_failures(self) -> SoftFailureLog:
        return self._soft_failures

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    async def ensure_directories(self) -> None:
        """Create the models and scratch directories if they are missing."""
        try:
            await _in_executor(self._make_dirs_sync, self.base_dir)
            await _in_executor(self._make_dirs_sync, self.download_dir)
        except OSError as exc:
            raise IOFailureError(f"Could not create asset directories: {exc}") from exc

    async def make_dirs(self, path: os.PathLike[str] | str) -> None:
        try:
            await _in_executor(self._make_dirs_sync, Path(path))
        except OSError as exc:
            raise IOFailureError(f"Could not create directory {path}: {exc}") from exc

    async def list_dir(self, path: os.PathLike[str] | str) -> list[str]:
        """Entry names in *path*, sorted. Raises NotFoundError if absent."""
        try:
            return await _in_executor(lambda: sorted(os.listdir(path)))
        except FileNotFoundError as exc:
            raise NotFoundError(f"Directory does not exist: {path}") from exc
        except OSError as exc:
            raise IOFailureError(f"Could not list {path}: {exc}") from exc

    async def directory_size(self, path: os.PathLike[str] | str) -> int:
        """Total size of regular files below *path*; 0 if it does not exist."""

        def _walk() -> int:
            total = 0
            for root, _dirs, files in os.walk(path):
                for name in files:
                    try:
                        total += os.path.getsize(os.path.join(root, name))
                    except OSError:
                        continue
            return total

        return await _in_executor(_walk)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def file_exists(self, path: os.PathLike[str] | str) -> bool:
        try:
            return await _in_executor(os.path.exists, path)
        except (OSError, ValueError):
            return False

    async def stat_file(self, path: os.PathLike[str] | str) -> Optional[FileStat]:
        """Return size/mtime for *path*, or None if it does not exist."""
        try:
            return await _in_executor(_stat, Path(path))
        except OSError as exc:
            raise IOFailureError(f"Could not stat {path}: {exc}") from exc

    async def get_file_size(self, path: os.PathLike[str] | str) -> int:
        """Size in bytes, or 0 when the file is absent or unreadable."""
        try:
            info = await _in_executor(_stat, Path(path))
        except OSError:
            return 0
        return info.size if info is not None else 0

    async def move_file(
        self, source: os.PathLike[str] | str, dest: os.PathLike[str] | str
    ) -> None:
        """Move *source* to *dest*, replacing any existing file at *dest*.

        Emits ``import_progress`` events (importing, then completed or error).
        The destination is re-checked after the move because some
        filesystems report success on a move that did nothing.
        """
        model_name = Path(dest).name or "model"
        self._events.emit(
            IMPORT_PROGRESS, ImportProgressEvent(model_name=model_name, status="importing")
        )
        try:
            await _in_executor(self._move_sync, Path(source), Path(dest))
        except Exception as exc:
            self._events.emit(
                IMPORT_PROGRESS,
                ImportProgressEvent(model_name=model_name, status="error", error=str(exc)),
            )
            raise
        logger.info("Moved %s -> %s", source, dest)
        self._events.emit(
            IMPORT_PROGRESS, ImportProgressEvent(model_name=model_name, status="completed")
        )

    async def copy_file(
        self, source: os.PathLike[str] | str, dest: os.PathLike[str] | str
    ) -> None:
        """Copy *source* to *dest*, creating the destination directory."""
        try:
            await _in_executor(self._copy_sync, Path(source), Path(dest))
        except FileNotFoundError as exc:
            raise NotFoundError(f"Source file does not exist: {source}") from exc
        except OSError as exc:
            raise IOFailureError(f"Could not copy {source} to {dest}: {exc}") from exc

    async def delete_file(self, path: os.PathLike[str] | str) -> None:
        """Remove *path*. Already-absent paths are not an error."""
        try:
            await _in_executor(self._delete_sync, Path(path))
        except OSError as exc:
            raise IOFailureError(f"Could not delete {path}: {exc}") from exc

    async def cleanup_stale(
        self,
        active: Iterable[str] = (),
        now: Optional[float] = None,
    ) -> list[str]:
        """Sweep the scratch directory of empty or stale leftovers.

        Entries whose name is in *active* (in-flight downloads) are never
        touched.  Everything else is removed if it is zero-length or was
        last modified more than ``stale_after_seconds`` ago.  Per-entry
        failures are recorded as soft failures and the sweep continues.
        Returns the names that were deleted.
        """
        active_names = frozenset(active)
        current = time.time() if now is None else now
        threshold = self._config.stale_after_seconds
        deleted: list[str] = []

        try:
            names = await self.list_dir(self.download_dir)
        except NotFoundError:
            return deleted
        except IOFailureError as exc:
            self._soft_failures.record("cleanup_stale", str(self.download_dir), exc)
            return deleted

        for name in names:
            if name in active_names:
                continue
            entry = self.download_dir / name
            try:
                info = await _in_executor(_stat, entry)
                if info is None:
                    continue
                is_empty = not info.is_dir and info.size == 0
                is_stale = info.modified_at > 0 and (current - info.modified_at) > threshold
                if is_empty or is_stale:
                    await _in_executor(self._delete_sync, entry)
                    deleted.append(name)
                    logger.debug("temp_cleaned %s", name)
            except Exception as exc:
                self._soft_failures.record("cleanup_stale", str(entry), exc)

        if deleted:
            logger.info("Removed %d stale temp file(s)", len(deleted))
        return deleted

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    @staticmethod
    def _make_dirs_sync(path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _move_sync(source: Path, dest: Path) -> None:
        if not source.exists():
            raise NotFoundError(f"Source file does not exist: {source}")
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if dest.exists():
                if source.resolve() == dest.resolve():
                    return
                FileManager._delete_sync(dest)
            shutil.move(str(source), str(dest))
        except OSError as exc:
            raise IOFailureError(f"Could not move {source} to {dest}: {exc}") from exc
        if not dest.exists():
            raise IOFailureError(f"File was not moved successfully to {dest}")

    @staticmethod
    def _copy_sync(source: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(source, dest)
        except (FileNotFoundError, shutil.SameFileError):
            raise
        except OSError:
            # Never leave a truncated copy behind
            try:
                dest.unlink()
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Could not remove partial copy %s", dest)
            raise

    @staticmethod
    def _delete_sync(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
            return
        try:
            path.unlink()
        except FileNotFoundError:
            pass
