"""Asset registry: the persisted catalog of local model files.

The catalog is reconciled against the managed directory on launch and on
demand.  Every catalog mutation runs under one ``asyncio.Lock`` (FIFO), so
concurrent callers observe only fully-applied states.  The listing path
(``get_stored_models``) skips the lock and may return a snapshot taken
while another caller is mid-mutation.

Usage::

    from modelvault.config import VaultConfig
    from modelvault.files import FileManager
    from modelvault.registry import AssetRegistry
    from modelvault.store import JsonFileStore

    config = VaultConfig.from_env()
    files = FileManager(config)
    registry = AssetRegistry(files, JsonFileStore(config.state_file))

    await registry.initialize()
    models = await registry.get_stored_models()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from .catalog import (
    AssetRecord,
    decode_catalog,
    encode_catalog,
    isoformat,
    new_asset_id,
    projection_path_for,
)
from .classifier import Classifier, classify
from .config import CATALOG_KEY
from .errors import (
    ConflictError,
    InitFailureError,
    IOFailureError,
    NotFoundError,
    SoftFailureLog,
    VaultError,
)
from .events import MODEL_EXPORTED, MODELS_CHANGED, EventBus, ModelExportedEvent
from .files import FileManager, normalize_path
from .scheduler import DebouncedScheduler
from .store import KeyValueStore

logger = logging.getLogger(__name__)

ShareHandler = Callable[[str, str], Union[None, Awaitable[None]]]


class RegistryState(str, Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    READY = "ready"


class AssetRegistry:
    """Single source of truth for which assets exist locally.

    Parameters
    ----------
    file_manager:
        All disk access goes through it.  Its event bus and soft-failure
        log are shared with the registry.
    store:
        Key/value store holding the catalog blob.
    classifier:
        ``classify(name) -> Classification`` heuristic.
    share_handler:
        Called with ``(export_path, name)`` after ``export_model`` copies a
        file out.  May be sync or async.
    """

    def __init__(
        self,
        file_manager: FileManager,
        store: KeyValueStore,
        classifier: Classifier = classify,
        share_handler: Optional[ShareHandler] = None,
    ) -> None:
        self._files = file_manager
        self._store = store
        self._classifier = classifier
        self._share_handler = share_handler
        self._events = file_manager.events
        self._soft_failures = file_manager.soft_failures
        self._lock = asyncio.Lock()
        self._state = RegistryState.UNINITIALIZED
        self._start_task: Optional[asyncio.Future] = None
        self._refresh_scheduler = DebouncedScheduler(self.refresh_stored_models)

    @property
    def state(self) -> RegistryState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is RegistryState.READY

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def soft_failures(self) -> SoftFailureLog:
        return self._soft_failures

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Reconcile the catalog with disk once per process.

        Concurrent callers share one in-flight start.  On failure every
        waiter receives the ``InitFailureError`` and the registry returns
        to ``UNINITIALIZED`` so a later call can retry.
        """
        if self._state is RegistryState.READY:
            return
        if self._start_task is None:
            self._state = RegistryState.STARTING
            self._start_task = asyncio.ensure_future(self._start())
        # shield: a caller that stops waiting must not abort the shared start
        await asyncio.shield(self._start_task)

    async def _start(self) -> None:
        logger.info("models_init_start")
        try:
            await self._sync_on_launch()
        except Exception as exc:
            self._state = RegistryState.UNINITIALIZED
            logger.error("models_init_err: %s", exc)
            if isinstance(exc, InitFailureError):
                raise
            raise InitFailureError(f"Asset registry failed to initialize: {exc}") from exc
        finally:
            self._start_task = None
        self._state = RegistryState.READY
        logger.info("models_init_done")

    async def _sync_on_launch(self) -> None:
        base = self._files.base_dir
        if not await self._files.file_exists(base):
            logger.info("Models directory %s missing, creating", base)
            await self._files.make_dirs(base)
            async with self._lock:
                await self._save([])
            return

        rescan = False
        async with self._lock:
            try:
                stored = await self._load()
                if not stored and await self._files.list_dir(base):
                    logger.info("sync_empty_storage_but_files_exist")
                    rescan = True
                else:
                    validated = await self._confirm_files_exist(stored)
                    if len(validated) != len(stored):
                        logger.info(
                            "sync_removed_missing: %d", len(stored) - len(validated)
                        )
                        await self._save(validated)
            except Exception:
                logger.warning("sync_error, falling back to full rescan", exc_info=True)
                rescan = True

        if rescan:
            await self.scan_and_persist()

    async def _confirm_files_exist(self, records: list[AssetRecord]) -> list[AssetRecord]:
        result: list[AssetRecord] = []
        for record in records:
            if await self._files.file_exists(record.path):
                result.append(record)
            else:
                logger.info("model_file_missing: %s", record.name)
        return result

    # ------------------------------------------------------------------
    # Read path (lock-free)
    # ------------------------------------------------------------------

    async def get_stored_models(self) -> list[AssetRecord]:
        """Last persisted catalog, or an empty list if it cannot be read."""
        try:
            return await self._load()
        except VaultError as exc:
            logger.warning("storage_read_error: %s", exc)
            return []

    async def find_by_name(self, name: str) -> Optional[AssetRecord]:
        for record in await self.get_stored_models():
            if record.name == name:
                return record
        return None

    async def find_by_path(self, path: str) -> Optional[AssetRecord]:
        target = self._resolve(path)
        for record in await self.get_stored_models():
            if record.path == target:
                return record
        return None

    # ------------------------------------------------------------------
    # Full rescan
    # ------------------------------------------------------------------

    async def scan_and_persist(self) -> list[AssetRecord]:
        """Rebuild the catalog from the managed directory and persist it.

        Disk wins over whatever was persisted before.  If the scan itself
        fails, an empty catalog is persisted rather than a partial one.
        """
        async with self._lock:
            return await self._scan_locked()

    async def _scan_locked(self) -> list[AssetRecord]:
        base = self._files.base_dir
        logger.debug("scan_filesystem_start: %s", base)
        try:
            if not await self._files.file_exists(base):
                await self._files.make_dirs(base)
                await self._save([])
                return []

            records: list[AssetRecord] = []
            for name in await self._files.list_dir(base):
                path = self._asset_path(name)
                try:
                    info = await self._files.stat_file(path)
                except VaultError as exc:
                    logger.debug("scan_file_error %s: %s", name, exc)
                    continue
                if info is None or info.is_dir:
                    continue
                records.append(
                    self._build_record(
                        name, path, info.size, modified_at=isoformat(info.modified_at)
                    )
                )

            await self._save(records)
            logger.info("Catalog rebuilt from disk: %d asset(s)", len(records))
            return records
        except Exception:
            logger.exception("scan_error, persisting empty catalog")
            await self._save([])
            return []

    async def refresh(self) -> list[AssetRecord]:
        """Full rescan followed by a ``models_changed`` notification."""
        records = await self.scan_and_persist()
        self._events.emit(MODELS_CHANGED)
        return records

    async def reload_stored_models(self) -> list[AssetRecord]:
        return await self.scan_and_persist()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def register_model(self, name: str, path: str, size: int) -> AssetRecord:
        """Append a new entry. Raises ConflictError on a duplicate name or path."""
        async with self._lock:
            target = self._resolve(path)
            current = await self._load()
            if any(m.name == name or m.path == target for m in current):
                raise ConflictError(f"Model already registered: {name}")

            record = self._build_record(name, target, size)
            await self._save(current + [record])
        logger.info("Registered %s (%d bytes)", name, size)
        self._events.emit(MODELS_CHANGED)
        return record

    async def delete_model(self, path: str) -> list[str]:
        """Remove an asset (and its companion projection, if on disk).

        The catalog change is persisted first.  File removal afterwards is
        best-effort: failures are recorded as soft failures and the
        catalog change stands.  Returns the paths dropped from the catalog.
        """
        async with self._lock:
            target = self._resolve(path)
            companion = projection_path_for(target)
            removed = {target}
            if companion is not None and await self._files.file_exists(companion):
                removed.add(companion)
                logger.debug("Deleting companion projection %s", companion)

            current = await self._load()
            updated = [m for m in current if m.path not in removed]
            await self._save(updated)

            for victim in sorted(removed):
                try:
                    await self._files.delete_file(victim)
                except Exception as exc:
                    self._soft_failures.record("delete_model", victim, exc)
                    continue
                if victim == companion:
                    logger.info("mmproj_deleted: %s", os.path.basename(victim))

        self._events.emit(MODELS_CHANGED)
        return sorted(m.path for m in current if m.path in removed)

    async def link_external_model(self, source_uri: str, file_name: str) -> AssetRecord:
        """Copy a file from outside the managed directory and register it."""
        if not file_name or os.path.basename(file_name) != file_name:
            raise ValueError(f"Invalid file name: '{file_name}'")

        async with self._lock:
            source = normalize_path(source_uri)
            dest = self._asset_path(file_name)

            current = await self._load()
            if any(m.name == file_name for m in current):
                raise ConflictError("A model with this name already exists")
            if await self._files.file_exists(dest):
                raise ConflictError("A file with this name already exists")

            info = await self._files.stat_file(source)
            if info is None or info.is_dir:
                raise NotFoundError(f"External file does not exist: {source}")

            await self._files.make_dirs(self._files.base_dir)
            await self._files.copy_file(source, dest)

            record = self._build_record(file_name, dest, info.size, is_external=True)
            try:
                await self._save(current + [record])
            except IOFailureError:
                # Every file left in the models directory must be catalogued
                try:
                    await self._files.delete_file(dest)
                except IOFailureError as exc:
                    self._soft_failures.record("link_external_model", dest, exc)
                raise

        logger.info("Linked external model %s from %s", file_name, source)
        self._events.emit(MODELS_CHANGED)
        return record

    async def refresh_stored_models(self) -> list[AssetRecord]:
        """Register every file on disk that the catalog does not know yet.

        One-way: nothing is removed.  Files that cannot be registered
        (e.g. a name collision) are skipped.
        """
        try:
            stored_paths = {m.path for m in await self.get_stored_models()}
            names = await self._files.list_dir(self._files.base_dir)
        except VaultError as exc:
            logger.warning("refresh_error: %s", exc)
            return []

        registered: list[AssetRecord] = []
        for name in names:
            path = self._asset_path(name)
            if path in stored_paths:
                continue
            try:
                info = await self._files.stat_file(path)
                if info is None or info.is_dir:
                    continue
                registered.append(await self.register_model(name, path, info.size))
                logger.info("auto_registered: %s", name)
            except VaultError as exc:
                logger.debug("register_skipped %s: %s", name, exc)
        return registered

    def schedule_refresh(self, delay: Optional[float] = None) -> None:
        """Debounced ``refresh_stored_models``. Bursts collapse into one run."""
        if delay is None:
            delay = self._files.config.refresh_debounce_seconds
        self._refresh_scheduler.schedule(delay)

    async def flush_pending_refresh(self) -> bool:
        return await self._refresh_scheduler.flush_now()

    async def set_download_status(self, name: str, downloaded: bool) -> bool:
        """Flip ``downloaded`` on the entry named *name*. Returns False if absent."""
        async with self._lock:
            current = await self._load()
            for record in current:
                if record.name == name:
                    record.downloaded = downloaded
                    break
            else:
                logger.info("model_not_found: %s", name)
                return False
            await self._save(current)
        self._events.emit(MODELS_CHANGED)
        return True

    async def clear_all_models(self) -> None:
        """Empty the catalog. Files on disk are left alone."""
        async with self._lock:
            await self._save([])
        logger.info("all_models_cleared_from_storage")
        self._events.emit(MODELS_CHANGED)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_model(self, path: str, name: str) -> str:
        """Copy an asset into the export area and hand it to the share handler.

        Does not touch the catalog.  Returns the exported file path.  A
        failing share handler is recorded as a soft failure.
        """
        source = normalize_path(path)
        if not await self._files.file_exists(source):
            raise NotFoundError(f"Model file does not exist: {source}")

        dest = os.path.join(os.fspath(self._files.config.export_dir), name)
        await self._files.copy_file(source, dest)

        if self._share_handler is not None:
            try:
                result: Any = self._share_handler(dest, name)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self._soft_failures.record("export_model", dest, exc)
                return dest

        self._events.emit(MODEL_EXPORTED, ModelExportedEvent(model_name=name, temp_file_path=dest))
        return dest

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _asset_path(self, name: str) -> str:
        return os.path.join(os.path.abspath(self._files.base_dir), name)

    def _resolve(self, path: str) -> str:
        # A bare file name refers to the managed directory
        text = normalize_path(path)
        if not os.path.dirname(text):
            return self._asset_path(text)
        return os.path.abspath(text)

    def _build_record(
        self,
        name: str,
        path: str,
        size: int,
        is_external: bool = False,
        modified_at: Optional[str] = None,
    ) -> AssetRecord:
        c = self._classifier(name)
        return AssetRecord(
            id=new_asset_id(name),
            name=name,
            path=path,
            size_bytes=int(size),
            modified_at=modified_at or isoformat(),
            is_external=is_external,
            downloaded=True,
            asset_kind=c.kind,
            capabilities=list(c.capabilities),
            supports_multimodal=c.is_vision,
            compatible_projection_assets=list(c.compatible_projections),
            default_projection_asset=c.default_projection,
        )

    async def _load(self) -> list[AssetRecord]:
        try:
            raw = await self._store.get_item(CATALOG_KEY)
            return decode_catalog(raw)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise IOFailureError(f"Persisted catalog is unreadable: {exc}") from exc

    async def _save(self, records: list[AssetRecord]) -> None:
        logger.debug("save_storage_start: %d", len(records))
        try:
            await self._store.set_item(CATALOG_KEY, encode_catalog(records))
        except OSError as exc:
            raise IOFailureError(f"Could not persist catalog: {exc}") from exc
